"""
Centralized configuration for the recommendation engine.
Defines all paths, scoring parameters, and defaults used across components.
"""

import os
from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent.absolute()
DATA_DIR = Path(os.environ.get("MANGA_RECS_DATA_DIR", PROJECT_ROOT / "data"))
RAW_DATA_DIR = DATA_DIR / "raw"
LOGS_DIR = PROJECT_ROOT / "logs"
APP_LOGS_DIR = LOGS_DIR / "app_logs"

date_str = datetime.now().strftime("%m%d%Y")
APP_LOG_FILE = str(APP_LOGS_DIR / f"{date_str}_1.log")

PATHS = {
    "feature_dataset": str(RAW_DATA_DIR / "manga_features.csv"),
    "database": str(DATA_DIR / "interactions.db"),
    "app_log_file": APP_LOG_FILE,
}

FEATURE_STORE = {
    # column layout of the features csv
    "id_index": 0,
    "title_index": 1,
    "score_index": 2,
    "genre_start_index": 4,
    "genre_sentinel": "4-koma",  # first numeric feature column, ends the genre flags
    # loading
    "load_attempts": 3,
    "retry_backoff_seconds": 1.0,
    "max_logged_issues": 5,
}

CONTENT_BASED = {
    "batch_size": 1000,
    "theme_slice": (20, 30),  # feature dims holding theme signals
}

COLLABORATIVE = {
    "min_similarity": 0.1,
    "min_common_items": 2,
    "like_value": 1.0,
    "reading_multipliers": {
        "completed": 1.0,
        "reading": 0.75,
        "plan-to-read": 0.4,
    },
}

CACHE = {
    "ttl_seconds": 30 * 60,
    "history_ttl_seconds": 24 * 60 * 60,
}

HYBRID = {
    "content_weight": 0.6,
    "collaborative_weight": 0.4,
    "norm": "minmax",  # "minmax", "softmax", "zscore"
    "norm_metadata": None,  # Temperature for softmax
    "candidate_multiplier": 2,  # each scorer is asked for limit * multiplier candidates
}

RECOMMEND = {
    "k": 10,
    "max_k": 50,
    "use_collaborative": True,
}

DEFAULT_RECOMMENDER_CONFIG = {
    "min_similarity": 0.1,
    "weight_likes": 2.0,
    "weight_dislikes": -1.0,
    "default_weight": 1.0,
    "genre_importance": 1.0,
    "theme_importance": 0.8,
    "score_importance": 0.5,
    "user_experience_weight": {
        "new": 0.7,  # newer users get more mainstream recommendations
        "intermediate": 1.0,
        "experienced": 1.3,  # experienced users get more niche recommendations
    },
    "max_results": 20,
}
