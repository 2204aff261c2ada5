"""
In-memory feature store.
Parses the manga features csv once at startup into an immutable id -> ItemFeatures map.
"""

import io
import time
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple

import numpy as np
import pandas as pd

from common.constants import FEATURE_STORE, PATHS
from common.errors import CollaboratorError, ConfigError
from common.logging import log_feature_store_summary
from common.utils import setup_logging

from .data_models import ItemFeatures

logger = setup_logging(__name__, PATHS["app_log_file"])


class FeatureStore:
    """Read-only map of catalogue items. Safe to share across concurrent calls."""

    def __init__(self, items: Mapping[int, ItemFeatures], validation_errors: Iterable[str] = ()):
        self._items = MappingProxyType(dict(items))
        self._ids = np.array(list(self._items.keys()), dtype=np.int64)
        self.validation_errors: Tuple[str, ...] = tuple(validation_errors)

        if self._items:
            dims = {item.features.shape[0] for item in self._items.values()}
            if len(dims) != 1:
                raise ConfigError(f"Inconsistent feature dimensions in store: {sorted(dims)}")
            self._matrix = np.vstack([item.features for item in self._items.values()]).astype(np.float64)
        else:
            self._matrix = np.empty((0, 0), dtype=np.float64)
        self._matrix.setflags(write=False)

    @classmethod
    def from_csv_text(cls, text: str) -> "FeatureStore":
        items, issues = parse_feature_dataset(text)
        if not items:
            raise ConfigError("No valid manga features were loaded")
        store = cls(items, issues)
        log_feature_store_summary(logger, store)
        return store

    def get(self, item_id: int) -> Optional[ItemFeatures]:
        return self._items.get(item_id)

    def all_ids(self) -> List[int]:
        return self._ids.tolist()

    def feature_dimension(self) -> int:
        if not self._items:
            raise ConfigError("No manga features available")
        return int(self._matrix.shape[1])

    def matrix(self) -> np.ndarray:
        """Feature vectors stacked in all_ids() order (read-only)."""
        return self._matrix

    def ids_array(self) -> np.ndarray:
        return self._ids

    def has_more_recommendations(self, exclude_ids: Iterable[int]) -> bool:
        """True if at least one catalogue item is not excluded."""
        exclude = set(exclude_ids)
        return any(item_id not in exclude for item_id in self._items)

    def stats(self) -> Dict[str, float]:
        total = len(self._items)
        return {
            "total_items": total,
            "validation_errors": len(self.validation_errors),
            "average_features": float(self._matrix.shape[1]) if total else 0.0,
        }

    def __contains__(self, item_id) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items.values())


# ===================================================================
# Parsing
# ===================================================================
def parse_feature_dataset(text: str) -> Tuple[Dict[int, ItemFeatures], List[str]]:
    """
    Parse the raw csv text into ItemFeatures keyed by id.

    Row-level problems are collected as validation issues and the row is skipped;
    only a structurally unusable dataset raises ConfigError.
    """
    if not text or len(text.strip().splitlines()) < 2:
        raise ConfigError("CSV data is empty or invalid")

    issues: List[str] = []

    def _bad_line(fields):
        issues.append(f"Malformed row skipped ({len(fields)} fields): {','.join(fields)[:80]}")
        return None

    try:
        df = pd.read_csv(
            io.StringIO(text.strip()),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            engine="python",
            on_bad_lines=_bad_line,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise ConfigError(f"Error parsing features csv: {e}")

    df = df.fillna("")
    headers = [str(c).strip() for c in df.columns]
    if FEATURE_STORE["genre_sentinel"] not in headers:
        raise ConfigError("Invalid CSV format: genre delimiter not found")

    genre_end = headers.index(FEATURE_STORE["genre_sentinel"])
    genre_start = FEATURE_STORE["genre_start_index"]
    genre_names = np.array(headers[genre_start:genre_end], dtype=object)

    ids = pd.to_numeric(df.iloc[:, FEATURE_STORE["id_index"]].str.strip(), errors="coerce")
    scores = pd.to_numeric(df.iloc[:, FEATURE_STORE["score_index"]].str.strip(), errors="coerce").fillna(0.0)
    titles = df.iloc[:, FEATURE_STORE["title_index"]].str.strip()

    raw_features = [df.iloc[:, col].str.strip() for col in range(genre_end, df.shape[1])]
    has_features = np.column_stack([(col != "").to_numpy() for col in raw_features]).any(axis=1)
    features = np.column_stack(
        [pd.to_numeric(col, errors="coerce").fillna(0.0).to_numpy(dtype=np.float64) for col in raw_features]
    )

    if len(genre_names):
        genre_flags = np.column_stack(
            [df.iloc[:, col].str.strip().eq("1").to_numpy() for col in range(genre_start, genre_end)]
        )

    items: Dict[int, ItemFeatures] = {}
    for row in range(len(df)):
        line_no = row + 2  # 1-based, after the header
        raw_id = ids.iat[row]
        if pd.isna(raw_id) or raw_id <= 0 or raw_id != int(raw_id):
            issues.append(f"Invalid ID at line {line_no}: {df.iat[row, FEATURE_STORE['id_index']]!r}")
            continue
        item_id = int(raw_id)

        if not has_features[row]:
            issues.append(f"No features found for manga ID {item_id} at line {line_no}")
            continue

        average_score = float(scores.iat[row])
        if average_score < 0 or average_score > 100:
            issues.append(f"Invalid score for manga ID {item_id}: {average_score}")
            average_score = 0.0

        if item_id in items:
            issues.append(f"Duplicate manga ID {item_id} at line {line_no}, keeping the later row")

        vector = features[row].copy()
        vector.setflags(write=False)
        items[item_id] = ItemFeatures(
            id=item_id,
            title=titles.iat[row] or f"Unknown Title {item_id}",
            average_score=average_score,
            genres=frozenset(genre_names[genre_flags[row]].tolist()) if len(genre_names) else frozenset(),
            features=vector,
        )

    if issues:
        logger.warning(f"Found {len(issues)} validation issues during initialization")
        logger.warning(f"First few issues: {issues[:FEATURE_STORE['max_logged_issues']]}")

    return items, issues


# ===================================================================
# Loading with bounded retry
# ===================================================================
class FeatureStoreLoad(NamedTuple):
    """Outcome of load_feature_store: exactly one of store / error is set."""

    store: Optional[FeatureStore]
    error: Optional[Exception]
    attempts: int

    @property
    def ok(self) -> bool:
        return self.store is not None


def load_feature_store(
    reader: Callable[[], str],
    attempts: int = FEATURE_STORE["load_attempts"],
    backoff_seconds: float = FEATURE_STORE["retry_backoff_seconds"],
    sleep: Callable[[float], None] = time.sleep,
) -> FeatureStoreLoad:
    """
    Read and parse the feature dataset, retrying transient read failures.

    Read failures (OSError, CollaboratorError) are retried up to `attempts` times
    with a fixed backoff. A dataset that reads but does not parse is not retried.
    """
    last_error: Optional[Exception] = None
    for attempt in range(1, attempts + 1):
        try:
            text = reader()
        except (OSError, CollaboratorError) as e:
            last_error = e
            logger.warning(f"Feature dataset read failed (attempt {attempt}/{attempts}): {e}")
            if attempt < attempts:
                sleep(backoff_seconds)
            continue

        try:
            store = FeatureStore.from_csv_text(text)
        except ConfigError as e:
            logger.error(f"Feature dataset is unusable: {e}")
            return FeatureStoreLoad(store=None, error=e, attempts=attempt)

        logger.info(f"Feature store loaded on attempt {attempt}")
        return FeatureStoreLoad(store=store, error=None, attempts=attempt)

    error = ConfigError(f"Failed to read feature dataset after {attempts} attempts: {last_error}")
    logger.error(str(error))
    return FeatureStoreLoad(store=None, error=error, attempts=attempts)
