"""
Manga recommendation engine components.
Explicitly constructed service objects; no module-level state.
"""

from .data_models import (
    DEFAULT_CONFIG,
    ItemFeatures,
    RecommendationRequest,
    RecommenderConfig,
    UserInteraction,
    UserProfile,
    merge_config,
)
from .feature_store import FeatureStore, FeatureStoreLoad, load_feature_store
from .content_based import ContentBasedScorer
from .collaborative import CollaborativeScorer
from .cache import RecommendationCache, make_signature
from .orchestrator import FeatureStoreCatalog, RecommendationOrchestrator, Scorer

__all__ = [
    "DEFAULT_CONFIG",
    "ItemFeatures",
    "RecommendationRequest",
    "RecommenderConfig",
    "UserInteraction",
    "UserProfile",
    "merge_config",
    "FeatureStore",
    "FeatureStoreLoad",
    "load_feature_store",
    "ContentBasedScorer",
    "CollaborativeScorer",
    "RecommendationCache",
    "make_signature",
    "FeatureStoreCatalog",
    "RecommendationOrchestrator",
    "Scorer",
]
