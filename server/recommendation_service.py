import sqlite3
import threading
import time
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional

from common.constants import FEATURE_STORE, PATHS, RECOMMEND
from common.errors import ConfigError, NotFoundError, ValidationError
from common.utils import read_text_file, setup_logging
from recommenders import (
    CollaborativeScorer,
    ContentBasedScorer,
    RecommendationCache,
    RecommendationOrchestrator,
    RecommendationRequest,
    UserInteraction,
    UserProfile,
    load_feature_store,
)
from server.storage import Storage

logger = setup_logging(__name__, PATHS["app_log_file"])


class RecommendationService:
    """Service for generating manga recommendations."""

    def __init__(
        self,
        storage: Optional[Storage] = None,
        dataset_reader: Optional[Callable[[], str]] = None,
        catalog=None,
        cache: Optional[RecommendationCache] = None,
        load_attempts: int = FEATURE_STORE["load_attempts"],
        retry_backoff_seconds: float = FEATURE_STORE["retry_backoff_seconds"],
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Load the feature store and interaction matrix once at startup, build the orchestrator."""
        self.storage = storage
        self.dataset_reader = dataset_reader or (lambda: read_text_file(PATHS["feature_dataset"]))
        self.catalog = catalog
        self.cache = cache
        self.load_attempts = load_attempts
        self.retry_backoff_seconds = retry_backoff_seconds
        self.sleep = sleep

        # one in-flight scoring call per user; cache and history are read-modify-write
        self._user_locks = defaultdict(threading.Lock)
        self._user_locks_guard = threading.Lock()

        self._initialize()

    def _initialize(self):
        logger.info("Initializing RecommendationService...")
        self.ready: bool = False
        self.init_error: Optional[str] = None
        self.feature_store = None
        self.collaborative = None
        self.orchestrator = None

        result = load_feature_store(
            self.dataset_reader,
            attempts=self.load_attempts,
            backoff_seconds=self.retry_backoff_seconds,
            sleep=self.sleep,
        )
        if not result.ok:
            self.init_error = str(result.error)
            logger.warning(f"Feature store unavailable after {result.attempts} attempt(s): {self.init_error}")
            return

        self.feature_store = result.store
        self.collaborative = CollaborativeScorer()
        if self.storage is not None:
            try:
                n_users = self.collaborative.load_all(self.storage)
                logger.info(f"Loaded interactions for {n_users} users")
            except (sqlite3.Error, ValidationError) as e:
                logger.error(f"Failed to load user interactions, collaborative scoring starts empty: {e}")

        self.orchestrator = RecommendationOrchestrator(
            feature_store=self.feature_store,
            content_scorer=ContentBasedScorer(self.feature_store),
            collaborative_scorer=self.collaborative,
            cache=self.cache if self.cache is not None else RecommendationCache(),
            catalog=self.catalog,
        )

        logger.info("✓ RecommendationService initialized successfully")
        self.ready = True

    def reinitialize(self):
        """Re-attempt to initialize after the dataset may have become available."""
        logger.info("Attempting to reinitialize RecommendationService...")
        self._initialize()

    def status(self) -> Dict[str, Any]:
        """Return readiness status and any initialization errors."""
        return {
            "ready": self.ready,
            "error": self.init_error,
            "feature_store": self.feature_store.stats() if self.feature_store is not None else None,
            "collaborative_users": self.collaborative.user_count() if self.collaborative is not None else 0,
        }

    def _require_ready(self):
        if not self.ready:
            raise ConfigError(self.init_error or "Recommendation engine is not initialized")

    def _user_lock(self, user_id: str) -> threading.Lock:
        with self._user_locks_guard:
            return self._user_locks[user_id]

    # ===================================================================
    # Outbound operations
    # ===================================================================
    def recommend(
        self,
        user_id: str,
        interactions: Optional[Iterable[Any]] = None,
        profile: Optional[Any] = None,
        config: Optional[Dict[str, Any]] = None,
        exclude_ids: Iterable[int] = (),
        limit: int = RECOMMEND["k"],
        min_score: Optional[float] = None,
        include_genres: Iterable[str] = (),
        exclude_genres: Iterable[str] = (),
        use_collaborative: bool = RECOMMEND["use_collaborative"],
        refresh: bool = False,
    ):
        self._require_ready()

        if interactions is None:
            interactions, stored_profile = self._load_user(user_id)
            profile = stored_profile if profile is None else profile
        elif profile is None and self.storage is not None:
            profile = self.storage.get_profile(user_id)

        request = RecommendationRequest.build(
            user_id=user_id,
            interactions=interactions,
            profile=profile,
            config=config,
            exclude_ids=exclude_ids,
            limit=limit,
            min_score=min_score,
            include_genres=include_genres,
            exclude_genres=exclude_genres,
            use_collaborative=use_collaborative,
            refresh=refresh,
        )
        logger.info(f"Generating {request.limit} recommendations for user={user_id}, hybrid={request.use_collaborative}")

        with self._user_lock(request.user_id):
            return self.orchestrator.get_recommendations(request)

    def clear_history(self, user_id: str) -> Dict[str, bool]:
        self._require_ready()
        with self._user_lock(user_id):
            return self.orchestrator.clear_history(user_id)

    def user_similarity_info(self, user_id: str) -> Dict[str, Any]:
        self._require_ready()
        return self.orchestrator.get_user_similarity_info(user_id)

    def update_user_interactions(self, user_id: str, items: Iterable[Any]) -> List[UserInteraction]:
        """Replace the user's list in storage and in the collaborative matrix."""
        self._require_ready()
        parsed = [i if isinstance(i, UserInteraction) else UserInteraction.from_raw(i) for i in items]
        if self.storage is not None:
            self.storage.replace_user_interactions(
                user_id,
                [
                    {"item_id": i.item_id, "like_status": i.like_status.value, "reading_status": i.reading_status.value}
                    for i in parsed
                ],
            )
        self.orchestrator.update_user_interactions(user_id, parsed)
        logger.info(f"Updated list for user {user_id}: {len(parsed)} items")
        return parsed

    def save_profile(self, user_id: str, profile: Any) -> UserProfile:
        parsed = profile if isinstance(profile, UserProfile) else UserProfile.from_raw(profile)
        if self.storage is None:
            raise ConfigError("No storage configured for user profiles")
        self.storage.save_profile(user_id, parsed.favorite_genres, parsed.experience_level)
        return parsed

    def get_manga_details(self, item_id: int) -> Dict[str, Any]:
        """Retrieve feature-store details for a specific manga."""
        self._require_ready()
        item = self.feature_store.get(item_id)
        if item is None:
            logger.warning(f"Manga ID {item_id} not found in feature store")
            raise NotFoundError(f"Manga with ID {item_id} not found")
        return {
            "id": item.id,
            "title": item.title,
            "average_score": item.average_score,
            "genres": sorted(item.genres),
        }

    def feature_stats(self) -> Dict[str, float]:
        self._require_ready()
        return self.feature_store.stats()

    def _load_user(self, user_id: str):
        if self.storage is None:
            raise ValidationError("interactions and profile are required when no storage is configured")

        interactions = self.storage.get_user_interactions(user_id)
        profile = self.storage.get_profile(user_id)
        if not interactions and profile is None:
            raise NotFoundError(f"User {user_id} not found")
        return interactions, profile or {}
