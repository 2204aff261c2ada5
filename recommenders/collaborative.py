"""
Collaborative filtering based recommendations.
Recommends manga liked by behaviorally similar users (user-based nearest neighbors).
"""

import threading
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, TypedDict

import numpy as np
import scipy.sparse as sp

from common.constants import COLLABORATIVE, PATHS
from common.logging import log_interaction_matrix_summary
from common.utils import setup_logging

from .data_models import (
    InteractionSource,
    LikeStatus,
    MangaSimilarity,
    RecommendationRequest,
    ScoredItem,
    UserInteraction,
)

logger = setup_logging(__name__, PATHS["app_log_file"])


class UserSimilarity(TypedDict):
    user_id: str
    similarity: float


class _InteractionMatrix:
    """Sparse snapshot of the live interaction map, rebuilt after every write."""

    def __init__(self, interactions: Mapping[str, Mapping[int, UserInteraction]], rating_value):
        self.user_ids = list(interactions.keys())
        self.user_index = {u: i for i, u in enumerate(self.user_ids)}
        item_ids = sorted({item_id for items in interactions.values() for item_id in items})
        self.item_index = {item_id: j for j, item_id in enumerate(item_ids)}

        rows, cols, values = [], [], []
        for user_id, items in interactions.items():
            for item_id, interaction in items.items():
                rows.append(self.user_index[user_id])
                cols.append(self.item_index[item_id])
                values.append(rating_value(interaction))

        shape = (len(self.user_ids), len(item_ids))
        # values may legitimately be 0 (no like status), so "rated" is tracked separately
        self.values = sp.csr_matrix((values, (rows, cols)), shape=shape, dtype=np.float64)
        self.rated = sp.csr_matrix((np.ones(len(values)), (rows, cols)), shape=shape, dtype=np.float64)
        self.squared = self.values.multiply(self.values).tocsr()
        self.item_user_counts = np.asarray(self.rated.sum(axis=0)).ravel()

    def similarities_for(self, user_id: str, min_common_items: int) -> np.ndarray:
        """Cosine similarity of one user to every user, restricted to commonly rated items."""
        t = self.user_index[user_id]
        target_values = self.values[t]
        target_rated = self.rated[t]

        dots = np.asarray((self.values @ target_values.T).todense()).ravel()
        common = np.asarray((self.rated @ target_rated.T).todense()).ravel()
        other_norm_sq = np.asarray((self.squared @ target_rated.T).todense()).ravel()
        target_norm_sq = np.asarray((self.rated @ self.squared[t].T).todense()).ravel()

        denominator = np.sqrt(other_norm_sq * target_norm_sq)
        valid = (common >= min_common_items) & (denominator > 0)
        similarities = np.zeros(len(self.user_ids), dtype=np.float64)
        similarities[valid] = dots[valid] / denominator[valid]
        similarities[t] = 0.0
        return np.clip(similarities, -1.0, 1.0)


class CollaborativeScorer:
    """
    Scorer strategy over a live user -> {item -> interaction} map.

    All reads and writes go through one re-entrant lock so a reader never
    observes a half-updated matrix.
    """

    source = "collaborative"

    def __init__(
        self,
        min_similarity: float = COLLABORATIVE["min_similarity"],
        min_common_items: int = COLLABORATIVE["min_common_items"],
        like_value: float = COLLABORATIVE["like_value"],
        reading_multipliers: Optional[Mapping[str, float]] = None,
    ):
        self.min_similarity = min_similarity
        self.min_common_items = min_common_items
        self.like_value = like_value
        self.reading_multipliers = dict(reading_multipliers or COLLABORATIVE["reading_multipliers"])

        self._lock = threading.RLock()
        self._interactions: Dict[str, Dict[int, UserInteraction]] = {}
        self._similarity_cache: Dict[str, List[UserSimilarity]] = {}
        self._matrix: Optional[_InteractionMatrix] = None

    # ===================================================================
    # State updates
    # ===================================================================
    def update_user_interactions(self, user_id: str, items: Iterable[UserInteraction]) -> None:
        """
        Replace one user's row entirely and drop every cached neighbor list.
        An empty list removes the user from the matrix.
        """
        row = {item.item_id: item for item in items}
        if not row:
            self.remove_user(user_id)
            return
        with self._lock:
            self._interactions[user_id] = row
            self._similarity_cache = {}
            self._matrix = None
        logger.debug(f"[CF] Updated {len(row)} interactions for user {user_id}")

    def remove_user(self, user_id: str) -> None:
        """Drop the user; every cached neighbor list may name them, so all are dropped."""
        with self._lock:
            self._interactions.pop(user_id, None)
            self._similarity_cache = {}
            self._matrix = None
        logger.debug(f"[CF] Removed user {user_id}")

    def load_all(self, source: InteractionSource) -> int:
        """Clear all state and bulk-load every user's interactions from the source."""
        rows: Dict[str, Dict[int, UserInteraction]] = {}
        for raw in source.load_all_user_interactions():
            interaction = UserInteraction.from_raw(raw)
            rows.setdefault(str(raw["user_id"]), {})[interaction.item_id] = interaction

        with self._lock:
            self._interactions = rows
            self._similarity_cache = {}
            self._matrix = None
            matrix = self._get_matrix()

        log_interaction_matrix_summary(logger, matrix)
        return len(rows)

    # ===================================================================
    # Similarity
    # ===================================================================
    def rating_value(self, interaction: UserInteraction) -> float:
        """Scalar rating: signed like value scaled by how far the user got through the series."""
        if interaction.like_status == LikeStatus.LIKE:
            base = self.like_value
        elif interaction.like_status == LikeStatus.DISLIKE:
            base = -self.like_value
        else:
            return 0.0
        return base * self.reading_multipliers.get(interaction.reading_status.value, 0.0)

    def user_similarity(self, user_a: str, user_b: str) -> float:
        """Cosine similarity between two users over their common items; 0 if overlap is too small."""
        with self._lock:
            items_a = self._interactions.get(user_a)
            items_b = self._interactions.get(user_b)
            if not items_a or not items_b:
                return 0.0

            common = [item_id for item_id in items_a if item_id in items_b]
            if len(common) < self.min_common_items:
                return 0.0

            a = np.array([self.rating_value(items_a[i]) for i in common])
            b = np.array([self.rating_value(items_b[i]) for i in common])

        denominator = np.linalg.norm(a) * np.linalg.norm(b)
        if denominator == 0:
            return 0.0
        return float(np.clip(np.dot(a, b) / denominator, -1.0, 1.0))

    def find_similar_users(self, user_id: str) -> List[UserSimilarity]:
        """Neighbors above min_similarity, most similar first. Cached until the user is updated."""
        with self._lock:
            cached = self._similarity_cache.get(user_id)
            if cached is not None:
                return cached
            if user_id not in self._interactions:
                return []

            matrix = self._get_matrix()
            similarities = matrix.similarities_for(user_id, self.min_common_items)
            neighbors = [
                {"user_id": matrix.user_ids[i], "similarity": float(similarities[i])}
                for i in np.flatnonzero(similarities > self.min_similarity)
            ]
            neighbors.sort(key=lambda n: (-n["similarity"], n["user_id"]))
            self._similarity_cache[user_id] = neighbors

        logger.debug(f"[CF] User {user_id} has {len(neighbors)} similar users")
        return neighbors

    # ===================================================================
    # Recommendations
    # ===================================================================
    def recommend(self, user_id: str, limit: int, exclude_ids: Optional[Iterable[int]] = None) -> List[MangaSimilarity]:
        """Mean similarity-weighted neighbor rating per unseen item. Unknown users get an empty list."""
        exclude = set(exclude_ids or ())
        with self._lock:
            user_items = self._interactions.get(user_id)
            if user_items is None:
                logger.debug(f"[CF] Cold start for user {user_id}, no interactions")
                return []

            accumulated: Dict[int, Tuple[float, int]] = {}
            for neighbor in self.find_similar_users(user_id):
                neighbor_items = self._interactions.get(neighbor["user_id"])
                if neighbor_items is None:
                    continue
                similarity = neighbor["similarity"]
                for item_id, interaction in neighbor_items.items():
                    if item_id in user_items or item_id in exclude:
                        continue
                    score, count = accumulated.get(item_id, (0.0, 0))
                    accumulated[item_id] = (score + self.rating_value(interaction) * similarity, count + 1)

            matrix = self._get_matrix()
            recommendations: List[MangaSimilarity] = [
                {
                    "item_id": item_id,
                    "score": score / count,
                    "neighbor_count": int(matrix.item_user_counts[matrix.item_index[item_id]]),
                }
                for item_id, (score, count) in accumulated.items()
            ]

        recommendations.sort(key=lambda r: (-r["score"], r["item_id"]))
        logger.debug(f"[CF] {len(recommendations)} candidate items for user {user_id}")
        return recommendations[:limit]

    def score(self, request: RecommendationRequest, exclude_ids: Iterable[int], limit: int) -> List[ScoredItem]:
        return [
            {
                "item_id": r["item_id"],
                "score": r["score"],
                "source": self.source,
                "neighbor_count": r["neighbor_count"],
            }
            for r in self.recommend(request.user_id, limit, exclude_ids)
        ]

    # ===================================================================
    # Diagnostics
    # ===================================================================
    def has_user(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._interactions

    def user_count(self) -> int:
        with self._lock:
            return len(self._interactions)

    def similarity_info(self, user_id: str) -> Dict:
        with self._lock:
            return {
                "similar_users": list(self.find_similar_users(user_id)),
                "total_users": len(self._interactions),
                "user_manga_count": len(self._interactions.get(user_id, {})),
            }

    def _get_matrix(self) -> _InteractionMatrix:
        # caller holds the lock
        if self._matrix is None:
            self._matrix = _InteractionMatrix(self._interactions, self.rating_value)
        return self._matrix
