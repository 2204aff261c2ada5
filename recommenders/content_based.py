"""
Content-based recommendations using item feature vectors.
Ranks unseen items by cosine similarity to a weighted profile built from the user's list.
"""

from typing import Iterable, List, Optional, Sequence

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity

from common.constants import CONTENT_BASED, PATHS
from common.errors import InternalError, ValidationError
from common.helpers import overlap_ratio
from common.utils import setup_logging

from .data_models import (
    ItemFeatures,
    MatchDetails,
    RecommendationRequest,
    RecommenderConfig,
    ScoredItem,
    SimilarityResult,
    UserInteraction,
    UserProfile,
)
from .feature_store import FeatureStore

logger = setup_logging(__name__, PATHS["app_log_file"])


class ContentBasedScorer:
    """Scorer strategy backed by the feature store."""

    source = "content"

    def __init__(self, feature_store: FeatureStore, batch_size: int = CONTENT_BASED["batch_size"], theme_slice=None):
        self.feature_store = feature_store
        self.batch_size = batch_size
        start, stop = theme_slice or CONTENT_BASED["theme_slice"]
        self.theme_slice = slice(start, stop)

    def score(self, request: RecommendationRequest, exclude_ids: Iterable[int], limit: int) -> List[ScoredItem]:
        results = self.recommend(
            interactions=request.interactions,
            profile=request.profile,
            config=request.config,
            limit=limit,
            exclude_ids=exclude_ids,
        )
        return [
            {"item_id": r["id"], "score": r["score"], "source": self.source, "match_details": r["match_details"]}
            for r in results
        ]

    def recommend(
        self,
        interactions: Sequence[UserInteraction],
        profile: UserProfile,
        config: RecommenderConfig,
        limit: int,
        exclude_ids: Optional[Iterable[int]] = None,
    ) -> List[SimilarityResult]:
        """
        Generate content-based recommendations.

        Returns:
            Up to min(limit, config.max_results) results sorted by adjusted similarity,
            each carrying its genre / theme / score match breakdown.
        """
        if not interactions:
            raise ValidationError("User list is empty")

        valid = [i for i in interactions if i.item_id in self.feature_store]
        if not valid:
            raise ValidationError("No valid manga found in user list")
        logger.debug(f"[CB] Processing {len(valid)} of {len(interactions)} listed items")

        user_vector = self.build_user_profile(valid, config)
        exclude = np.array(sorted(set(exclude_ids or ())), dtype=np.int64)

        matrix = self.feature_store.matrix()
        ids = self.feature_store.ids_array()

        experience_weight = config.experience_weight(profile.experience_level)
        results: List[SimilarityResult] = []

        for start in range(0, len(ids), self.batch_size):
            batch_ids = ids[start : start + self.batch_size]
            batch = matrix[start : start + self.batch_size]

            keep = ~np.isin(batch_ids, exclude)
            if not keep.any():
                continue
            batch_ids, batch = batch_ids[keep], batch[keep]

            similarities = self.similarity(user_vector, batch)
            passing = similarities >= config.min_similarity
            if not passing.any():
                continue

            theme_matches = self._theme_matches(user_vector, batch[passing])
            for item_id, similarity, theme_match in zip(batch_ids[passing], similarities[passing], theme_matches):
                item = self.feature_store.get(int(item_id))
                results.append(
                    self._build_result(item, float(similarity), float(theme_match), profile, config, experience_weight)
                )

        logger.info(f"[CB] Found {len(results)} potential recommendations")

        if config.max_results is not None:
            limit = min(limit, config.max_results)
        results.sort(key=lambda r: (-r["score"], r["id"]))
        return results[:limit]

    def similarity(self, vector: np.ndarray, matrix: np.ndarray) -> np.ndarray:
        """Cosine similarity of one vector to each row of matrix; 0 where either norm is 0."""
        vector = np.asarray(vector, dtype=np.float64)
        matrix = np.atleast_2d(np.asarray(matrix, dtype=np.float64))
        if vector.shape[0] != matrix.shape[1]:
            logger.error(f"[CB] Vector dimension {vector.shape[0]} != feature dimension {matrix.shape[1]}")
            raise InternalError("Feature dimension mismatch between user profile and catalogue")
        return cosine_similarity(vector.reshape(1, -1), matrix).ravel()

    def build_user_profile(self, interactions: Sequence[UserInteraction], config: RecommenderConfig) -> np.ndarray:
        """Weighted mean of the listed items' vectors, weights keyed by like status."""
        weighted = np.zeros(self.feature_store.feature_dimension(), dtype=np.float64)
        total_weight = 0.0

        for interaction in interactions:
            item = self.feature_store.get(interaction.item_id)
            if item is None:
                continue
            if item.features.shape != weighted.shape:
                raise InternalError(f"Feature dimension mismatch for manga ID {item.id}")
            weight = config.item_weight(interaction.like_status)
            weighted += item.features * weight
            total_weight += abs(weight)

        if total_weight == 0:
            return weighted
        return weighted / total_weight

    def _theme_matches(self, user_vector: np.ndarray, batch: np.ndarray) -> np.ndarray:
        user_theme = user_vector[self.theme_slice]
        if user_theme.size == 0:
            return np.zeros(batch.shape[0])
        return cosine_similarity(user_theme.reshape(1, -1), batch[:, self.theme_slice]).ravel()

    def _build_result(
        self,
        item: ItemFeatures,
        similarity: float,
        theme_match: float,
        profile: UserProfile,
        config: RecommenderConfig,
        experience_weight: float,
    ) -> SimilarityResult:
        genre_match = overlap_ratio(item.genres, profile.favorite_genres)
        score_match = item.average_score / 100

        adjusted = similarity * experience_weight
        if config.genre_importance > 0:
            adjusted *= 1 + genre_match * config.genre_importance
        if config.theme_importance > 0:
            adjusted *= 1 + max(theme_match, 0.0) * config.theme_importance
        if config.score_importance > 0 and item.average_score != 0:
            adjusted *= 1 + score_match * config.score_importance
        adjusted = min(max(adjusted, 0.0), 1.0)

        details: MatchDetails = {
            "genre_match": genre_match,
            "theme_match": theme_match,
            "score_match": score_match,
            "overall_score": adjusted,
        }
        return {"id": item.id, "score": adjusted, "raw_similarity": similarity, "match_details": details}
