"""
Recommendation orchestrator that coordinates content-based and collaborative scoring.
Content-based scoring always runs; collaborative scores are blended in when requested.
"""

import time
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set

import numpy as np

from common.constants import HYBRID, PATHS
from common.errors import CollaboratorError, NoMatchError, NotFoundError
from common.helpers import normalize_scores
from common.logging import log_recommendation_summary
from common.utils import setup_logging

from .cache import RecommendationCache, make_signature
from .collaborative import CollaborativeScorer
from .content_based import ContentBasedScorer
from .data_models import CatalogLookup, RecommendationRequest, RecommendationResponse, ScoredItem, UserInteraction
from .feature_store import FeatureStore

logger = setup_logging(__name__, PATHS["app_log_file"])


class Scorer(Protocol):
    source: str

    def score(self, request: RecommendationRequest, exclude_ids: Iterable[int], limit: int) -> List[ScoredItem]:
        ...


class FeatureStoreCatalog:
    """Catalogue lookup that hydrates from the feature store when no external catalogue is wired in."""

    def __init__(self, feature_store: FeatureStore):
        self.feature_store = feature_store

    def get_item_by_id(self, item_id: int) -> Dict[str, Any]:
        item = self.feature_store.get(item_id)
        if item is None:
            raise CollaboratorError(f"Manga {item_id} not found in catalogue")
        return {
            "id": item.id,
            "title": item.title,
            "cover_image": None,
            "description": "",
            "genres": sorted(item.genres),
            "average_score": item.average_score,
            "status": None,
            "creators": [],
        }


class RecommendationOrchestrator:
    """Public entry point: cache check, exclusions, scoring, blending, filtering, hydration."""

    def __init__(
        self,
        feature_store: FeatureStore,
        content_scorer: Optional[Scorer] = None,
        collaborative_scorer: Optional[CollaborativeScorer] = None,
        cache: Optional[RecommendationCache] = None,
        catalog: Optional[CatalogLookup] = None,
        content_weight: float = HYBRID["content_weight"],
        collaborative_weight: float = HYBRID["collaborative_weight"],
        norm: str = HYBRID["norm"],
        norm_metadata: Optional[float] = HYBRID["norm_metadata"],
        candidate_multiplier: int = HYBRID["candidate_multiplier"],
    ):
        self.feature_store = feature_store
        self.content_scorer = content_scorer if content_scorer is not None else ContentBasedScorer(feature_store)
        self.collaborative_scorer = collaborative_scorer
        self.cache = cache if cache is not None else RecommendationCache()
        self.catalog = catalog if catalog is not None else FeatureStoreCatalog(feature_store)
        self.content_weight = content_weight
        self.collaborative_weight = collaborative_weight
        self.norm = norm
        self.norm_metadata = norm_metadata
        self.candidate_multiplier = candidate_multiplier

    # ===================================================================
    # Outbound operations
    # ===================================================================
    def get_recommendations(self, request: RecommendationRequest) -> RecommendationResponse:
        started = time.perf_counter()

        if request.refresh:
            self.cache.clear_history(request.user_id)

        signature = self.signature_for(request)
        cached = self.cache.get(request.user_id, signature)
        if cached is not None:
            timing_ms = (time.perf_counter() - started) * 1000
            logger.info(f"Cache hit for user {request.user_id}")
            return {
                "items": [dict(item) for item in cached["items"]],
                "has_more": cached["has_more"],
                "timing_ms": timing_ms,
                "source": "cache",
            }

        # Never recommend excluded, already shown, or already listed manga
        exclude: Set[int] = set(request.exclude_ids)
        exclude.update(self.cache.get_history(request.user_id))
        exclude.update(request.rated_ids)
        logger.info(f"Excluding {len(exclude)} items (requested + history + listed)")

        candidates = self._score_candidates(request, exclude)
        survivors = [c for c in candidates if self._passes_filters(c, request)]
        logger.info(f"{len(survivors)} of {len(candidates)} candidates passed filters")
        if not survivors:
            raise NoMatchError("No recommendations match the requested filters")

        survivors.sort(key=lambda c: (-c["score"], c["item_id"]))
        items, consumed = self._hydrate(survivors, request.limit)
        if not items:
            raise NoMatchError("No recommendations could be loaded from the catalogue")

        has_more = consumed < len(survivors)
        self.cache.set(request.user_id, signature, {"items": items, "has_more": has_more})
        self.cache.add_to_history(request.user_id, [item["id"] for item in items])

        timing_ms = (time.perf_counter() - started) * 1000
        log_recommendation_summary(logger, request.user_id, items, "fresh", timing_ms)
        return {
            "items": [dict(item) for item in items],
            "has_more": has_more,
            "timing_ms": timing_ms,
            "source": "fresh",
        }

    def clear_history(self, user_id: str) -> Dict[str, bool]:
        self.cache.clear_history(user_id)
        return {"success": True}

    def get_user_similarity_info(self, user_id: str) -> Dict[str, Any]:
        if self.collaborative_scorer is None or not self.collaborative_scorer.has_user(user_id):
            raise NotFoundError(f"User {user_id} has no collaborative interaction data")
        return self.collaborative_scorer.similarity_info(user_id)

    def update_user_interactions(self, user_id: str, items: Iterable[UserInteraction]) -> None:
        if self.collaborative_scorer is not None:
            self.collaborative_scorer.update_user_interactions(user_id, items)

    def signature_for(self, request: RecommendationRequest) -> str:
        return make_signature(
            limit=request.limit,
            exclude_ids=request.exclude_ids,
            min_score=request.min_score,
            include_genres=request.include_genres,
            exclude_genres=request.exclude_genres,
            use_collaborative=request.use_collaborative and self.collaborative_scorer is not None,
            config=request.config.to_dict(),
            profile=[sorted(request.profile.favorite_genres), request.profile.experience_level],
            interactions=sorted(
                (i.item_id, i.like_status.value, i.reading_status.value) for i in request.interactions
            ),
        )

    # ===================================================================
    # Scoring
    # ===================================================================
    def _score_candidates(self, request: RecommendationRequest, exclude: Set[int]) -> List[ScoredItem]:
        pool = request.limit * self.candidate_multiplier

        content = self.content_scorer.score(request, exclude, pool)
        logger.info(f"Content scorer returned {len(content)} items")

        collaborative: List[ScoredItem] = []
        if request.use_collaborative and self.collaborative_scorer is not None:
            # only items neighbors rated positively are candidates
            collaborative = [
                c
                for c in self.collaborative_scorer.score(request, exclude, pool)
                if c["score"] > 0 and c["item_id"] in self.feature_store
            ]
            logger.info(f"Collaborative scorer returned {len(collaborative)} catalogue items")

        if not collaborative:
            return content
        if not content:
            return self._weighted(collaborative, 1.0)
        return self._blend(content, collaborative)

    def _blend(self, content: List[ScoredItem], collaborative: List[ScoredItem]) -> List[ScoredItem]:
        """Normalize each scorer's output and sum the weighted contributions by item id."""
        merged: Dict[int, ScoredItem] = {}
        for candidates, weight in ((content, self.content_weight), (collaborative, self.collaborative_weight)):
            for candidate in self._weighted(candidates, weight):
                current = merged.get(candidate["item_id"])
                if current is None:
                    merged[candidate["item_id"]] = candidate
                    continue
                current["score"] += candidate["score"]
                current["source"] = "hybrid"
                for key in ("match_details", "neighbor_count"):
                    if key in candidate:
                        current[key] = candidate[key]
        return list(merged.values())

    def _weighted(self, candidates: List[ScoredItem], weight: float) -> List[ScoredItem]:
        scores = np.array([c["score"] for c in candidates], dtype=np.float64)
        normalized = normalize_scores(scores, self.norm, self.norm_metadata) * weight
        return [dict(c, score=float(s)) for c, s in zip(candidates, normalized)]

    def _passes_filters(self, candidate: ScoredItem, request: RecommendationRequest) -> bool:
        if request.min_score is not None and candidate["score"] < request.min_score:
            return False
        if request.include_genres or request.exclude_genres:
            item = self.feature_store.get(candidate["item_id"])
            genres = item.genres if item is not None else frozenset()
            if request.include_genres and not genres & request.include_genres:
                return False
            if genres & request.exclude_genres:
                return False
        return True

    def _hydrate(self, survivors: List[ScoredItem], limit: int):
        """Attach display metadata; a failed lookup drops that candidate and the next one moves up."""
        items: List[Dict[str, Any]] = []
        consumed = 0
        for candidate in survivors:
            if len(items) >= limit:
                break
            consumed += 1
            try:
                details = self.catalog.get_item_by_id(candidate["item_id"])
            except Exception as e:
                logger.warning(f"Dropping manga {candidate['item_id']}: catalogue lookup failed: {e}")
                continue

            record = dict(details)
            record["id"] = candidate["item_id"]
            record["score"] = candidate["score"]
            record["source"] = candidate.get("source", "content")
            record["match_details"] = candidate.get("match_details")
            record["neighbor_count"] = candidate.get("neighbor_count")
            items.append(record)
        return items, consumed
