import traceback
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from common.constants import PATHS
from common.errors import (
    CollaboratorError,
    ConfigError,
    InternalError,
    NoMatchError,
    NotFoundError,
    RecommendationError,
    ValidationError,
)
from common.utils import setup_logging
from server.recommendation_service import RecommendationService
from server.schemas import (
    ClearHistoryResponse,
    MangaDetails,
    ProfileIn,
    RecommendRequest,
    RecommendResponse,
    SimilarityInfoResponse,
    UpdateInteractionsRequest,
    UpdateInteractionsResponse,
)
from server.storage import Storage

logger = setup_logging(__name__, PATHS["app_log_file"])

STATUS_CODES = {
    ConfigError: 503,
    ValidationError: 422,
    NotFoundError: 404,
    NoMatchError: 404,
    CollaboratorError: 502,
    InternalError: 500,
}


def _to_http_error(route: str, error: Exception) -> HTTPException:
    """Translate engine errors into HTTP errors; anything unexpected becomes a 500."""
    if isinstance(error, RecommendationError):
        status_code = next((code for cls, code in STATUS_CODES.items() if isinstance(error, cls)), 500)
        if status_code >= 500:
            logger.error(f"ERROR in {route}: {error.message}\n{traceback.format_exc()}")
        else:
            logger.info(f"{route} rejected ({error.code}): {error.message}")
        return HTTPException(status_code=status_code, detail=error.to_dict())

    logger.error(f"ERROR in {route}: {str(error)}\n{traceback.format_exc()}")
    return HTTPException(status_code=500, detail={"code": "INTERNAL_ERROR", "message": str(error)})


def create_app(service: Optional[RecommendationService] = None) -> FastAPI:
    app = FastAPI(title="Manga Recommender API", version="0.1.0")

    # Add CORS for local dev
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if service is None:
        service = RecommendationService(storage=Storage(PATHS["database"]))
    app.state.service = service

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "recommendations_ready": service.ready,
            "error": service.init_error,
        }

    @app.get("/recommendation/status")
    def recommendation_status():
        """Report readiness of the feature store and interaction matrix."""
        return service.status()

    @app.post("/recommendation/reload")
    def reload_engine():
        """Reload the feature dataset and all stored interactions."""
        service.reinitialize()
        return service.status()

    @app.post("/recommend", response_model=RecommendResponse)
    def recommend(payload: RecommendRequest):
        try:
            result = service.recommend(
                user_id=payload.user_id,
                interactions=[i.model_dump() for i in payload.interactions] if payload.interactions is not None else None,
                profile=payload.profile.model_dump() if payload.profile is not None else None,
                config=payload.config.overrides() if payload.config is not None else None,
                exclude_ids=payload.exclude_ids,
                limit=payload.limit,
                min_score=payload.min_score,
                include_genres=payload.include_genres,
                exclude_genres=payload.exclude_genres,
                use_collaborative=payload.use_collaborative,
                refresh=payload.refresh,
            )
            return RecommendResponse(**result)
        except Exception as e:
            raise _to_http_error("/recommend", e)

    @app.delete("/recommend/history/{user_id}", response_model=ClearHistoryResponse)
    def clear_history(user_id: str):
        try:
            return ClearHistoryResponse(**service.clear_history(user_id))
        except Exception as e:
            raise _to_http_error("/recommend/history", e)

    @app.get("/users/{user_id}/similarity", response_model=SimilarityInfoResponse)
    def user_similarity(user_id: str):
        """Debug view of a user's collaborative neighbors."""
        try:
            return SimilarityInfoResponse(**service.user_similarity_info(user_id))
        except Exception as e:
            raise _to_http_error("/users/similarity", e)

    @app.put("/users/{user_id}/interactions", response_model=UpdateInteractionsResponse)
    def update_interactions(user_id: str, payload: UpdateInteractionsRequest):
        try:
            parsed = service.update_user_interactions(user_id, [i.model_dump() for i in payload.items])
            return UpdateInteractionsResponse(status="ok", count=len(parsed))
        except Exception as e:
            raise _to_http_error("/users/interactions", e)

    @app.put("/users/{user_id}/profile", response_model=ProfileIn)
    def update_profile(user_id: str, payload: ProfileIn):
        try:
            profile = service.save_profile(user_id, payload.model_dump())
            return ProfileIn(favorite_genres=sorted(profile.favorite_genres), experience_level=profile.experience_level)
        except Exception as e:
            raise _to_http_error("/users/profile", e)

    @app.get("/manga/{item_id}", response_model=MangaDetails)
    def get_manga_details(item_id: int):
        try:
            return MangaDetails(**service.get_manga_details(item_id))
        except Exception as e:
            raise _to_http_error(f"/manga/{item_id}", e)

    @app.get("/features/stats")
    def feature_stats():
        try:
            return service.feature_stats()
        except Exception as e:
            raise _to_http_error("/features/stats", e)

    return app
