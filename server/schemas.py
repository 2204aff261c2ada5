from typing import Literal, Optional
from pydantic import BaseModel, Field


class InteractionIn(BaseModel):
    item_id: int = Field(..., gt=0)
    like_status: Literal["like", "dislike", "none"] = "none"
    reading_status: Literal["reading", "completed", "plan-to-read"] = "plan-to-read"


class ProfileIn(BaseModel):
    favorite_genres: list[str] = Field(default_factory=list)
    experience_level: Literal["new", "intermediate", "experienced"] = "intermediate"


class ExperienceWeights(BaseModel):
    new: Optional[float] = None
    intermediate: Optional[float] = None
    experienced: Optional[float] = None


class RecommenderConfigIn(BaseModel):
    """Partial overrides merged over the engine defaults."""
    min_similarity: Optional[float] = Field(None, ge=0.0, le=1.0)
    weight_likes: Optional[float] = None
    weight_dislikes: Optional[float] = None
    default_weight: Optional[float] = None
    genre_importance: Optional[float] = Field(None, ge=0.0)
    theme_importance: Optional[float] = Field(None, ge=0.0)
    score_importance: Optional[float] = Field(None, ge=0.0)
    user_experience_weight: Optional[ExperienceWeights] = None
    max_results: Optional[int] = Field(None, ge=1)

    def overrides(self) -> dict:
        data = self.model_dump(exclude_none=True)
        if "user_experience_weight" in data:
            data["user_experience_weight"] = {k: v for k, v in data["user_experience_weight"].items() if v is not None}
        return data


class RecommendRequest(BaseModel):
    """
    Recommendation request.

    interactions / profile: when omitted, the user's stored list and profile are used.
    refresh: clear the user's seen history and cached results before scoring.
    """
    user_id: str
    interactions: Optional[list[InteractionIn]] = None
    profile: Optional[ProfileIn] = None
    config: Optional[RecommenderConfigIn] = None
    exclude_ids: list[int] = Field(default_factory=list)
    limit: int = Field(default=10, ge=1, le=50)
    min_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    include_genres: list[str] = Field(default_factory=list)
    exclude_genres: list[str] = Field(default_factory=list)
    use_collaborative: bool = True
    refresh: bool = False


class MatchDetails(BaseModel):
    genre_match: float
    theme_match: float
    score_match: float
    overall_score: float


class MangaRecommendation(BaseModel):
    id: int
    title: str
    cover_image: Optional[str] = None
    description: str = ""
    genres: list[str]
    average_score: float
    status: Optional[str] = None
    creators: list[str] = Field(default_factory=list)
    score: float
    source: str
    match_details: Optional[MatchDetails] = None
    neighbor_count: Optional[int] = None


class RecommendResponse(BaseModel):
    items: list[MangaRecommendation]
    has_more: bool
    timing_ms: float
    source: Literal["cache", "fresh"]


class ClearHistoryResponse(BaseModel):
    success: bool


class SimilarUser(BaseModel):
    user_id: str
    similarity: float


class SimilarityInfoResponse(BaseModel):
    similar_users: list[SimilarUser]
    total_users: int
    user_manga_count: int


class UpdateInteractionsRequest(BaseModel):
    items: list[InteractionIn]


class UpdateInteractionsResponse(BaseModel):
    status: str
    count: int


class MangaDetails(BaseModel):
    """Feature-store details for a single manga."""
    id: int
    title: str
    average_score: float
    genres: list[str]
