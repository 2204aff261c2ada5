"""
Type definitions for the recommendation engine.
Frozen dataclasses for engine inputs, TypedDicts for result records.
"""

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Protocol, Tuple, TypedDict

import numpy as np

from common.constants import DEFAULT_RECOMMENDER_CONFIG, RECOMMEND
from common.errors import ValidationError


class LikeStatus(str, Enum):
    LIKE = "like"
    DISLIKE = "dislike"
    NONE = "none"


class ReadingStatus(str, Enum):
    READING = "reading"
    COMPLETED = "completed"
    PLAN_TO_READ = "plan-to-read"


class ExperienceLevel(str, Enum):
    NEW = "new"
    INTERMEDIATE = "intermediate"
    EXPERIENCED = "experienced"


def _parse_enum(enum_cls, value, default):
    if value is None or value == "":
        return default
    if isinstance(value, enum_cls):
        return value
    try:
        # accepts "PLAN_TO_READ" as sent by the list collaborator
        return enum_cls(str(value).strip().lower().replace("_", "-"))
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {enum_cls.__name__} '{value}', expected one of: {allowed}")


@dataclass(frozen=True)
class ItemFeatures:
    """One catalogue item. Created once at feature store initialization."""

    id: int
    title: str
    average_score: float
    genres: FrozenSet[str]
    features: np.ndarray = field(repr=False, compare=False)


@dataclass(frozen=True)
class UserInteraction:
    item_id: int
    like_status: LikeStatus = LikeStatus.NONE
    reading_status: ReadingStatus = ReadingStatus.PLAN_TO_READ

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "UserInteraction":
        """Build from a loosely-typed mapping (storage row or API payload)."""
        item_id = raw.get("item_id", raw.get("manga_id", raw.get("mangaId")))
        try:
            item_id = int(item_id)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid item id: {item_id!r}")

        like_status = raw.get("like_status", raw.get("likeStatus"))
        reading_status = raw.get("reading_status", raw.get("readingStatus", raw.get("status")))
        return cls(
            item_id=item_id,
            like_status=_parse_enum(LikeStatus, like_status, LikeStatus.NONE),
            reading_status=_parse_enum(ReadingStatus, reading_status, ReadingStatus.PLAN_TO_READ),
        )


@dataclass(frozen=True)
class UserProfile:
    favorite_genres: FrozenSet[str] = frozenset()
    experience_level: str = ExperienceLevel.INTERMEDIATE.value

    @classmethod
    def from_raw(cls, raw: Optional[Mapping[str, Any]]) -> "UserProfile":
        if not raw:
            return cls()
        genres = raw.get("favorite_genres", raw.get("favoriteGenres")) or []
        level = raw.get("experience_level", raw.get("experience")) or ExperienceLevel.INTERMEDIATE.value
        return cls(favorite_genres=frozenset(genres), experience_level=str(level))


# ===================================================================
# Recommender configuration
# ===================================================================
@dataclass(frozen=True)
class RecommenderConfig:
    """
    Runtime scoring parameters for the content-based scorer.
    Never mutated by the engine; build variants with merge_config().
    """

    min_similarity: float  # floor below which a candidate is discarded (0-1)
    weight_likes: float
    weight_dislikes: float
    default_weight: float
    genre_importance: float
    theme_importance: float
    score_importance: float
    user_experience_weight: Mapping[str, float]
    max_results: Optional[int] = None

    def experience_weight(self, level: str) -> float:
        if level in self.user_experience_weight:
            return self.user_experience_weight[level]
        return self.user_experience_weight.get(ExperienceLevel.INTERMEDIATE.value, 1.0)

    def item_weight(self, like_status: LikeStatus) -> float:
        if like_status == LikeStatus.LIKE:
            return self.weight_likes
        if like_status == LikeStatus.DISLIKE:
            return self.weight_dislikes
        return self.default_weight

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["user_experience_weight"] = dict(self.user_experience_weight)
        return data


_CAMEL_KEYS = {
    "minSimilarity": "min_similarity",
    "weightLikes": "weight_likes",
    "weightDislikes": "weight_dislikes",
    "defaultWeight": "default_weight",
    "genreImportance": "genre_importance",
    "themeImportance": "theme_importance",
    "scoreImportance": "score_importance",
    "userExperienceWeight": "user_experience_weight",
    "maxResults": "max_results",
}

_NON_NEGATIVE = ("genre_importance", "theme_importance", "score_importance")


def _validate_config(config: RecommenderConfig) -> RecommenderConfig:
    if not 0.0 <= config.min_similarity <= 1.0:
        raise ValidationError(f"min_similarity must be within [0, 1], got {config.min_similarity}")
    for name in _NON_NEGATIVE:
        if getattr(config, name) < 0:
            raise ValidationError(f"{name} must be >= 0, got {getattr(config, name)}")
    missing = [level.value for level in ExperienceLevel if level.value not in config.user_experience_weight]
    if missing:
        raise ValidationError(f"user_experience_weight is missing levels: {missing}")
    if config.max_results is not None and config.max_results < 1:
        raise ValidationError(f"max_results must be positive, got {config.max_results}")
    return config


def _to_number(kind, key, value):
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Config option {key} must be numeric, got {value!r}")


def merge_config(defaults: RecommenderConfig, overrides: Optional[Mapping[str, Any]] = None) -> RecommenderConfig:
    """Return a new config with overrides applied over defaults. Pure; defaults are untouched."""
    if not overrides:
        return defaults

    known = {f.name for f in fields(RecommenderConfig)}
    changes = {}
    for key, value in overrides.items():
        name = _CAMEL_KEYS.get(key, key)
        if name not in known:
            raise ValidationError(f"Unknown config option: {key}")
        if value is None:
            continue
        if name == "user_experience_weight":
            if not isinstance(value, Mapping):
                raise ValidationError(f"Config option {key} must map experience levels to weights, got {value!r}")
            weights = dict(defaults.user_experience_weight)
            weights.update({str(k): _to_number(float, f"{key}.{k}", v) for k, v in value.items()})
            value = weights
        elif name == "max_results":
            value = _to_number(int, key, value)
        else:
            value = _to_number(float, key, value)
        changes[name] = value

    return _validate_config(replace(defaults, **changes))


DEFAULT_CONFIG = _validate_config(RecommenderConfig(**DEFAULT_RECOMMENDER_CONFIG))


# ===================================================================
# Result records
# ===================================================================
class MatchDetails(TypedDict):
    genre_match: float
    theme_match: float
    score_match: float
    overall_score: float


class SimilarityResult(TypedDict):
    """Content-based scoring output."""

    id: int
    score: float  # adjusted similarity, clamped to [0, 1]
    raw_similarity: float
    match_details: MatchDetails


class MangaSimilarity(TypedDict):
    """Collaborative scoring output."""

    item_id: int
    score: float
    neighbor_count: int


class ScoredItem(TypedDict, total=False):
    """Scorer-neutral candidate produced by any Scorer strategy."""

    item_id: int
    score: float
    source: str  # "content", "collaborative" or "hybrid"
    match_details: MatchDetails
    neighbor_count: int


class RecommendationResponse(TypedDict):
    items: List[Dict[str, Any]]
    has_more: bool
    timing_ms: float
    source: str  # "cache" or "fresh"


@dataclass(frozen=True)
class RecommendationRequest:
    user_id: str
    interactions: Tuple[UserInteraction, ...]
    profile: UserProfile = UserProfile()
    config: RecommenderConfig = DEFAULT_CONFIG
    exclude_ids: FrozenSet[int] = frozenset()
    limit: int = RECOMMEND["k"]
    min_score: Optional[float] = None
    include_genres: FrozenSet[str] = frozenset()
    exclude_genres: FrozenSet[str] = frozenset()
    use_collaborative: bool = RECOMMEND["use_collaborative"]
    refresh: bool = False

    @property
    def rated_ids(self) -> FrozenSet[int]:
        return frozenset(i.item_id for i in self.interactions)

    @classmethod
    def build(
        cls,
        user_id: str,
        interactions: Iterable[Any],
        profile: Any = None,
        config: Any = None,
        exclude_ids: Iterable[int] = (),
        limit: int = RECOMMEND["k"],
        min_score: Optional[float] = None,
        include_genres: Iterable[str] = (),
        exclude_genres: Iterable[str] = (),
        use_collaborative: bool = RECOMMEND["use_collaborative"],
        refresh: bool = False,
    ) -> "RecommendationRequest":
        """Normalize loosely-typed caller input into a request, validating as it goes."""
        if not user_id:
            raise ValidationError("user_id is required")
        try:
            limit = int(limit)
            min_score = None if min_score is None else float(min_score)
            exclude_ids = frozenset(int(i) for i in exclude_ids)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"limit, min_score and exclude_ids must be numeric: {e}")
        if limit < 1:
            raise ValidationError(f"limit must be a positive integer, got {limit}")
        if min_score is not None and not 0.0 <= min_score <= 1.0:
            raise ValidationError(f"min_score must be within [0, 1], got {min_score}")

        parsed = tuple(i if isinstance(i, UserInteraction) else UserInteraction.from_raw(i) for i in interactions)
        if not isinstance(profile, UserProfile):
            profile = UserProfile.from_raw(profile)
        if not isinstance(config, RecommenderConfig):
            config = merge_config(DEFAULT_CONFIG, config)

        return cls(
            user_id=str(user_id),
            interactions=parsed,
            profile=profile,
            config=config,
            exclude_ids=exclude_ids,
            limit=min(limit, RECOMMEND["max_k"]),
            min_score=min_score,
            include_genres=frozenset(include_genres),
            exclude_genres=frozenset(exclude_genres),
            use_collaborative=use_collaborative,
            refresh=refresh,
        )


# ===================================================================
# Collaborator interfaces
# ===================================================================
class CatalogLookup(Protocol):
    def get_item_by_id(self, item_id: int) -> Dict[str, Any]:
        """Return display metadata: id, title, cover_image, description, genres, average_score, status, creators."""
        ...


class InteractionSource(Protocol):
    def load_all_user_interactions(self) -> Iterable[Mapping[str, Any]]:
        """Yield {user_id, item_id, like_status, reading_status} rows for every known user."""
        ...
