import pytest

from common.errors import ValidationError
from recommenders import DEFAULT_CONFIG, RecommendationRequest, UserInteraction, UserProfile, merge_config
from recommenders.data_models import LikeStatus, ReadingStatus


def test_defaults():
    assert DEFAULT_CONFIG.min_similarity == 0.1
    assert DEFAULT_CONFIG.weight_likes == 2.0
    assert DEFAULT_CONFIG.weight_dislikes == -1.0
    assert DEFAULT_CONFIG.max_results == 20
    assert DEFAULT_CONFIG.user_experience_weight == {"new": 0.7, "intermediate": 1.0, "experienced": 1.3}


def test_merge_config_accepts_camel_case_and_leaves_defaults_untouched():
    merged = merge_config(DEFAULT_CONFIG, {"minSimilarity": 0.3, "userExperienceWeight": {"new": 0.5}})

    assert merged.min_similarity == 0.3
    assert merged.user_experience_weight["new"] == 0.5
    assert merged.user_experience_weight["experienced"] == 1.3
    assert DEFAULT_CONFIG.min_similarity == 0.1
    assert DEFAULT_CONFIG.user_experience_weight["new"] == 0.7


def test_merge_config_without_overrides_returns_defaults():
    assert merge_config(DEFAULT_CONFIG, None) is DEFAULT_CONFIG
    assert merge_config(DEFAULT_CONFIG, {"min_similarity": None}) == DEFAULT_CONFIG


@pytest.mark.parametrize(
    "overrides",
    [
        {"bogus": 1},
        {"min_similarity": 1.5},
        {"genre_importance": -0.1},
        {"max_results": 0},
        {"weight_likes": "lots"},
        {"max_results": "many"},
        {"user_experience_weight": 2.0},
        {"userExperienceWeight": {"new": "x"}},
    ],
)
def test_merge_config_rejects_invalid_overrides(overrides):
    with pytest.raises(ValidationError):
        merge_config(DEFAULT_CONFIG, overrides)


def test_item_weight_by_like_status():
    assert DEFAULT_CONFIG.item_weight(LikeStatus.LIKE) == 2.0
    assert DEFAULT_CONFIG.item_weight(LikeStatus.DISLIKE) == -1.0
    assert DEFAULT_CONFIG.item_weight(LikeStatus.NONE) == 1.0


def test_interaction_from_raw_normalizes_collaborator_spellings():
    interaction = UserInteraction.from_raw({"mangaId": "12", "likeStatus": "LIKE", "status": "PLAN_TO_READ"})

    assert interaction == UserInteraction(12, LikeStatus.LIKE, ReadingStatus.PLAN_TO_READ)


def test_interaction_from_raw_defaults_missing_statuses():
    interaction = UserInteraction.from_raw({"item_id": 3})

    assert interaction.like_status is LikeStatus.NONE
    assert interaction.reading_status is ReadingStatus.PLAN_TO_READ


@pytest.mark.parametrize(
    "raw",
    [
        {"item_id": "abc"},
        {"item_id": 1, "like_status": "love"},
        {"item_id": 1, "reading_status": "dropped"},
    ],
)
def test_interaction_from_raw_rejects_bad_values(raw):
    with pytest.raises(ValidationError):
        UserInteraction.from_raw(raw)


def test_profile_from_raw():
    profile = UserProfile.from_raw({"favoriteGenres": ["Action"], "experience": "new"})

    assert profile == UserProfile(favorite_genres=frozenset({"Action"}), experience_level="new")
    assert UserProfile.from_raw(None) == UserProfile()


def test_request_build_caps_limit_and_parses_input():
    request = RecommendationRequest.build(
        user_id="u1",
        interactions=[{"item_id": 1, "like_status": "like"}],
        config={"minSimilarity": 0.2},
        exclude_ids=["4"],
        limit=500,
    )

    assert request.limit == 50
    assert request.exclude_ids == frozenset({4})
    assert request.rated_ids == frozenset({1})
    assert request.config.min_similarity == 0.2


@pytest.mark.parametrize(
    "kwargs",
    [
        {"user_id": ""},
        {"limit": 0},
        {"min_score": 1.5},
        {"limit": "ten"},
        {"limit": None},
        {"min_score": "high"},
        {"exclude_ids": ["abc"]},
    ],
)
def test_request_build_rejects_invalid_input(kwargs):
    params = {"user_id": "u1", "interactions": [], **kwargs}
    with pytest.raises(ValidationError):
        RecommendationRequest.build(**params)
