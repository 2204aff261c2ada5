import pytest

from recommenders import (
    DEFAULT_CONFIG,
    CollaborativeScorer,
    ContentBasedScorer,
    FeatureStore,
    RecommendationCache,
    RecommendationOrchestrator,
    RecommendationRequest,
    UserInteraction,
    merge_config,
)
from recommenders.data_models import LikeStatus, ReadingStatus

HEADER = "id,title,average_score,popularity,Action,Romance,Comedy,4-koma,f1,f2,f3"

# Genre flags are Action/Romance/Comedy; 4-koma and the f* columns are the 4 feature dims.
CATALOG_CSV = "\n".join(
    [
        HEADER,
        "1,Alpha,80,100,1,0,0,1,0,0,0",
        "2,Beta,70,90,1,0,1,1,0,0,0",
        "3,Gamma,60,80,0,1,0,0,1,0,0",
        "4,Delta,90,70,1,0,0,0.9,0.1,0,0",
        "5,Epsilon,50,60,0,1,1,0,0.8,0.2,0",
        "6,Zeta,40,50,0,0,1,0.5,0.5,0,0",
        "7,Eta,85,40,1,1,0,0.7,0,0.3,0",
        "8,Theta,75,30,0,0,0,0,0,0,1",
    ]
)

SCENARIO_CSV = "\n".join(
    [
        HEADER,
        "1,A,80,0,1,0,0,1,0,0,0",
        "2,B,70,0,1,0,0,1,0,0,0",
        "3,C,60,0,0,1,0,0,1,0,0",
    ]
)

# plain cosine ranking: no experience, genre, theme or score perturbation
PLAIN_CONFIG = merge_config(
    DEFAULT_CONFIG,
    {"genre_importance": 0, "theme_importance": 0, "score_importance": 0},
)


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class ListSource:
    """In-memory interaction source."""

    def __init__(self, rows):
        self.rows = rows

    def load_all_user_interactions(self):
        return list(self.rows)


def like(item_id, reading_status=ReadingStatus.COMPLETED):
    return UserInteraction(item_id=item_id, like_status=LikeStatus.LIKE, reading_status=reading_status)


def dislike(item_id, reading_status=ReadingStatus.COMPLETED):
    return UserInteraction(item_id=item_id, like_status=LikeStatus.DISLIKE, reading_status=reading_status)


@pytest.fixture
def catalog_store():
    return FeatureStore.from_csv_text(CATALOG_CSV)


@pytest.fixture
def scenario_store():
    return FeatureStore.from_csv_text(SCENARIO_CSV)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return RecommendationCache(clock=clock)


@pytest.fixture
def content_scorer(catalog_store):
    return ContentBasedScorer(catalog_store)


@pytest.fixture
def collaborative_scorer():
    scorer = CollaborativeScorer()
    scorer.update_user_interactions("u1", [like(1), like(2), dislike(3)])
    scorer.update_user_interactions("u2", [like(1), like(2), dislike(3), like(4), dislike(5)])
    scorer.update_user_interactions("u3", [like(1), like(2), like(4, ReadingStatus.READING)])
    return scorer


@pytest.fixture
def orchestrator(catalog_store, cache):
    return RecommendationOrchestrator(catalog_store, cache=cache)


@pytest.fixture
def make_request():
    def _make(user_id="u1", interactions=None, config=PLAIN_CONFIG, **kwargs):
        kwargs.setdefault("use_collaborative", False)
        return RecommendationRequest.build(
            user_id=user_id,
            interactions=interactions if interactions is not None else [like(1)],
            config=config,
            **kwargs,
        )

    return _make
