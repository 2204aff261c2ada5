import pytest

from common.errors import CollaboratorError, NoMatchError, NotFoundError, ValidationError
from conftest import dislike, like
from recommenders import CollaborativeScorer, FeatureStoreCatalog, RecommendationOrchestrator


def ids(response):
    return [item["id"] for item in response["items"]]


class FlakyCatalog(FeatureStoreCatalog):
    def __init__(self, feature_store, failing_ids):
        super().__init__(feature_store)
        self.failing_ids = set(failing_ids)

    def get_item_by_id(self, item_id):
        if item_id in self.failing_ids:
            raise CollaboratorError(f"lookup for {item_id} timed out")
        return super().get_item_by_id(item_id)


def test_injected_collaborators_are_used_even_when_empty(catalog_store, cache, content_scorer):
    catalog = FeatureStoreCatalog(catalog_store)

    orchestrator = RecommendationOrchestrator(catalog_store, content_scorer=content_scorer, cache=cache, catalog=catalog)

    assert len(cache) == 0
    assert orchestrator.cache is cache
    assert orchestrator.content_scorer is content_scorer
    assert orchestrator.catalog is catalog


def test_fresh_result_is_stored_in_the_injected_cache(orchestrator, cache, make_request):
    request = make_request(limit=2)

    orchestrator.get_recommendations(request)

    assert cache.get("u1", orchestrator.signature_for(request))["has_more"] is True
    assert cache.get_history("u1") == [2, 4]


def test_fresh_recommendations_are_hydrated_and_ranked(orchestrator, make_request):
    response = orchestrator.get_recommendations(make_request())

    assert response["source"] == "fresh"
    assert ids(response) == [2, 4, 7, 6]
    assert response["items"][0]["title"] == "Beta"
    assert response["items"][0]["genres"] == ["Action", "Comedy"]
    assert response["items"][0]["source"] == "content"
    assert response["has_more"] is False
    assert response["timing_ms"] >= 0


def test_scores_are_non_increasing(orchestrator, make_request):
    scores = [item["score"] for item in orchestrator.get_recommendations(make_request())["items"]]

    assert scores == sorted(scores, reverse=True)


def test_listed_items_are_never_recommended(orchestrator, make_request):
    response = orchestrator.get_recommendations(make_request(interactions=[like(1), like(4)]))

    assert not {1, 4} & set(ids(response))


def test_requested_exclusions_are_respected(orchestrator, make_request):
    response = orchestrator.get_recommendations(make_request(exclude_ids=[2, 7]))

    assert ids(response) == [4, 6]


def test_has_more_when_limit_cuts_the_list(orchestrator, make_request):
    response = orchestrator.get_recommendations(make_request(limit=2))

    assert ids(response) == [2, 4]
    assert response["has_more"] is True


def test_identical_request_is_served_from_cache(orchestrator, make_request):
    first = orchestrator.get_recommendations(make_request(limit=2))
    second = orchestrator.get_recommendations(make_request(limit=2))

    assert second["source"] == "cache"
    assert second["items"] == first["items"]
    assert second["has_more"] == first["has_more"]


def test_shown_items_are_excluded_from_the_next_batch(orchestrator, make_request):
    orchestrator.get_recommendations(make_request(limit=2))

    response = orchestrator.get_recommendations(make_request(limit=3))

    assert response["source"] == "fresh"
    assert ids(response) == [7, 6]


def test_expired_cache_entry_is_recomputed_without_shown_items(orchestrator, cache, clock, make_request):
    orchestrator.get_recommendations(make_request(limit=2))
    clock.advance(cache.ttl_seconds + 1)

    response = orchestrator.get_recommendations(make_request(limit=2))

    assert response["source"] == "fresh"
    assert ids(response) == [7, 6]


def test_clear_history_forces_fresh_results(orchestrator, make_request):
    orchestrator.get_recommendations(make_request(limit=2))

    assert orchestrator.clear_history("u1") == {"success": True}
    response = orchestrator.get_recommendations(make_request(limit=2))

    assert response["source"] == "fresh"
    assert ids(response) == [2, 4]


def test_refresh_clears_history_before_scoring(orchestrator, make_request):
    orchestrator.get_recommendations(make_request(limit=2))

    response = orchestrator.get_recommendations(make_request(limit=2, refresh=True))

    assert response["source"] == "fresh"
    assert ids(response) == [2, 4]


def test_min_score_filter(orchestrator, make_request):
    response = orchestrator.get_recommendations(make_request(min_score=0.95))

    assert ids(response) == [2, 4]


def test_include_genre_filter(orchestrator, make_request):
    response = orchestrator.get_recommendations(make_request(include_genres=["Comedy"]))

    assert ids(response) == [2, 6]


def test_exclude_genre_filter(orchestrator, make_request):
    response = orchestrator.get_recommendations(make_request(exclude_genres=["Comedy"]))

    assert ids(response) == [4, 7]


def test_nothing_passing_filters_is_no_match(orchestrator, make_request):
    with pytest.raises(NoMatchError):
        orchestrator.get_recommendations(make_request(exclude_genres=["Action", "Comedy"]))


def test_invalid_user_list_propagates_validation_error(orchestrator, make_request):
    with pytest.raises(ValidationError):
        orchestrator.get_recommendations(make_request(interactions=[like(999)]))


def test_failed_hydration_drops_item_and_backfills(catalog_store, cache, make_request):
    orchestrator = RecommendationOrchestrator(catalog_store, cache=cache, catalog=FlakyCatalog(catalog_store, {4}))

    response = orchestrator.get_recommendations(make_request(limit=2))

    assert ids(response) == [2, 7]
    assert response["has_more"] is True


def test_every_hydration_failing_is_no_match(catalog_store, cache, make_request):
    catalog = FlakyCatalog(catalog_store, catalog_store.all_ids())
    orchestrator = RecommendationOrchestrator(catalog_store, cache=cache, catalog=catalog)

    with pytest.raises(NoMatchError):
        orchestrator.get_recommendations(make_request())


def test_hybrid_blends_collaborative_scores(catalog_store, cache, collaborative_scorer, make_request):
    orchestrator = RecommendationOrchestrator(catalog_store, collaborative_scorer=collaborative_scorer, cache=cache)
    request = make_request(interactions=[like(1), like(2), dislike(3)], use_collaborative=True)

    response = orchestrator.get_recommendations(request)
    top = response["items"][0]

    # Delta tops the content list (0.6) and is the only positive collaborative item (0.875 -> 0.35)
    assert top["id"] == 4
    assert top["source"] == "hybrid"
    assert top["score"] == pytest.approx(0.6 + 0.4 * 0.875)
    assert top["neighbor_count"] == 2
    assert top["match_details"] is not None
    # item 5 is rated only by a neighbor who disliked it
    assert ids(response) == [4, 7, 6]


def test_collaborative_only_items_are_tagged(catalog_store, cache, make_request):
    scorer = CollaborativeScorer()
    scorer.update_user_interactions("u1", [like(1), like(2)])
    scorer.update_user_interactions("u2", [like(1), like(2), like(8)])
    orchestrator = RecommendationOrchestrator(catalog_store, collaborative_scorer=scorer, cache=cache)

    response = orchestrator.get_recommendations(make_request(interactions=[like(1), like(2)], use_collaborative=True))
    theta = next(item for item in response["items"] if item["id"] == 8)

    assert theta["source"] == "collaborative"
    assert theta["neighbor_count"] == 1


def test_collaborative_disabled_uses_content_only(catalog_store, cache, collaborative_scorer, make_request):
    orchestrator = RecommendationOrchestrator(catalog_store, collaborative_scorer=collaborative_scorer, cache=cache)
    request = make_request(interactions=[like(1), like(2), dislike(3)], use_collaborative=False)

    response = orchestrator.get_recommendations(request)

    assert {item["source"] for item in response["items"]} == {"content"}
    assert 5 not in ids(response)


def test_similarity_info(catalog_store, collaborative_scorer):
    orchestrator = RecommendationOrchestrator(catalog_store, collaborative_scorer=collaborative_scorer)

    info = orchestrator.get_user_similarity_info("u1")

    assert info["total_users"] == 3
    assert [n["user_id"] for n in info["similar_users"]] == ["u2", "u3"]


def test_similarity_info_for_unknown_user_is_not_found(catalog_store, collaborative_scorer):
    orchestrator = RecommendationOrchestrator(catalog_store, collaborative_scorer=collaborative_scorer)

    with pytest.raises(NotFoundError):
        orchestrator.get_user_similarity_info("ghost")


def test_update_user_interactions_reaches_collaborative_scorer(catalog_store, collaborative_scorer):
    orchestrator = RecommendationOrchestrator(catalog_store, collaborative_scorer=collaborative_scorer)

    orchestrator.update_user_interactions("u9", [like(1), like(2)])

    assert collaborative_scorer.has_user("u9")


def test_signature_ignores_refresh_but_tracks_inputs(orchestrator, make_request):
    base = orchestrator.signature_for(make_request())

    assert orchestrator.signature_for(make_request(refresh=True)) == base
    assert orchestrator.signature_for(make_request(limit=3)) != base
    assert orchestrator.signature_for(make_request(interactions=[like(2)])) != base
