import pytest

from venue_index.ranking import match

USER = [1.0, 0.0, 0.0, 0.0]


def test_score_worked_example():
    # cosine([1,0], [0.8,0.6]) == 0.8
    assert match.score(USER, [0.8, 0.6, 0.0, 0.0], 4.5) == 81


def test_missing_rating_counts_as_three_and_a_half():
    assert match.score(USER, [0.8, 0.6, 0.0, 0.0], None) == 76


def test_score_is_clamped_to_fifty():
    assert match.score(USER, [-1.0, 0.0, 0.0, 0.0], 0) == 50


def test_score_stays_within_bounds():
    for venue in ([1.0, 0, 0, 0], [0, 1.0, 0, 0], [-1.0, 0, 0, 0], [0.5, 0.5, 0.5, 0.5]):
        for rating in (None, 0, 2.5, 5):
            assert 50 <= match.score(USER, venue, rating) <= 100


def test_reviews_embedding_blends_similarity():
    summary_only = match.score(USER, [1.0, 0, 0, 0], 5)
    blended = match.score(USER, [1.0, 0, 0, 0], 5, reviews_embedding=[0, 1.0, 0, 0])
    assert summary_only == 94
    assert blended == 79


def test_absent_embeddings_use_fallback():
    assert match.score(None, [1.0, 0, 0, 0], 4.0) == match.DEFAULT_MATCH_SCORE
    assert match.score(USER, None, 4.0) == 75
    assert match.score(USER, None, 4.0, fallback=match.FixedFallback(60)) == 60


def test_cosine_similarity_neutral_cases():
    assert match.cosine_similarity([0, 0, 0, 0], USER) == pytest.approx(0.7)
    assert match.cosine_similarity([1, 0], USER) == pytest.approx(0.7)
    assert match.cosine_similarity([], []) == pytest.approx(0.7)
    assert match.cosine_similarity([2, 0], [0, 3]) == pytest.approx(0.0)


def test_random_range_fallback_is_stable_per_key():
    fallback = match.RandomRangeFallback()
    values = {fallback.value("place-1") for _ in range(5)}
    assert len(values) == 1
    assert all(70 <= fallback.value(f"p{i}") <= 89 for i in range(50))


def test_fallback_from_name():
    assert isinstance(match.fallback_from_name("random_range"), match.RandomRangeFallback)
    assert match.fallback_from_name("fixed") == match.FixedFallback()


class DummyStore:
    def __init__(self, taste=None, venues=None):
        self.taste = taste
        self.venues = venues or {}
        self.taste_calls = 0
        self.venue_calls = []

    def fetch_taste_embedding(self, user_id):
        self.taste_calls += 1
        return self.taste

    def fetch_venue_embeddings(self, place_ids):
        self.venue_calls.append(list(place_ids))
        return {pid: self.venues[pid] for pid in place_ids if pid in self.venues}


@pytest.fixture
def store(monkeypatch):
    dummy = DummyStore()
    monkeypatch.setattr(match.db, "fetch_taste_embedding", dummy.fetch_taste_embedding)
    monkeypatch.setattr(match.db, "fetch_venue_embeddings", dummy.fetch_venue_embeddings)
    return dummy


def test_score_batch_without_viewer_uses_default(store):
    scores = match.score_batch(None, ["a", "b", "a"])

    assert scores == {"a": 75, "b": 75}
    assert store.taste_calls == 0
    assert store.venue_calls == []


def test_score_batch_without_taste_profile(store):
    scores = match.score_batch("user-1", ["a", "b"])

    assert scores == {"a": 75, "b": 75}
    assert store.taste_calls == 1
    assert store.venue_calls == []


def test_score_batch_uses_one_query_for_all_venues(store):
    store.taste = USER
    store.venues = {
        "a": {"summary_embedding": [0.8, 0.6, 0, 0], "reviews_embedding": None, "rating": 4.5},
        "b": {"summary_embedding": None, "reviews_embedding": None, "rating": 4.0},
    }

    scores = match.score_batch("user-1", ["a", "b", "c"])

    assert store.taste_calls == 1
    assert store.venue_calls == [["a", "b", "c"]]
    assert scores["a"] == 81
    assert 70 <= scores["b"] <= 89
    assert 70 <= scores["c"] <= 89
    assert match.score_batch("user-1", ["b"])["b"] == scores["b"]


def test_score_batch_fixed_missing_embedding_policy(store, monkeypatch):
    monkeypatch.setenv("SCORE_MISSING_EMBEDDING_FALLBACK", "fixed")
    match.get_settings.cache_clear()
    store.taste = USER

    assert match.score_batch("user-1", ["x"]) == {"x": 75}


def test_score_batch_empty_ids(store):
    assert match.score_batch("user-1", []) == {}
