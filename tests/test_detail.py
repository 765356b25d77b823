from datetime import datetime

import pytest

from venue_index.ranking import detail

VENUE_UUID = "3f2b8c1e-4d5a-4b6c-9d7e-0a1b2c3d4e5f"
FRIDAY_NOON = datetime(2026, 3, 6, 12, 0)

RESTAURANT = {
    "id": VENUE_UUID,
    "name": "Cafe Nimrod",
    "address": "Dizengoff 99",
    "city": "Tel Aviv-Yafo",
    "google_place_id": "place-1",
    "image_url": "https://img/v.jpg",
    "latitude": 32.08,
    "longitude": 34.78,
}

CACHED = {
    "place_id": "place-1",
    "name": "Cafe Nimrod",
    "name_local": "קפה נמרוד",
    "address": "Dizengoff St 99",
    "city": "Tel Aviv-Yafo",
    "phone": "03-555-1234",
    "website": None,
    "rating": 4.5,
    "review_count": 321,
    "price_level": 2,
    "categories": ["Cafe"],
    "is_kosher": True,
    "is_vegetarian": False,
    "summary_text": "A busy cafe.",
    "opening_hours": {"friday": {"open": "08:00", "close": "15:00"}},
    "photos": [{"photo_reference": "ref1"}],
    "latitude": 32.08,
    "longitude": 34.78,
}


class FakeStore:
    def __init__(self):
        self.by_id = {VENUE_UUID: RESTAURANT}
        self.by_place = {"place-1": RESTAURANT}
        self.cached = {"place-1": CACHED}
        self.reviews = [
            {"id": "r1", "rating": 5, "content": "Great", "created_at": datetime(2026, 3, 1), "user_id": "u1",
             "restaurant_id": VENUE_UUID},
        ]
        self.lookups = []

    def install(self, monkeypatch):
        q = detail.feed_queries
        monkeypatch.setattr(q, "restaurant_by_id", self.restaurant_by_id)
        monkeypatch.setattr(q, "restaurant_by_place_id", self.restaurant_by_place_id)
        monkeypatch.setattr(detail.db, "get_cached_venue", lambda place_id: self.cached.get(place_id))
        monkeypatch.setattr(q, "published_reviews", lambda ids: self.reviews if ids == [VENUE_UUID] else [])
        monkeypatch.setattr(q, "following_ids", lambda user_id: ["friend-1"])
        monkeypatch.setattr(
            q,
            "review_photos",
            lambda ids: [
                {"review_id": "r1", "id": "p2", "photo_url": "https://img/2.jpg", "sort_order": 2},
                {"review_id": "r1", "id": "p1", "photo_url": "https://img/1.jpg", "sort_order": 1},
            ],
        )
        monkeypatch.setattr(q, "like_counts", lambda ids: {"r1": 3})
        monkeypatch.setattr(q, "comment_counts", lambda ids: {})
        monkeypatch.setattr(q, "liked_by", lambda user_id, ids: {"r1"} if user_id else set())
        monkeypatch.setattr(q, "profiles", lambda ids: {"u1": {"username": "dana", "full_name": None, "avatar_url": None}})
        monkeypatch.setattr(
            q,
            "friends_who_reviewed",
            lambda ids, friends: {VENUE_UUID: [{"id": "friend-1", "name": "Avi", "avatarUrl": None}]} if ids and friends else {},
        )
        monkeypatch.setattr(q, "wishlisted", lambda user_id, ids: set(ids) if user_id else set())
        monkeypatch.setattr(q, "user_has_reviewed", lambda user_id, restaurant_id: user_id == "u1")
        monkeypatch.setattr(detail.match, "score_batch", lambda user_id, ids: {pid: 91 for pid in ids} if user_id else {})
        return self

    def restaurant_by_id(self, venue_id):
        self.lookups.append(("id", venue_id))
        return self.by_id.get(venue_id)

    def restaurant_by_place_id(self, place_id):
        self.lookups.append(("place", place_id))
        return self.by_place.get(place_id)


@pytest.fixture
def store(monkeypatch):
    return FakeStore().install(monkeypatch)


def test_detail_by_uuid_merges_cache_and_reviews(store):
    payload = detail.build_venue_detail(VENUE_UUID, viewer_id="viewer", now=FRIDAY_NOON)

    assert store.lookups == [("id", VENUE_UUID)]
    assert payload["id"] == VENUE_UUID
    assert payload["nameLocal"] == "קפה נמרוד"
    assert payload["address"] == "Dizengoff 99"
    assert payload["categories"] == ["Cafe"]
    assert payload["isKosher"] is True
    assert payload["isOpen"] is True
    assert payload["matchPercentage"] == 91
    assert payload["isWishlisted"] is True
    assert payload["userHasReviewed"] is False
    assert payload["friendsWhoReviewed"] == [{"id": "friend-1", "name": "Avi", "avatarUrl": None}]

    (row,) = payload["reviews"]
    assert row["photos"] == ["https://img/1.jpg", "https://img/2.jpg"]
    assert row["likesCount"] == 3
    assert row["commentsCount"] == 0
    assert row["isLiked"] is True
    assert row["user"]["fullName"] == "dana"
    assert row["createdAt"] == "2026-03-01T00:00:00"


def test_detail_by_place_id(store):
    payload = detail.build_venue_detail("place-1", now=FRIDAY_NOON)

    assert store.lookups == [("place", "place-1")]
    assert payload["id"] == VENUE_UUID
    assert payload["matchPercentage"] == 75
    assert payload["isWishlisted"] is False
    assert payload["reviews"][0]["isLiked"] is False


def test_detail_for_cache_only_venue(store):
    store.by_place = {}

    payload = detail.build_venue_detail("place-1", viewer_id="viewer", now=datetime(2026, 3, 6, 18, 0))

    assert payload["id"] == "place-1"
    assert payload["googlePlaceId"] == "place-1"
    assert payload["reviews"] == []
    assert payload["friendsWhoReviewed"] == []
    assert payload["isWishlisted"] is False
    assert payload["isOpen"] is False
    assert payload["summary"] == "A busy cafe."


def test_unknown_venue_returns_none(store):
    assert detail.build_venue_detail("nope") is None
    assert detail.build_venue_detail("00000000-0000-0000-0000-000000000000") is None


def test_own_review_flag(store):
    payload = detail.build_venue_detail(VENUE_UUID, viewer_id="u1", now=FRIDAY_NOON)
    assert payload["userHasReviewed"] is True
