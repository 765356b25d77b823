from datetime import datetime, timedelta, timezone

import pytest

from venue_index.core.models import CachedVenue, Classification, EnrichOutcome, PlaceCandidate
from venue_index.etl import enrich
from venue_index.etl.grid import TEL_AVIV
from venue_index.vendors import openai_client

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

DETAILS = {
    "formatted_address": "Dizengoff St 99, Tel Aviv-Yafo, Israel",
    "formatted_phone_number": "03-555-1234",
    "website": "https://nimrod.example",
    "opening_hours": {"periods": [{"open": {"day": 1, "time": "0800"}, "close": {"day": 1, "time": "2000"}}]},
    "reviews": [
        {"author_name": "Dana", "rating": 5, "text": "Lovely kosher cafe with great shakshuka and friendly staff."},
        {"author_name": "Avi", "rating": 4, "text": "Good coffee, busy on weekends."},
    ],
    "photos": [{"photo_reference": "ref1", "width": 400, "height": 300}],
    "address_components": [{"long_name": "Tel Aviv-Yafo", "types": ["locality", "political"]}],
}


class Recorder:
    def __init__(self):
        self.calls = []


@pytest.fixture
def services(monkeypatch):
    rec = Recorder()

    def fake_details(place_id, api_key, fields=None, language="en"):
        rec.calls.append(("details", place_id, language))
        return dict(DETAILS)

    def fake_name(place_id, api_key, language):
        rec.calls.append(("name", place_id, language))
        return "קפה נמרוד"

    def fake_summarize(prompt):
        rec.calls.append(("summarize", prompt))
        return Classification(summary="A busy cafe.", categories=["Cafe", "Breakfast"])

    def fake_embed(text):
        rec.calls.append(("embed", text))
        return [0.1, 0.2, 0.3, 0.4]

    monkeypatch.setattr(enrich.db, "get_last_updated", lambda place_id: None)
    monkeypatch.setattr(enrich.google_places, "place_details", fake_details)
    monkeypatch.setattr(enrich.google_places, "place_name", fake_name)
    monkeypatch.setattr(enrich.openai_client, "summarize_venue", fake_summarize)
    monkeypatch.setattr(enrich.openai_client, "embed_text", fake_embed)
    return rec


def make_candidate(**overrides):
    values = dict(
        place_id="pid-1",
        name="Cafe Nimrod",
        lat=32.08,
        lng=34.78,
        rating=4.5,
        review_count=321,
        price_level=2,
        types=["cafe", "food"],
    )
    values.update(overrides)
    return PlaceCandidate(**values)


def test_enrich_builds_full_venue(services):
    venue = enrich.enrich_candidate(make_candidate(), now=NOW)

    assert isinstance(venue, CachedVenue)
    assert venue.place_id == "pid-1"
    assert venue.name_local == "קפה נמרוד"
    assert venue.city == "Tel Aviv-Yafo"
    assert venue.address.startswith("Dizengoff")
    assert venue.categories == ["Cafe", "Breakfast"]
    assert venue.summary_text == "A busy cafe."
    assert venue.is_kosher is True
    assert venue.is_vegetarian is False
    assert venue.opening_hours["monday"] == {"open": "08:00", "close": "20:00"}
    assert venue.summary_embedding == [0.1, 0.2, 0.3, 0.4]
    assert venue.reviews_embedding == [0.1, 0.2, 0.3, 0.4]
    assert " | " in venue.reviews_text
    assert venue.last_updated == NOW

    kinds = [call[0] for call in services.calls]
    assert kinds.count("embed") == 2
    assert ("name", "pid-1", "iw") in services.calls


def test_fresh_record_is_skipped_without_external_calls(services, monkeypatch):
    monkeypatch.setattr(enrich.db, "get_last_updated", lambda place_id: NOW - timedelta(days=5))

    outcome = enrich.enrich_candidate(make_candidate(), force_update=False, now=NOW)

    assert outcome is EnrichOutcome.SKIPPED
    assert services.calls == []


def test_forced_refresh_reenriches_fresh_record(services, monkeypatch):
    monkeypatch.setattr(enrich.db, "get_last_updated", lambda place_id: NOW - timedelta(days=5))

    venue = enrich.enrich_candidate(make_candidate(), force_update=True, now=NOW)

    assert isinstance(venue, CachedVenue)
    assert services.calls


def test_stale_record_is_reenriched(services, monkeypatch):
    monkeypatch.setattr(enrich.db, "get_last_updated", lambda place_id: NOW - timedelta(days=31))
    assert isinstance(enrich.enrich_candidate(make_candidate(), now=NOW), CachedVenue)


def test_outside_region_is_filtered(services, monkeypatch):
    details = dict(DETAILS, address_components=[{"long_name": "Haifa", "types": ["locality"]}])
    monkeypatch.setattr(enrich.google_places, "place_details", lambda *a, **k: details)

    outcome = enrich.enrich_candidate(make_candidate(lat=32.79, lng=34.98), now=NOW)

    assert outcome is EnrichOutcome.FILTERED
    assert not any(call[0] == "summarize" for call in services.calls)


def test_empty_model_categories_fall_back_to_provider_types(services, monkeypatch):
    monkeypatch.setattr(
        enrich.openai_client, "summarize_venue", lambda prompt: Classification(summary="Bakes bread.", categories=[])
    )

    venue = enrich.enrich_candidate(make_candidate(types=["bakery", "store"]), now=NOW)

    assert venue.categories == ["Bakery"]


def test_short_reviews_get_no_reviews_embedding(services, monkeypatch):
    details = dict(DETAILS, reviews=[{"text": "ok"}])
    monkeypatch.setattr(enrich.google_places, "place_details", lambda *a, **k: details)

    venue = enrich.enrich_candidate(make_candidate(), now=NOW)

    assert venue.reviews_embedding is None
    assert venue.summary_embedding is not None


def test_model_failure_propagates(services, monkeypatch):
    def broken(prompt):
        raise openai_client.EnrichmentError("model down")

    monkeypatch.setattr(enrich.openai_client, "summarize_venue", broken)

    with pytest.raises(openai_client.EnrichmentError):
        enrich.enrich_candidate(make_candidate(), now=NOW)


def test_missing_localized_name_is_tolerated(services, monkeypatch):
    def no_name(place_id, api_key, language):
        raise enrich.google_places.GooglePlacesError("nope", status="NOT_FOUND")

    monkeypatch.setattr(enrich.google_places, "place_name", no_name)

    venue = enrich.enrich_candidate(make_candidate(), now=NOW)
    assert venue.name_local is None


@pytest.mark.parametrize(
    "policy, lat, lng, city, expected",
    [
        ("either", 32.08, 34.78, "Ramat Gan", (True, "Tel Aviv-Yafo")),
        ("either", 32.30, 34.90, "Tel Aviv", (True, "Tel Aviv-Yafo")),
        ("either", 32.30, 34.90, "Netanya", (False, "Netanya")),
        ("both", 32.08, 34.78, "Ramat Gan", (False, "Ramat Gan")),
        ("both", 32.08, 34.78, "Jaffa", (True, "Tel Aviv-Yafo")),
        ("coordinates", 32.30, 34.90, "Tel Aviv", (False, "Tel Aviv")),
        ("name", 32.08, 34.78, None, (False, None)),
        ("off", 31.25, 34.79, "Beer Sheva", (True, "Beer Sheva")),
    ],
)
def test_region_decision_policies(policy, lat, lng, city, expected):
    assert enrich.region_decision(lat, lng, city, TEL_AVIV, policy) == expected


def test_is_fresh_handles_naive_timestamps():
    naive = (NOW - timedelta(days=1)).replace(tzinfo=None)
    assert enrich.is_fresh(naive, NOW, 30) is True
    assert enrich.is_fresh(None, NOW, 30) is False
