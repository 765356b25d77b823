import pytest

from venue_index.vendors import google_places


class DummyResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise RuntimeError("http error")

    def json(self):
        return self._payload


class DummySession:
    def __init__(self):
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        return self.response


@pytest.fixture(autouse=True)
def patch_session(monkeypatch):
    session = DummySession()
    monkeypatch.setattr(google_places, "_SESSION", session)
    return session


def test_nearby_search_first_page(patch_session):
    patch_session.response = DummyResponse(payload={"status": "OK", "results": [{"place_id": "a"}]})

    payload = google_places.nearby_search(32.08, 34.78, 1500, "key")

    assert payload["results"] == [{"place_id": "a"}]
    url, params, timeout = patch_session.calls[0]
    assert url.endswith("/nearbysearch/json")
    assert params["location"] == "32.08,34.78"
    assert params["radius"] == 1500
    assert params["type"] == "restaurant"
    assert params["language"] == "en"
    assert timeout == 10


def test_nearby_search_with_token_sends_only_token(patch_session):
    patch_session.response = DummyResponse(payload={"status": "OK", "results": []})

    google_places.nearby_search(32.08, 34.78, 1500, "key", pagetoken="tok")

    _, params, _ = patch_session.calls[0]
    assert params == {"pagetoken": "tok", "key": "key", "language": "en"}


def test_zero_results_is_not_an_error(patch_session):
    patch_session.response = DummyResponse(payload={"status": "ZERO_RESULTS", "results": []})
    assert google_places.nearby_search(0, 0, 100, "key")["status"] == "ZERO_RESULTS"


def test_error_status_carries_status(patch_session):
    patch_session.response = DummyResponse(payload={"status": "OVER_QUERY_LIMIT", "error_message": "limit"})

    with pytest.raises(google_places.GooglePlacesError) as excinfo:
        google_places.nearby_search(0, 0, 100, "key")

    assert excinfo.value.status == "OVER_QUERY_LIMIT"
    assert str(excinfo.value) == "limit"


def test_place_details_requests_extended_fields(patch_session):
    patch_session.response = DummyResponse(payload={"status": "OK", "result": {"website": "https://x.example"}})

    result = google_places.place_details("pid", "key")

    assert result["website"] == "https://x.example"
    _, params, _ = patch_session.calls[0]
    assert "opening_hours" in params["fields"]
    assert "reviews" in params["fields"]
    assert params["language"] == "en"


def test_place_name_uses_requested_language(patch_session):
    patch_session.response = DummyResponse(payload={"status": "OK", "result": {"name": "קפה נמרוד"}})

    assert google_places.place_name("pid", "key", "iw") == "קפה נמרוד"
    _, params, _ = patch_session.calls[0]
    assert params["fields"] == "name"
    assert params["language"] == "iw"


def test_place_details_error(patch_session):
    patch_session.response = DummyResponse(payload={"status": "INVALID_REQUEST"})
    with pytest.raises(google_places.GooglePlacesError):
        google_places.place_details("pid", "key")
