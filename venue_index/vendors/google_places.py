"""Client utilities for the Google Places API."""

import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://maps.googleapis.com/maps/api/place"

DETAIL_FIELDS = (
    "formatted_address,formatted_phone_number,website,opening_hours,"
    "reviews,photos,address_components"
)


class GooglePlacesError(RuntimeError):
    """Raised when the Places API returns a non-successful response."""

    def __init__(self, message: str, status: Optional[str] = None):
        super().__init__(message)
        self.status = status


def _get(endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
    response = _SESSION.get(f"{_BASE_URL}/{endpoint}/json", params=params, timeout=10)
    response.raise_for_status()
    payload = response.json()
    status = payload.get("status")
    if status not in {"OK", "ZERO_RESULTS"}:
        logger.error("%s failed: status=%s, error_message=%s", endpoint, status, payload.get("error_message"))
        raise GooglePlacesError(payload.get("error_message") or status or "unknown error", status=status)
    return payload


def nearby_search(
    lat: float,
    lng: float,
    radius: int,
    api_key: str,
    place_type: str = "restaurant",
    language: str = "en",
    pagetoken: Optional[str] = None,
) -> Dict[str, Any]:
    # A page token carries the original query; only the token is accepted alongside it.
    if pagetoken:
        params = {"pagetoken": pagetoken, "key": api_key, "language": language}
    else:
        params = {
            "location": f"{lat},{lng}",
            "radius": radius,
            "type": place_type,
            "key": api_key,
            "language": language,
        }
    return _get("nearbysearch", params)


def place_details(
    place_id: str,
    api_key: str,
    fields: str = DETAIL_FIELDS,
    language: str = "en",
) -> Dict[str, Any]:
    params = {"place_id": place_id, "key": api_key, "fields": fields, "language": language}
    return _get("details", params).get("result", {})


def place_name(place_id: str, api_key: str, language: str) -> Optional[str]:
    """Return the venue name as the provider renders it in ``language``."""
    result = place_details(place_id, api_key, fields="name", language=language)
    return result.get("name")
