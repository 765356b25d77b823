"""Single-area nearby search across place types, following each page-token chain."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Set

import requests

from venue_index.core.config import get_settings
from venue_index.core.models import PlaceCandidate
from venue_index.etl.transform import PayloadValidationError, parse_candidate
from venue_index.vendors import google_places

logger = logging.getLogger(__name__)

TOKEN_RETRIES = 3


@dataclass(slots=True)
class ScanResult:
    results: List[PlaceCandidate] = field(default_factory=list)
    hit_limit: bool = False
    pages: int = 0


def _collect(payload: dict, into: List[PlaceCandidate]) -> None:
    for raw in payload.get("results", []):
        try:
            into.append(parse_candidate(raw))
        except PayloadValidationError as exc:
            logger.warning("Dropping malformed nearby result: %s", exc)


def _fetch_page(
    lat: float,
    lng: float,
    radius: int,
    place_type: str,
    pagetoken: Optional[str],
    sleep: Callable[[float], None],
) -> dict:
    settings = get_settings()
    attempt = 1
    while True:
        try:
            return google_places.nearby_search(
                lat,
                lng,
                radius,
                api_key=settings.google_api_key,
                place_type=place_type,
                language=settings.places_language,
                pagetoken=pagetoken,
            )
        except google_places.GooglePlacesError as exc:
            # A fresh page token answers INVALID_REQUEST until it activates.
            if exc.status == "INVALID_REQUEST" and pagetoken and attempt < TOKEN_RETRIES:
                logger.debug("Page token not ready (attempt %d), retrying", attempt)
                attempt += 1
                sleep(settings.places_token_retry_seconds)
                continue
            raise


def _scan_type(
    lat: float,
    lng: float,
    radius: int,
    place_type: str,
    sleep: Callable[[float], None],
) -> ScanResult:
    settings = get_settings()
    scan = ScanResult()
    pagetoken: Optional[str] = None

    while scan.pages < settings.places_page_cap:
        if pagetoken:
            sleep(settings.places_token_delay_seconds)
        try:
            payload = _fetch_page(lat, lng, radius, place_type, pagetoken, sleep)
        except google_places.GooglePlacesError as exc:
            logger.error(
                "Nearby search (%s) failed at %.4f,%.4f r=%d: %s (status=%s)",
                place_type,
                lat,
                lng,
                radius,
                exc,
                exc.status,
            )
            break
        except requests.RequestException as exc:
            logger.error("Nearby search (%s) request error at %.4f,%.4f r=%d: %s", place_type, lat, lng, radius, exc)
            break

        scan.pages += 1
        _collect(payload, scan.results)
        if payload.get("status") == "ZERO_RESULTS":
            break
        pagetoken = payload.get("next_page_token")
        if not pagetoken:
            break

    scan.hit_limit = len(scan.results) >= settings.places_result_cap
    return scan


def scan_area(
    lat: float,
    lng: float,
    radius: int,
    *,
    place_types: Optional[Sequence[str]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ScanResult:
    """Collect every page of a nearby search around one point, once per place type.

    Results are merged by place id. The area counts as saturated when any
    single type's search reached the provider's result cap. Provider failures
    end that type's scan with whatever was gathered so far; they are logged and
    never raised, so one bad area cannot abort an ingestion run.
    """
    settings = get_settings()
    types = list(place_types or settings.places_types)
    scan = ScanResult()
    seen: Set[str] = set()

    for index, place_type in enumerate(types):
        if index:
            sleep(settings.places_type_delay_seconds)
        typed = _scan_type(lat, lng, radius, place_type, sleep)
        scan.pages += typed.pages
        scan.hit_limit = scan.hit_limit or typed.hit_limit
        for candidate in typed.results:
            if candidate.place_id not in seen:
                seen.add(candidate.place_id)
                scan.results.append(candidate)

    logger.debug(
        "Scanned %.4f,%.4f r=%d over %d types: %d results, %d pages (hit_limit=%s)",
        lat,
        lng,
        radius,
        len(types),
        len(scan.results),
        scan.pages,
        scan.hit_limit,
    )
    return scan
