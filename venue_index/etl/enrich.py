"""Detail enrichment for newly discovered venue candidates."""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple, Union

from venue_index.core import db
from venue_index.core.config import get_settings
from venue_index.core.models import CachedVenue, Classification, EnrichOutcome, PlaceCandidate
from venue_index.etl import transform
from venue_index.etl.grid import TEL_AVIV, TargetArea
from venue_index.vendors import google_places, openai_client

logger = logging.getLogger(__name__)

REVIEWS_EMBEDDING_MIN_CHARS = 50


def region_decision(
    lat: float,
    lng: float,
    city: Optional[str],
    target: TargetArea,
    policy: str,
) -> Tuple[bool, Optional[str]]:
    """Decide whether a venue belongs to ``target``; returns (accepted, city to store).

    ``either`` accepts when the point is in the box or the locality name is a
    known alias; ``both`` requires the two; ``coordinates`` and ``name`` use
    one signal; ``off`` accepts everything. When the point is in the box the
    canonical city name replaces whatever locality the provider returned.
    """
    in_box = target.bounds.contains(lat, lng)
    name_ok = target.name_matches(city or "")

    if policy == "off":
        accepted = True
    elif policy == "both":
        accepted = in_box and name_ok
    elif policy == "coordinates":
        accepted = in_box
    elif policy == "name":
        accepted = name_ok
    else:
        accepted = in_box or name_ok

    if not accepted:
        return False, city
    if in_box or name_ok:
        return True, target.canonical_city
    return True, city


def is_fresh(last_updated: Optional[datetime], now: datetime, freshness_days: int) -> bool:
    if last_updated is None:
        return False
    if last_updated.tzinfo is None:
        last_updated = last_updated.replace(tzinfo=timezone.utc)
    return now - last_updated < timedelta(days=freshness_days)


def _classify(candidate: PlaceCandidate, city: Optional[str], details) -> Classification:
    prompt = openai_client.build_summary_prompt(
        name=candidate.name,
        city=city or "",
        categories_hint=candidate.types,
        rating=candidate.rating,
        reviews=[review["text"] for review in details.reviews],
    )
    classification = openai_client.summarize_venue(prompt)
    if not classification.categories:
        classification.categories = transform.categories_from_types(candidate.types)
    return classification


def enrich_candidate(
    candidate: PlaceCandidate,
    force_update: bool = False,
    *,
    target: TargetArea = TEL_AVIV,
    policy: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Union[CachedVenue, EnrichOutcome]:
    """Build a fully populated :class:`CachedVenue` for ``candidate``.

    Returns ``EnrichOutcome.SKIPPED`` for rows refreshed within the freshness
    window (no provider or model call is made) and ``EnrichOutcome.FILTERED``
    for venues outside the target area. Provider and model failures propagate
    so the caller can count the candidate as failed.
    """
    settings = get_settings()
    now = now or datetime.now(timezone.utc)
    policy = policy or settings.region_filter_policy

    if not force_update and is_fresh(db.get_last_updated(candidate.place_id), now, settings.freshness_days):
        logger.debug("Skipping fresh venue %s", candidate.place_id)
        return EnrichOutcome.SKIPPED

    with ThreadPoolExecutor(max_workers=2) as executor:
        details_future = executor.submit(
            google_places.place_details,
            candidate.place_id,
            settings.google_api_key,
            language=settings.places_language,
        )
        local_name_future = executor.submit(
            google_places.place_name,
            candidate.place_id,
            settings.google_api_key,
            settings.places_local_language,
        )
        details = transform.parse_details(details_future.result())
        try:
            name_local = local_name_future.result()
        except google_places.GooglePlacesError as exc:
            logger.info("No localized name for %s: %s", candidate.place_id, exc)
            name_local = None

    city = transform.extract_city(details.address_components)
    accepted, city = region_decision(candidate.lat, candidate.lng, city, target, policy)
    if not accepted:
        logger.debug("Filtered %s (%s) outside %s", candidate.place_id, city, target.canonical_city)
        return EnrichOutcome.FILTERED

    classification = _classify(candidate, city, details)

    embedding_text = transform.build_embedding_text(
        candidate.name, classification.summary, classification.categories, city, details.reviews
    )
    summary_embedding = openai_client.embed_text(embedding_text) if embedding_text else None

    reviews_text = transform.build_reviews_text(details.reviews)
    reviews_embedding = None
    if len(reviews_text) > REVIEWS_EMBEDDING_MIN_CHARS:
        reviews_embedding = openai_client.embed_text(reviews_text)

    return CachedVenue(
        place_id=candidate.place_id,
        name=candidate.name,
        latitude=candidate.lat,
        longitude=candidate.lng,
        name_local=name_local if name_local and name_local != candidate.name else None,
        address=details.address or candidate.vicinity,
        city=city,
        phone=details.phone,
        website=details.website,
        rating=candidate.rating,
        review_count=candidate.review_count,
        price_level=candidate.price_level,
        categories=classification.categories,
        is_kosher=transform.detect_kosher(candidate.name, details.address, details.reviews),
        is_vegetarian=transform.detect_vegetarian(candidate.name, details.reviews),
        opening_hours=details.opening_hours,
        photos=details.photos,
        reviews=details.reviews,
        summary_text=classification.summary or None,
        summary_embedding=summary_embedding,
        reviews_embedding=reviews_embedding,
        reviews_text=reviews_text or None,
        last_updated=now,
    )
