"""Utilities for turning Google Places payloads into typed venue records."""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from venue_index.core.models import PlaceCandidate, PlaceDetails

logger = logging.getLogger(__name__)

CUISINE_CATEGORIES = (
    "Italian", "Japanese", "Chinese", "Thai", "Indian", "Mexican", "Mediterranean",
    "Middle Eastern", "American", "French", "Greek", "Turkish", "Israeli", "Asian",
    "Georgian", "Korean", "Vietnamese", "Sushi", "Pizza", "Burgers", "Steak", "Seafood",
    "Hummus", "Shawarma", "Falafel", "Vegetarian", "Vegan", "Cafe", "Bar", "Pub",
    "Wine Bar", "Bakery", "Desserts", "Breakfast", "Brunch", "Fast Food", "Fine Dining",
)

_TYPE_TO_CATEGORY = {
    "cafe": "Cafe",
    "coffee_shop": "Cafe",
    "bar": "Bar",
    "night_club": "Bar",
    "pub": "Pub",
    "wine_bar": "Wine Bar",
    "bakery": "Bakery",
    "meal_takeaway": "Fast Food",
    "meal_delivery": "Fast Food",
    "fast_food_restaurant": "Fast Food",
    "pizza_restaurant": "Pizza",
    "sushi_restaurant": "Sushi",
    "hamburger_restaurant": "Burgers",
    "steak_house": "Steak",
    "seafood_restaurant": "Seafood",
    "vegan_restaurant": "Vegan",
    "vegetarian_restaurant": "Vegetarian",
    "breakfast_restaurant": "Breakfast",
    "brunch_restaurant": "Brunch",
    "ice_cream_shop": "Desserts",
    "dessert_shop": "Desserts",
    "italian_restaurant": "Italian",
    "japanese_restaurant": "Japanese",
    "chinese_restaurant": "Chinese",
    "thai_restaurant": "Thai",
    "indian_restaurant": "Indian",
    "mexican_restaurant": "Mexican",
    "mediterranean_restaurant": "Mediterranean",
    "middle_eastern_restaurant": "Middle Eastern",
    "american_restaurant": "American",
    "french_restaurant": "French",
    "greek_restaurant": "Greek",
    "turkish_restaurant": "Turkish",
    "korean_restaurant": "Korean",
    "vietnamese_restaurant": "Vietnamese",
}

_CITY_COMPONENT_PRIORITY = (
    "locality",
    "sublocality",
    "administrative_area_level_2",
    "administrative_area_level_1",
)

_DAY_NAMES = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")

KOSHER_KEYWORDS = ("kosher", "mehadrin", "badatz", "כשר", "מהדרין", 'בד"ץ')
VEGETARIAN_KEYWORDS = ("vegan", "vegetarian", "plant-based", "plant based", "טבעוני", "צמחוני")

MAX_PHOTOS = 5
MAX_REVIEWS = 5
EMBEDDING_REVIEW_COUNT = 3
EMBEDDING_REVIEW_CHARS = 200
EMBEDDING_TEXT_CHARS = 8000
REVIEWS_TEXT_CHARS = 6000


class PayloadValidationError(ValueError):
    """Raised when a provider payload lacks the fields a record needs."""


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_candidate(raw: Mapping[str, Any]) -> PlaceCandidate:
    """Validate one nearby-search result into a :class:`PlaceCandidate`."""
    if not isinstance(raw, Mapping):
        raise PayloadValidationError(f"result must be an object, got {type(raw).__name__}")
    place_id = raw.get("place_id")
    if not place_id or not isinstance(place_id, str):
        raise PayloadValidationError("result is missing place_id")

    location = (raw.get("geometry") or {}).get("location") or {}
    try:
        lat = float(location["lat"])
        lng = float(location["lng"])
    except (KeyError, TypeError, ValueError) as exc:
        raise PayloadValidationError(f"result {place_id} has no usable geometry") from exc

    types = raw.get("types") or []
    if not isinstance(types, list):
        types = []

    return PlaceCandidate(
        place_id=place_id,
        name=str(raw.get("name") or ""),
        lat=lat,
        lng=lng,
        rating=_optional_float(raw.get("rating")),
        review_count=_optional_int(raw.get("user_ratings_total")),
        price_level=_optional_int(raw.get("price_level")),
        types=[str(t) for t in types],
        vicinity=raw.get("vicinity"),
        raw=dict(raw),
    )


def extract_city(address_components: Iterable[Dict[str, Any]]) -> Optional[str]:
    by_type: Dict[str, str] = {}
    for component in address_components or []:
        for type_name in component.get("types", []):
            by_type.setdefault(type_name, component.get("long_name"))
    for type_name in _CITY_COMPONENT_PRIORITY:
        if by_type.get(type_name):
            return by_type[type_name]
    return None


def _format_time(raw: Optional[str]) -> Optional[str]:
    if not raw or len(raw) != 4 or not raw.isdigit():
        return None
    return f"{raw[:2]}:{raw[2:]}"


def normalize_opening_hours(opening_hours: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """Convert provider ``periods`` into a weekly schedule keyed by day name.

    Each day maps to ``{"open": "HH:MM", "close": "HH:MM"}``, or to a list of
    such ranges when the venue closes in the middle of the day. A close time
    earlier than the open time wraps past midnight. A single period without a
    close means the venue never closes.
    """
    if not opening_hours:
        return None

    periods = opening_hours.get("periods") or []
    schedule: Dict[str, Any] = {}

    if len(periods) == 1 and not periods[0].get("close"):
        for day in _DAY_NAMES:
            schedule[day] = {"open": "00:00", "close": "24:00"}
    else:
        for period in periods:
            opened = period.get("open") or {}
            closed = period.get("close") or {}
            day = opened.get("day")
            open_time = _format_time(opened.get("time"))
            close_time = _format_time(closed.get("time"))
            if not isinstance(day, int) or not 0 <= day <= 6 or not open_time or not close_time:
                logger.debug("Ignoring malformed opening period %s", period)
                continue
            slot = {"open": open_time, "close": close_time}
            name = _DAY_NAMES[day]
            existing = schedule.get(name)
            if existing is None:
                schedule[name] = slot
            elif isinstance(existing, list):
                existing.append(slot)
            else:
                schedule[name] = [existing, slot]

    weekday_text = opening_hours.get("weekday_text")
    if weekday_text:
        schedule["weekday_text"] = list(weekday_text)
    return schedule or None


def parse_details(result: Mapping[str, Any]) -> PlaceDetails:
    photos = [
        {
            "photo_reference": photo.get("photo_reference"),
            "width": photo.get("width"),
            "height": photo.get("height"),
        }
        for photo in (result.get("photos") or [])[:MAX_PHOTOS]
        if photo.get("photo_reference")
    ]
    reviews = [
        {
            "author_name": review.get("author_name"),
            "rating": review.get("rating"),
            "text": review.get("text") or "",
            "time": review.get("time"),
            "language": review.get("language"),
        }
        for review in (result.get("reviews") or [])[:MAX_REVIEWS]
    ]
    return PlaceDetails(
        address=result.get("formatted_address"),
        phone=result.get("formatted_phone_number"),
        website=result.get("website"),
        opening_hours=normalize_opening_hours(result.get("opening_hours")),
        reviews=reviews,
        photos=photos,
        address_components=list(result.get("address_components") or []),
    )


def categories_from_types(types: Iterable[str]) -> List[str]:
    """Map provider place types onto the closed cuisine vocabulary."""
    categories: List[str] = []
    for type_name in types or []:
        category = _TYPE_TO_CATEGORY.get(type_name)
        if category and category not in categories:
            categories.append(category)
    return categories[:2]


def _contains_keyword(texts: Iterable[Optional[str]], keywords: Sequence[str]) -> bool:
    haystack = " ".join(text for text in texts if text).lower()
    return any(keyword.lower() in haystack for keyword in keywords)


def detect_kosher(name: str, address: Optional[str], reviews: Iterable[Dict[str, Any]]) -> bool:
    return _contains_keyword([name, address, *(r.get("text") for r in reviews)], KOSHER_KEYWORDS)


def detect_vegetarian(name: str, reviews: Iterable[Dict[str, Any]]) -> bool:
    return _contains_keyword([name, *(r.get("text") for r in reviews)], VEGETARIAN_KEYWORDS)


def build_embedding_text(
    name: str,
    summary: Optional[str],
    categories: Sequence[str],
    city: Optional[str],
    reviews: Sequence[Dict[str, Any]],
) -> str:
    parts = [name, summary or "", ", ".join(categories), city or ""]
    for review in reviews[:EMBEDDING_REVIEW_COUNT]:
        text = (review.get("text") or "")[:EMBEDDING_REVIEW_CHARS]
        if text:
            parts.append(text)
    return " ".join(part for part in parts if part).strip()[:EMBEDDING_TEXT_CHARS]


def build_reviews_text(reviews: Sequence[Dict[str, Any]]) -> str:
    texts = [review.get("text") or "" for review in reviews]
    return " | ".join(text for text in texts if text)[:REVIEWS_TEXT_CHARS]
