"""Review feed around a point: venue lookup, parallel joins, pagination and scoring."""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from venue_index.core import db, feed_queries
from venue_index.core.config import get_settings
from venue_index.ranking import match

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000.0
_DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_executor = ThreadPoolExecutor(max_workers=8)


@dataclass(slots=True)
class FeedRequest:
    latitude: float
    longitude: float
    radius: int = 50000
    page: int = 0
    limit: int = 10
    tab: str = "foryou"
    city: Optional[str] = None

    def cache_params(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "radius": self.radius,
            "page": self.page,
            "limit": self.limit,
            "tab": self.tab,
            "city": self.city,
        }


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _minutes(value: str) -> Optional[int]:
    try:
        hours, minutes = value.split(":")
        return int(hours) * 60 + int(minutes)
    except (AttributeError, ValueError):
        return None


def _ranges(day_hours: Any) -> List[Tuple[int, int]]:
    entries = day_hours if isinstance(day_hours, list) else [day_hours]
    ranges = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        opened = _minutes(entry.get("open", ""))
        closed = _minutes(entry.get("close", ""))
        if opened is not None and closed is not None:
            ranges.append((opened, closed))
    return ranges


def is_open(opening_hours: Optional[Mapping[str, Any]], now: datetime) -> bool:
    """Whether the weekly schedule is open at ``now`` (venue local time).

    A range whose close is not after its open runs past midnight; its tail is
    read from the previous day's entry.
    """
    if not opening_hours:
        return False
    current = now.hour * 60 + now.minute
    today = _DAY_NAMES[now.weekday()]
    yesterday = _DAY_NAMES[(now - timedelta(days=1)).weekday()]

    for opened, closed in _ranges(opening_hours.get(today)):
        if closed > opened:
            if opened <= current < closed:
                return True
        elif current >= opened:
            return True
    for opened, closed in _ranges(opening_hours.get(yesterday)):
        if closed <= opened and current < closed:
            return True
    return False


def paginate(rows: Sequence[Any], page: int, limit: int) -> Tuple[List[Any], bool]:
    start = page * limit
    return list(rows[start:start + limit]), len(rows) > start + limit


def _media_by_review(photos: List[Dict[str, Any]], videos: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    media: Dict[str, List[Dict[str, Any]]] = {}
    for photo in photos:
        media.setdefault(str(photo["review_id"]), []).append(
            {"id": str(photo["id"]), "type": "photo", "url": photo["photo_url"], "sortOrder": photo.get("sort_order") or 0}
        )
    for video in videos:
        media.setdefault(str(video["review_id"]), []).append(
            {
                "id": str(video["id"]),
                "type": "video",
                "url": video["video_url"],
                "thumbnailUrl": video.get("thumbnail_url"),
                "durationSeconds": video.get("duration_seconds"),
                "sortOrder": video.get("sort_order") or 0,
            }
        )
    for items in media.values():
        items.sort(key=lambda item: item["sortOrder"])
    return media


def _resolve_venues(request: FeedRequest) -> Dict[str, float]:
    nearby = feed_queries.restaurants_nearby(request.latitude, request.longitude, request.radius)
    if nearby:
        return {str(row["id"]): float(row.get("distance_meters") or 0.0) for row in nearby}
    logger.info("No venues within %dm of %.3f,%.3f; using a sample", request.radius, request.latitude, request.longitude)
    return {venue_id: 0.0 for venue_id in feed_queries.sample_restaurant_ids()}


def build_feed(request: FeedRequest, viewer_id: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Assemble one page of the review feed.

    Related rows are fetched for the whole candidate set at once and in
    parallel; match scores come from a single batched call for the page.
    """
    now = now or datetime.now()
    empty = {"reviews": [], "hasMore": False}

    distances = _resolve_venues(request)
    if not distances:
        return empty

    friends: List[str] = feed_queries.following_ids(viewer_id) if viewer_id else []
    authors: Optional[List[str]] = None
    if request.tab == "following":
        if not friends:
            return empty
        authors = friends

    reviews = feed_queries.published_reviews(list(distances), author_ids=authors, city=request.city)
    if not reviews:
        return empty

    review_ids = [str(review["id"]) for review in reviews]
    place_ids = [review["google_place_id"] for review in reviews if review.get("google_place_id")]
    futures = {
        "photos": _executor.submit(feed_queries.review_photos, review_ids),
        "videos": _executor.submit(feed_queries.review_videos, review_ids),
        "likes": _executor.submit(feed_queries.like_counts, review_ids),
        "comments": _executor.submit(feed_queries.comment_counts, review_ids),
        "liked": _executor.submit(feed_queries.liked_by, viewer_id, review_ids),
        "profiles": _executor.submit(feed_queries.profiles, [review["user_id"] for review in reviews]),
        "hours": _executor.submit(db.fetch_opening_hours, place_ids),
    }
    joined = {name: future.result() for name, future in futures.items()}

    media = _media_by_review(joined["photos"], joined["videos"])
    with_media = [review for review in reviews if media.get(str(review["id"]))]
    used_fallback = not with_media
    if used_fallback:
        with_media = reviews

    page_rows, has_more = paginate(with_media, request.page, request.limit)
    page_venue_ids = list(dict.fromkeys(str(review["restaurant_id"]) for review in page_rows))
    page_place_ids = [review["google_place_id"] for review in page_rows if review.get("google_place_id")]

    wishlist_future = _executor.submit(feed_queries.wishlisted, viewer_id, page_venue_ids)
    friends_future = _executor.submit(feed_queries.friends_who_reviewed, page_venue_ids, friends)
    scores_future = _executor.submit(match.score_batch, viewer_id, page_place_ids)
    wishlist = wishlist_future.result()
    mutual_friends = friends_future.result()
    scores = scores_future.result()

    page = _Page(
        request=request,
        joined=joined,
        media=media,
        used_fallback=used_fallback,
        distances=distances,
        wishlist=wishlist,
        mutual_friends=mutual_friends,
        scores=scores,
        missing_score=match.fallback_from_name(get_settings().score_missing_embedding_fallback),
        now=now,
    )
    rows = [_feed_row(review, page) for review in page_rows]
    logger.debug("Feed page %d: %d rows, has_more=%s", request.page, len(rows), has_more)
    return {"reviews": rows, "hasMore": has_more}


@dataclass(slots=True)
class _Page:
    request: FeedRequest
    joined: Dict[str, Any]
    media: Dict[str, List[Dict[str, Any]]]
    used_fallback: bool
    distances: Dict[str, float]
    wishlist: Set[str]
    mutual_friends: Dict[str, List[Dict[str, Any]]]
    scores: Dict[str, int]
    missing_score: Any
    now: datetime


def _feed_row(review: Dict[str, Any], page: _Page) -> Dict[str, Any]:
    request = page.request
    joined = page.joined
    review_id = str(review["id"])
    venue_id = str(review["restaurant_id"])
    place_id = review.get("google_place_id")
    profile = joined["profiles"].get(str(review["user_id"])) or {}

    items = list(page.media.get(review_id, []))
    if not items and page.used_fallback and review.get("image_url"):
        items = [{"id": f"restaurant-{venue_id}", "type": "photo", "url": review["image_url"], "sortOrder": 0}]

    if review.get("latitude") is not None and review.get("longitude") is not None:
        distance_m = haversine_m(request.latitude, request.longitude, float(review["latitude"]), float(review["longitude"]))
    else:
        distance_m = page.distances.get(venue_id, 0.0)

    if place_id:
        match_percentage = page.scores.get(place_id, match.DEFAULT_MATCH_SCORE)
    else:
        match_percentage = page.missing_score.value(venue_id)

    created_at = review.get("created_at")
    return {
        "id": review_id,
        "rating": review.get("rating"),
        "content": review.get("content") or "",
        "createdAt": created_at.isoformat() if hasattr(created_at, "isoformat") else created_at,
        "user": {
            "id": str(review["user_id"]),
            "username": profile.get("username") or "Unknown",
            "fullName": profile.get("full_name") or profile.get("username") or "Unknown",
            "avatarUrl": profile.get("avatar_url"),
        },
        "restaurant": {
            "id": venue_id,
            "name": review.get("restaurant_name"),
            "address": review.get("restaurant_address"),
            "city": review.get("restaurant_city"),
            "distance": round(distance_m / 1000, 2),
            "isOpen": is_open(joined["hours"].get(place_id) if place_id else None, page.now),
            "matchPercentage": match_percentage,
            "googlePlaceId": place_id,
            "imageUrl": review.get("image_url"),
        },
        "media": items,
        "likesCount": joined["likes"].get(review_id, 0),
        "commentsCount": joined["comments"].get(review_id, 0),
        "isLiked": review_id in joined["liked"],
        "isSaved": venue_id in page.wishlist,
        "mutualFriends": page.mutual_friends.get(venue_id, []),
    }
