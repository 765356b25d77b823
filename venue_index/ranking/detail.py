"""Aggregate payload for a single venue page."""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Dict, List, Optional

from venue_index.core import db, feed_queries
from venue_index.ranking import match
from venue_index.ranking.feed import is_open

logger = logging.getLogger(__name__)

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)

_executor = ThreadPoolExecutor(max_workers=6)


def _resolve(venue_id: str) -> Optional[Dict[str, Any]]:
    if _UUID_RE.match(venue_id):
        return feed_queries.restaurant_by_id(venue_id)
    restaurant = feed_queries.restaurant_by_place_id(venue_id)
    if restaurant:
        return restaurant
    cached = db.get_cached_venue(venue_id)
    if not cached:
        return None
    # Known only to the cache: nobody has reviewed it yet.
    return {
        "id": None,
        "name": cached["name"],
        "address": cached.get("address"),
        "city": cached.get("city"),
        "google_place_id": cached["place_id"],
        "image_url": None,
        "latitude": cached.get("latitude"),
        "longitude": cached.get("longitude"),
    }


def _review_rows(reviews, photos, likes, comments, liked, profiles) -> List[Dict[str, Any]]:
    photos_by_review: Dict[str, List[Any]] = {}
    for photo in sorted(photos, key=lambda p: p.get("sort_order") or 0):
        photos_by_review.setdefault(str(photo["review_id"]), []).append(photo["photo_url"])

    rows = []
    for review in reviews:
        review_id = str(review["id"])
        profile = profiles.get(str(review["user_id"])) or {}
        created_at = review.get("created_at")
        rows.append(
            {
                "id": review_id,
                "rating": review.get("rating"),
                "content": review.get("content") or "",
                "createdAt": created_at.isoformat() if hasattr(created_at, "isoformat") else created_at,
                "likesCount": likes.get(review_id, 0),
                "commentsCount": comments.get(review_id, 0),
                "isLiked": review_id in liked,
                "user": {
                    "id": str(review["user_id"]),
                    "username": profile.get("username"),
                    "fullName": profile.get("full_name") or profile.get("username"),
                    "avatarUrl": profile.get("avatar_url"),
                },
                "photos": photos_by_review.get(review_id, []),
            }
        )
    return rows


def _has_reviewed(viewer_id: Optional[str], restaurant_id: Optional[str]) -> bool:
    if not viewer_id or not restaurant_id:
        return False
    return feed_queries.user_has_reviewed(viewer_id, restaurant_id)


def build_venue_detail(venue_id: str, viewer_id: Optional[str] = None, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    """Venue, cached details, reviews and the viewer's social context; ``None`` if unknown."""
    restaurant = _resolve(venue_id)
    if restaurant is None:
        return None

    now = now or datetime.now()
    restaurant_id = str(restaurant["id"]) if restaurant.get("id") else None
    place_id = restaurant.get("google_place_id")

    cached_future = _executor.submit(db.get_cached_venue, place_id) if place_id else None
    reviews = feed_queries.published_reviews([restaurant_id]) if restaurant_id else []
    review_ids = [str(review["id"]) for review in reviews]
    friends = feed_queries.following_ids(viewer_id) if viewer_id else []

    futures = {
        "photos": _executor.submit(feed_queries.review_photos, review_ids),
        "likes": _executor.submit(feed_queries.like_counts, review_ids),
        "comments": _executor.submit(feed_queries.comment_counts, review_ids),
        "liked": _executor.submit(feed_queries.liked_by, viewer_id, review_ids),
        "profiles": _executor.submit(feed_queries.profiles, [review["user_id"] for review in reviews]),
        "friends": _executor.submit(feed_queries.friends_who_reviewed, [restaurant_id] if restaurant_id else [], friends),
        "wishlist": _executor.submit(feed_queries.wishlisted, viewer_id, [restaurant_id] if restaurant_id else []),
        "scores": _executor.submit(match.score_batch, viewer_id, [place_id] if place_id else []),
        "own": _executor.submit(_has_reviewed, viewer_id, restaurant_id),
    }
    joined = {name: future.result() for name, future in futures.items()}
    cached = cached_future.result() if cached_future else None
    cached = cached or {}

    review_rows = _review_rows(
        reviews, joined["photos"], joined["likes"], joined["comments"], joined["liked"], joined["profiles"]
    )
    opening_hours = cached.get("opening_hours")
    payload = {
        "id": restaurant_id or place_id,
        "name": restaurant.get("name"),
        "nameLocal": cached.get("name_local"),
        "address": restaurant.get("address") or cached.get("address"),
        "city": restaurant.get("city") or cached.get("city"),
        "googlePlaceId": place_id,
        "imageUrl": restaurant.get("image_url"),
        "latitude": restaurant.get("latitude"),
        "longitude": restaurant.get("longitude"),
        "phone": cached.get("phone"),
        "website": cached.get("website"),
        "rating": cached.get("rating"),
        "reviewCount": cached.get("review_count"),
        "priceLevel": cached.get("price_level"),
        "categories": cached.get("categories") or [],
        "isKosher": bool(cached.get("is_kosher")),
        "isVegetarian": bool(cached.get("is_vegetarian")),
        "summary": cached.get("summary_text"),
        "openingHours": opening_hours,
        "isOpen": is_open(opening_hours, now),
        "photos": cached.get("photos") or [],
        "matchPercentage": joined["scores"].get(place_id, match.DEFAULT_MATCH_SCORE) if place_id else match.DEFAULT_MATCH_SCORE,
        "reviews": review_rows,
        "friendsWhoReviewed": joined["friends"].get(restaurant_id, []) if restaurant_id else [],
        "userHasReviewed": joined["own"],
        "isWishlisted": restaurant_id in joined["wishlist"] if restaurant_id else False,
    }
    logger.debug("Built detail for %s with %d reviews", venue_id, len(review_rows))
    return payload
