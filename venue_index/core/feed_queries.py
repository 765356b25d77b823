"""Read-only queries over the social tables that the feed and detail views join."""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from venue_index.core.db import fetch_all, fetch_one

SAMPLE_LIMIT = 100
MUTUAL_FRIENDS_LIMIT = 50

_RESTAURANT_COLUMNS = "id, name, address, city, google_place_id, image_url, latitude, longitude"


def _ids(values: Iterable[Any]) -> List[str]:
    return [str(v) for v in dict.fromkeys(v for v in values if v is not None)]


def restaurants_nearby(lat: float, lng: float, radius_meters: int) -> List[Dict[str, Any]]:
    return fetch_all(
        """
        SELECT id, ST_Distance(location, ST_SetSRID(ST_MakePoint(%(lng)s, %(lat)s), 4326)::geography) AS distance_meters
        FROM restaurants
        WHERE location IS NOT NULL
          AND ST_DWithin(location, ST_SetSRID(ST_MakePoint(%(lng)s, %(lat)s), 4326)::geography, %(radius)s)
        ORDER BY distance_meters
        """,
        {"lat": lat, "lng": lng, "radius": radius_meters},
    )


def sample_restaurant_ids(limit: int = SAMPLE_LIMIT) -> List[str]:
    rows = fetch_all("SELECT id FROM restaurants LIMIT %s", (limit,))
    return [str(row["id"]) for row in rows]


def following_ids(user_id: str) -> List[str]:
    rows = fetch_all("SELECT following_id FROM follows WHERE follower_id = %s", (user_id,))
    return [str(row["following_id"]) for row in rows]


def published_reviews(
    restaurant_ids: Sequence[str],
    author_ids: Optional[Sequence[str]] = None,
    city: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Published reviews for the given venues, newest first, with their venue columns."""
    if not restaurant_ids:
        return []
    clauses = ["r.restaurant_id = ANY(%(restaurant_ids)s::uuid[])", "r.is_published"]
    params: Dict[str, Any] = {"restaurant_ids": _ids(restaurant_ids)}
    if author_ids is not None:
        clauses.append("r.user_id = ANY(%(author_ids)s::uuid[])")
        params["author_ids"] = _ids(author_ids)
    if city:
        clauses.append("v.city ILIKE %(city)s")
        params["city"] = city
    return fetch_all(
        f"""
        SELECT r.id, r.rating, r.content, r.created_at, r.user_id, r.restaurant_id,
               v.name AS restaurant_name, v.address AS restaurant_address, v.city AS restaurant_city,
               v.google_place_id, v.image_url, v.latitude, v.longitude
        FROM reviews r
        JOIN restaurants v ON v.id = r.restaurant_id
        WHERE {" AND ".join(clauses)}
        ORDER BY r.created_at DESC
        """,
        params,
    )


def review_photos(review_ids: Sequence[str]) -> List[Dict[str, Any]]:
    if not review_ids:
        return []
    return fetch_all(
        """
        SELECT review_id, id, photo_url, sort_order
        FROM review_photos
        WHERE review_id = ANY(%s::uuid[])
        """,
        (_ids(review_ids),),
    )


def review_videos(review_ids: Sequence[str]) -> List[Dict[str, Any]]:
    if not review_ids:
        return []
    return fetch_all(
        """
        SELECT review_id, id, video_url, thumbnail_url, duration_seconds, sort_order
        FROM review_videos
        WHERE review_id = ANY(%s::uuid[])
        """,
        (_ids(review_ids),),
    )


def _counts(table: str, review_ids: Sequence[str]) -> Dict[str, int]:
    if not review_ids:
        return {}
    rows = fetch_all(
        f"SELECT review_id, COUNT(*) AS count FROM {table} WHERE review_id = ANY(%s::uuid[]) GROUP BY review_id",
        (_ids(review_ids),),
    )
    return {str(row["review_id"]): int(row["count"]) for row in rows}


def like_counts(review_ids: Sequence[str]) -> Dict[str, int]:
    return _counts("review_likes", review_ids)


def comment_counts(review_ids: Sequence[str]) -> Dict[str, int]:
    return _counts("review_comments", review_ids)


def liked_by(user_id: Optional[str], review_ids: Sequence[str]) -> Set[str]:
    if not user_id or not review_ids:
        return set()
    rows = fetch_all(
        "SELECT review_id FROM review_likes WHERE user_id = %s AND review_id = ANY(%s::uuid[])",
        (user_id, _ids(review_ids)),
    )
    return {str(row["review_id"]) for row in rows}


def profiles(user_ids: Sequence[str]) -> Dict[str, Dict[str, Any]]:
    if not user_ids:
        return {}
    rows = fetch_all(
        "SELECT id, username, full_name, avatar_url FROM profiles WHERE id = ANY(%s::uuid[])",
        (_ids(user_ids),),
    )
    return {str(row["id"]): row for row in rows}


def wishlisted(user_id: Optional[str], restaurant_ids: Sequence[str]) -> Set[str]:
    if not user_id or not restaurant_ids:
        return set()
    rows = fetch_all(
        "SELECT restaurant_id FROM wishlist WHERE user_id = %s AND restaurant_id = ANY(%s::uuid[])",
        (user_id, _ids(restaurant_ids)),
    )
    return {str(row["restaurant_id"]) for row in rows}


def friends_who_reviewed(restaurant_ids: Sequence[str], friend_ids: Sequence[str]) -> Dict[str, List[Dict[str, Any]]]:
    """Followed users who reviewed each venue, one query for all venues."""
    if not restaurant_ids or not friend_ids:
        return {}
    rows = fetch_all(
        """
        SELECT r.restaurant_id, p.id, p.full_name, p.avatar_url
        FROM reviews r
        JOIN profiles p ON p.id = r.user_id
        WHERE r.restaurant_id = ANY(%s::uuid[]) AND r.user_id = ANY(%s::uuid[])
        LIMIT %s
        """,
        (_ids(restaurant_ids), _ids(friend_ids), MUTUAL_FRIENDS_LIMIT),
    )
    friends: Dict[str, List[Dict[str, Any]]] = {}
    for row in rows:
        entries = friends.setdefault(str(row["restaurant_id"]), [])
        if any(entry["id"] == str(row["id"]) for entry in entries):
            continue
        entries.append({"id": str(row["id"]), "name": row["full_name"], "avatarUrl": row["avatar_url"]})
    return friends


def restaurant_by_id(restaurant_id: str) -> Optional[Dict[str, Any]]:
    return fetch_one(
        f"SELECT {_RESTAURANT_COLUMNS} FROM restaurants WHERE id::text = %s",
        (restaurant_id,),
    )


def restaurant_by_place_id(place_id: str) -> Optional[Dict[str, Any]]:
    return fetch_one(
        f"SELECT {_RESTAURANT_COLUMNS} FROM restaurants WHERE google_place_id = %s",
        (place_id,),
    )


def user_has_reviewed(user_id: str, restaurant_id: str) -> bool:
    row = fetch_one(
        "SELECT 1 AS found FROM reviews WHERE user_id = %s AND restaurant_id = %s LIMIT 1",
        (user_id, restaurant_id),
    )
    return row is not None
