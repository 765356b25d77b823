"""Database helpers for the venue cache."""

import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

import psycopg2
from psycopg2 import extras, pool

from venue_index.core.config import get_settings
from venue_index.core.models import CachedVenue

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.ThreadedConnectionPool] = None
# psycopg2 pools raise PoolError when exhausted; callers wait on this instead.
_connection_slots: Optional[threading.BoundedSemaphore] = None
_pool_lock = threading.Lock()


class PersistenceError(RuntimeError):
    """Raised when a venue row could not be written by any path."""


def init_pool(minconn: int = 1, maxconn: Optional[int] = None) -> pool.ThreadedConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool, _connection_slots
    with _pool_lock:
        if _connection_pool is None:
            settings = get_settings()
            if not settings.database_url:
                raise RuntimeError("DATABASE_URL is required for database connections")
            maxconn = maxconn or settings.db_pool_max
            _connection_pool = pool.ThreadedConnectionPool(
                minconn,
                maxconn,
                dsn=settings.database_url,
                connect_timeout=10,
            )
            _connection_slots = threading.BoundedSemaphore(maxconn)
            logger.info("Database connection pool initialised (max %d connections)", maxconn)
        if _connection_slots is None:
            _connection_slots = threading.BoundedSemaphore(get_settings().db_pool_max)
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection.

    When every connection is checked out the caller blocks until one is
    returned, for at most ``DB_ACQUIRE_TIMEOUT_SECONDS``.
    """
    pg_pool = init_pool()
    slots = _connection_slots
    timeout = get_settings().db_acquire_timeout_seconds
    if not slots.acquire(timeout=timeout):
        raise PersistenceError(f"no database connection became free within {timeout:g}s")
    try:
        conn = pg_pool.getconn()
        try:
            yield conn
        finally:
            pg_pool.putconn(conn)
    finally:
        slots.release()


def fetch_all(sql: str, params: Any = None) -> List[Dict[str, Any]]:
    with get_connection() as conn:
        try:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
        finally:
            conn.rollback()
    return [dict(row) for row in rows]


def fetch_one(sql: str, params: Any = None) -> Optional[Dict[str, Any]]:
    rows = fetch_all(sql, params)
    return rows[0] if rows else None


def vector_literal(values: Optional[Sequence[float]]) -> Optional[str]:
    """Render an embedding as a pgvector literal, rejecting the wrong length."""
    if values is None:
        return None
    expected = get_settings().embedding_dimensions
    if len(values) != expected:
        raise ValueError(f"embedding has {len(values)} dimensions, expected {expected}")
    return "[" + ",".join(repr(float(v)) for v in values) + "]"


def parse_vector(value: Any) -> Optional[List[float]]:
    if value is None:
        return None
    if isinstance(value, str):
        value = json.loads(value)
    return [float(v) for v in value]


def _venue_params(venue: CachedVenue) -> Dict[str, Any]:
    return {
        "place_id": venue.place_id,
        "name": venue.name,
        "name_local": venue.name_local,
        "address": venue.address,
        "city": venue.city,
        "lat": venue.latitude,
        "lng": venue.longitude,
        "phone": venue.phone,
        "website": venue.website,
        "rating": venue.rating,
        "review_count": venue.review_count,
        "price_level": venue.price_level,
        "categories": list(venue.categories),
        "is_kosher": venue.is_kosher,
        "is_vegetarian": venue.is_vegetarian,
        "opening_hours": extras.Json(venue.opening_hours) if venue.opening_hours is not None else None,
        "photos": extras.Json(venue.photos or []),
        "reviews": extras.Json(venue.reviews or []),
        "summary_text": venue.summary_text,
        "summary_embedding": vector_literal(venue.summary_embedding),
        "reviews_embedding": vector_literal(venue.reviews_embedding),
        "reviews_text": venue.reviews_text,
    }


_UPSERT_COLUMNS = """
    place_id,
    name,
    name_local,
    address,
    city,
    latitude,
    longitude,
    phone,
    website,
    rating,
    review_count,
    price_level,
    categories,
    is_kosher,
    is_vegetarian,
    opening_hours,
    photos,
    reviews,
    summary_text,
    summary_embedding,
    reviews_embedding,
    reviews_text,
"""

_UPSERT_VALUES = """
    %(place_id)s,
    %(name)s,
    %(name_local)s,
    %(address)s,
    %(city)s,
    %(lat)s,
    %(lng)s,
    %(phone)s,
    %(website)s,
    %(rating)s,
    %(review_count)s,
    %(price_level)s,
    %(categories)s,
    %(is_kosher)s,
    %(is_vegetarian)s,
    %(opening_hours)s,
    %(photos)s,
    %(reviews)s,
    %(summary_text)s,
    %(summary_embedding)s::vector,
    %(reviews_embedding)s::vector,
    %(reviews_text)s,
"""

_UPSERT_UPDATES = """
    name = EXCLUDED.name,
    name_local = COALESCE(EXCLUDED.name_local, venue_cache.name_local),
    address = EXCLUDED.address,
    city = EXCLUDED.city,
    latitude = EXCLUDED.latitude,
    longitude = EXCLUDED.longitude,
    phone = EXCLUDED.phone,
    website = EXCLUDED.website,
    rating = EXCLUDED.rating,
    review_count = EXCLUDED.review_count,
    price_level = EXCLUDED.price_level,
    categories = EXCLUDED.categories,
    is_kosher = EXCLUDED.is_kosher,
    is_vegetarian = EXCLUDED.is_vegetarian,
    opening_hours = EXCLUDED.opening_hours,
    photos = EXCLUDED.photos,
    reviews = EXCLUDED.reviews,
    summary_text = EXCLUDED.summary_text,
    summary_embedding = EXCLUDED.summary_embedding,
    reviews_embedding = EXCLUDED.reviews_embedding,
    reviews_text = EXCLUDED.reviews_text,
    last_updated = GREATEST(NOW(), venue_cache.last_updated + INTERVAL '1 microsecond')
"""

_UPSERT_WITH_LOCATION = f"""
INSERT INTO venue_cache ({_UPSERT_COLUMNS}
    location,
    last_updated
) VALUES ({_UPSERT_VALUES}
    ST_SetSRID(ST_MakePoint(%(lng)s, %(lat)s), 4326)::geography,
    NOW()
)
ON CONFLICT (place_id) DO UPDATE SET
    location = EXCLUDED.location,{_UPSERT_UPDATES}
RETURNING last_updated;
"""

_UPSERT_WITHOUT_LOCATION = f"""
INSERT INTO venue_cache ({_UPSERT_COLUMNS}
    last_updated
) VALUES ({_UPSERT_VALUES}
    NOW()
)
ON CONFLICT (place_id) DO UPDATE SET{_UPSERT_UPDATES}
RETURNING last_updated;
"""

_UPDATE_LOCATION = """
UPDATE venue_cache
SET location = ST_SetSRID(ST_MakePoint(%(lng)s, %(lat)s), 4326)::geography
WHERE place_id = %(place_id)s;
"""


def _execute_returning(conn, sql: str, params: Dict[str, Any]) -> Optional[datetime]:
    with conn.cursor() as cur:
        cur.execute(sql, params)
        row = cur.fetchone()
    conn.commit()
    return row[0] if row else None


def upsert_venue(venue: CachedVenue) -> Optional[datetime]:
    """Persist an enriched venue keyed by ``place_id`` and return its ``last_updated``.

    The primary statement writes every column including the PostGIS point in
    one transaction. If it fails, the row is written without the point and the
    point is patched in a separate best-effort statement whose failure is only
    logged. :class:`PersistenceError` is raised when neither write succeeds.
    """
    if not venue.place_id or not venue.name:
        raise ValueError("place_id and name are required for upsert")
    params = _venue_params(venue)

    with get_connection() as conn:
        try:
            last_updated = _execute_returning(conn, _UPSERT_WITH_LOCATION, params)
            logger.debug("Upserted venue %s", venue.place_id)
            return last_updated
        except psycopg2.Error as exc:
            conn.rollback()
            logger.warning("Geo upsert failed for %s, falling back: %s", venue.place_id, exc)

        try:
            last_updated = _execute_returning(conn, _UPSERT_WITHOUT_LOCATION, params)
        except psycopg2.Error as exc:
            conn.rollback()
            raise PersistenceError(f"upsert failed for {venue.place_id}: {exc}") from exc

        try:
            with conn.cursor() as cur:
                cur.execute(_UPDATE_LOCATION, params)
            conn.commit()
        except psycopg2.Error as exc:
            conn.rollback()
            logger.warning("Location update failed for %s: %s", venue.place_id, exc)
        return last_updated


def get_last_updated(place_id: str) -> Optional[datetime]:
    row = fetch_one("SELECT last_updated FROM venue_cache WHERE place_id = %s", (place_id,))
    return row["last_updated"] if row else None


def fetch_taste_embedding(user_id: str) -> Optional[List[float]]:
    row = fetch_one("SELECT taste_embedding FROM user_taste_profiles WHERE user_id = %s", (user_id,))
    return parse_vector(row["taste_embedding"]) if row else None


def fetch_venue_embeddings(place_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """Embeddings and rating for every requested venue, in a single query."""
    ids = list(dict.fromkeys(place_ids))
    if not ids:
        return {}
    rows = fetch_all(
        """
        SELECT place_id, rating, summary_embedding, reviews_embedding
        FROM venue_cache
        WHERE place_id = ANY(%s)
        """,
        (ids,),
    )
    return {
        row["place_id"]: {
            "rating": float(row["rating"]) if row["rating"] is not None else None,
            "summary_embedding": parse_vector(row["summary_embedding"]),
            "reviews_embedding": parse_vector(row["reviews_embedding"]),
        }
        for row in rows
    }


def fetch_opening_hours(place_ids: Iterable[str]) -> Dict[str, Any]:
    ids = list(dict.fromkeys(pid for pid in place_ids if pid))
    if not ids:
        return {}
    rows = fetch_all(
        "SELECT place_id, opening_hours FROM venue_cache WHERE place_id = ANY(%s)",
        (ids,),
    )
    return {row["place_id"]: row["opening_hours"] for row in rows if row["opening_hours"]}


_VENUE_COLUMNS = """
    place_id, name, name_local, address, city, latitude, longitude, phone, website,
    rating, review_count, price_level, categories, is_kosher, is_vegetarian,
    opening_hours, photos, summary_text, last_updated
"""


def get_cached_venue(place_id: str) -> Optional[Dict[str, Any]]:
    return fetch_one(f"SELECT {_VENUE_COLUMNS} FROM venue_cache WHERE place_id = %s", (place_id,))


def search_venues(query: str, limit: int = 10) -> List[Dict[str, Any]]:
    pattern = f"%{query}%"
    return fetch_all(
        f"""
        SELECT {_VENUE_COLUMNS}
        FROM venue_cache
        WHERE name ILIKE %(pattern)s OR name_local ILIKE %(pattern)s OR summary_text ILIKE %(pattern)s
        ORDER BY rating DESC NULLS LAST, review_count DESC NULLS LAST
        LIMIT %(limit)s
        """,
        {"pattern": pattern, "limit": limit},
    )


def cache_status() -> Dict[str, Any]:
    totals = fetch_one(
        """
        SELECT COUNT(*) AS total, COUNT(summary_embedding) AS with_embeddings
        FROM venue_cache
        """
    ) or {"total": 0, "with_embeddings": 0}
    cities = fetch_all(
        """
        SELECT COALESCE(city, 'Unknown') AS city, COUNT(*) AS count
        FROM venue_cache
        GROUP BY 1
        ORDER BY count DESC, city
        """
    )
    return {
        "total": int(totals["total"]),
        "withEmbeddings": int(totals["with_embeddings"]),
        "cityCounts": {row["city"]: int(row["count"]) for row in cities},
    }


def venues_missing_embeddings(limit: int, force: bool = False) -> List[Dict[str, Any]]:
    where = "" if force else "WHERE summary_embedding IS NULL OR reviews_embedding IS NULL"
    return fetch_all(
        f"""
        SELECT place_id, name, city, categories, summary_text, reviews,
               summary_embedding IS NOT NULL AS has_summary_embedding,
               reviews_embedding IS NOT NULL AS has_reviews_embedding
        FROM venue_cache
        {where}
        ORDER BY last_updated
        LIMIT %s
        """,
        (limit,),
    )


def update_venue_embeddings(
    place_id: str,
    summary_embedding: Optional[Sequence[float]] = None,
    reviews_embedding: Optional[Sequence[float]] = None,
    reviews_text: Optional[str] = None,
) -> None:
    params = {
        "place_id": place_id,
        "summary_embedding": vector_literal(summary_embedding),
        "reviews_embedding": vector_literal(reviews_embedding),
        "reviews_text": reviews_text,
    }
    with get_connection() as conn:
        try:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE venue_cache SET
                        summary_embedding = COALESCE(%(summary_embedding)s::vector, summary_embedding),
                        reviews_embedding = COALESCE(%(reviews_embedding)s::vector, reviews_embedding),
                        reviews_text = COALESCE(%(reviews_text)s, reviews_text),
                        last_updated = GREATEST(NOW(), last_updated + INTERVAL '1 microsecond')
                    WHERE place_id = %(place_id)s
                    """,
                    params,
                )
            conn.commit()
        except psycopg2.Error as exc:
            conn.rollback()
            raise PersistenceError(f"embedding update failed for {place_id}: {exc}") from exc
