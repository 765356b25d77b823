"""HTTP entrypoint for venue search, feed, detail and cache population."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from venue_index.core import db
from venue_index.core.config import get_settings
from venue_index.jobs.populate import run_population
from venue_index.ranking.cache import (
    CACHE_TTL,
    detail_cache,
    feed_cache,
    make_key,
    normalize_feed_params,
    search_cache,
)
from venue_index.ranking.detail import build_venue_detail
from venue_index.ranking.feed import FeedRequest, build_feed

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)

VIEWER_HEADER = "X-User-Id"


class RequestValidationError(ValueError):
    """Raised for a missing or malformed request parameter."""


@app.errorhandler(RequestValidationError)
def handle_validation_error(exc: RequestValidationError) -> Any:
    return jsonify({"error": str(exc)}), 400


@app.errorhandler(Exception)
def handle_unexpected_error(exc: Exception) -> Any:
    if isinstance(exc, HTTPException):
        return jsonify({"error": exc.description}), exc.code
    logger.exception("Unhandled error on %s %s: %s", request.method, request.path, exc)
    return jsonify({"error": "Internal server error"}), 500


# ---------- Parameter helpers ----------


def _viewer_id() -> Optional[str]:
    value = request.headers.get(VIEWER_HEADER, "").strip()
    return value or None


def _int_arg(name: str, default: int, minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RequestValidationError(f"{name} must be an integer") from exc
    if minimum is not None and value < minimum:
        raise RequestValidationError(f"{name} must be >= {minimum}")
    if maximum is not None and value > maximum:
        raise RequestValidationError(f"{name} must be <= {maximum}")
    return value


def _float_arg(name: str, minimum: float, maximum: float) -> float:
    raw = request.args.get(name)
    if raw is None or raw == "":
        raise RequestValidationError(f"{name} is required")
    try:
        value = float(raw)
    except ValueError as exc:
        raise RequestValidationError(f"{name} must be numeric") from exc
    if not minimum <= value <= maximum:
        raise RequestValidationError(f"{name} must be between {minimum} and {maximum}")
    return value


def _body_number(payload: Dict[str, Any], name: str, default: float, cast=float) -> Any:
    value = payload.get(name, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RequestValidationError(f"{name} must be numeric")
    if value < 0:
        raise RequestValidationError(f"{name} must not be negative")
    return cast(value)


# ---------- Routes ----------


@app.get("/healthz")
def healthcheck() -> Any:
    settings = get_settings()
    return jsonify({"status": "ok", "worker_port_config": settings.worker_port}), 200


@app.get("/search")
def search() -> Any:
    query = (request.args.get("query") or "").strip()
    if len(query) < 2:
        raise RequestValidationError("query must be at least 2 characters")
    limit = _int_arg("limit", 10, minimum=1, maximum=50)

    key = make_key("search", {"query": query.lower(), "limit": limit})
    cached = search_cache.get(key)
    if cached is not None:
        return jsonify(cached), 200

    response = {"results": db.search_venues(query, limit)}
    search_cache.set(key, response, CACHE_TTL["search"])
    return jsonify(response), 200


@app.post("/populate")
def populate() -> Any:
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise RequestValidationError("body must be a JSON object")

    region = payload.get("region", "israel")
    if not isinstance(region, str):
        raise RequestValidationError("region must be a string")
    force_update = payload.get("forceUpdate", False)
    if not isinstance(force_update, bool):
        raise RequestValidationError("forceUpdate must be a boolean")

    batch_size = _body_number(payload, "batchSize", 5, int)
    if batch_size < 1:
        raise RequestValidationError("batchSize must be positive")
    radius = _body_number(payload, "radius", 1500, int)
    if radius < 1:
        raise RequestValidationError("radius must be positive")
    # Delays arrive in milliseconds.
    delay_between_batches = _body_number(payload, "delayBetweenBatches", 3000) / 1000
    delay_between_areas = _body_number(payload, "delayBetweenAreas", 5000) / 1000

    logger.info("Population requested: region=%s force_update=%s batch_size=%d", region, force_update, batch_size)
    result = run_population(
        region=region,
        force_update=force_update,
        batch_size=batch_size,
        delay_between_batches=delay_between_batches,
        delay_between_areas=delay_between_areas,
        radius=radius,
    )
    return jsonify(
        {"stats": result.stats.as_dict(), "durationSeconds": result.duration_seconds, "region": result.region}
    ), 200


@app.get("/populate")
def populate_status() -> Any:
    return jsonify(db.cache_status()), 200


@app.get("/feed")
def feed() -> Any:
    feed_request = FeedRequest(
        latitude=_float_arg("latitude", -90.0, 90.0),
        longitude=_float_arg("longitude", -180.0, 180.0),
        radius=_int_arg("radius", 50000, minimum=1),
        page=_int_arg("page", 0, minimum=0),
        limit=_int_arg("limit", 10, minimum=1, maximum=50),
        tab=request.args.get("tab") or "foryou",
        city=request.args.get("city") or None,
    )
    if feed_request.tab not in {"foryou", "following"}:
        raise RequestValidationError("tab must be 'foryou' or 'following'")

    viewer_id = _viewer_id()
    if viewer_id:
        # Personalized responses never touch the shared cache.
        return jsonify(build_feed(feed_request, viewer_id=viewer_id)), 200

    key = make_key("feed", normalize_feed_params(feed_request.cache_params()))
    cached = feed_cache.get(key)
    if cached is not None:
        return jsonify(cached), 200

    response = build_feed(feed_request)
    feed_cache.set(key, response, CACHE_TTL["feed"])
    return jsonify(response), 200


@app.get("/venue/<venue_id>")
def venue_detail(venue_id: str) -> Any:
    viewer_id = _viewer_id()
    key = make_key("venue", {"id": venue_id})
    if not viewer_id:
        cached = detail_cache.get(key)
        if cached is not None:
            return jsonify(cached), 200

    payload = build_venue_detail(venue_id, viewer_id=viewer_id)
    if payload is None:
        return jsonify({"error": "Venue not found"}), 404
    if not viewer_id:
        detail_cache.set(key, payload, CACHE_TTL["venue"])
    return jsonify(payload), 200


def main() -> None:
    port = int(os.getenv("PORT") or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
