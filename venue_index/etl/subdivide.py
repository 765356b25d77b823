"""Adaptive quadrant subdivision around saturated nearby searches."""

import logging
import math
import time
from collections import deque
from typing import Callable, Deque, List, Optional, Tuple

from venue_index.core.config import get_settings
from venue_index.core.models import PlaceCandidate, ScanContext
from venue_index.etl.scanner import ScanResult, scan_area

logger = logging.getLogger(__name__)

METERS_PER_DEGREE = 111_000.0

Scanner = Callable[[float, float, int], ScanResult]
_WorkItem = Tuple[float, float, int, int]


def quadrants(lat: float, lng: float, radius: int) -> List[Tuple[float, float, int]]:
    """Return NW, NE, SW, SE centres offset by half the radius, at half the radius."""
    offset_m = radius / 2
    dlat = offset_m / METERS_PER_DEGREE
    dlng = offset_m / (METERS_PER_DEGREE * max(math.cos(math.radians(lat)), 1e-6))
    child_radius = max(1, int(radius / 2 + 0.5))
    return [
        (lat + dlat, lng - dlng, child_radius),
        (lat + dlat, lng + dlng, child_radius),
        (lat - dlat, lng - dlng, child_radius),
        (lat - dlat, lng + dlng, child_radius),
    ]


def gather(
    lat: float,
    lng: float,
    radius: int,
    ctx: ScanContext,
    *,
    depth: int = 0,
    max_depth: Optional[int] = None,
    min_radius: Optional[int] = None,
    scanner: Scanner = scan_area,
    sleep: Callable[[float], None] = time.sleep,
    max_scans: Optional[int] = None,
) -> List[PlaceCandidate]:
    """Collect candidates around a point, splitting saturated areas into quadrants.

    Work is processed breadth-first from an explicit queue. Every result is
    checked against ``ctx.seen`` so a venue observed by any earlier scan of the
    same run is never returned twice. The number of scans started from one call
    never exceeds ``max_scans`` (``4 ** max_depth`` unless given); a quadrant
    group that does not fit the remaining budget is not queued. The first scan
    counts toward that budget, so ``max_depth=1`` never splits (four scans
    cannot hold the root plus four quadrants) and the default depth of 3 allows
    at most 61 scans: the root, four quadrants and fourteen further groups.
    """
    settings = get_settings()
    if max_depth is None:
        max_depth = settings.subdivide_max_depth
    if min_radius is None:
        min_radius = settings.subdivide_min_radius
    if max_scans is None:
        max_scans = 4 ** max(max_depth - depth, 0)

    queue: Deque[_WorkItem] = deque([(lat, lng, radius, depth)])
    reserved = 1
    collected: List[PlaceCandidate] = []

    while queue:
        item_lat, item_lng, item_radius, item_depth = queue.popleft()
        if item_depth > depth:
            sleep(settings.subdivide_delay_seconds)

        scan = scanner(item_lat, item_lng, item_radius)
        ctx.scans += 1

        for candidate in scan.results:
            if candidate.place_id in ctx.seen:
                continue
            ctx.seen.add(candidate.place_id)
            collected.append(candidate)

        if not scan.hit_limit:
            continue
        if item_depth >= max_depth or item_radius <= min_radius:
            ctx.saturated_areas += 1
            logger.warning(
                "Area %.4f,%.4f r=%dm still saturated at depth %d; may be missing restaurants",
                item_lat,
                item_lng,
                item_radius,
                item_depth,
            )
            continue
        if reserved + 4 > max_scans:
            ctx.saturated_areas += 1
            logger.warning(
                "Scan budget of %d exhausted at %.4f,%.4f r=%dm; may be missing restaurants",
                max_scans,
                item_lat,
                item_lng,
                item_radius,
            )
            continue

        reserved += 4
        ctx.subdivisions += 1
        logger.info(
            "Subdividing %.4f,%.4f r=%dm (depth %d, %d results)",
            item_lat,
            item_lng,
            item_radius,
            item_depth,
            len(scan.results),
        )
        for q_lat, q_lng, q_radius in quadrants(item_lat, item_lng, item_radius):
            queue.append((q_lat, q_lng, q_radius, item_depth + 1))

    return collected
