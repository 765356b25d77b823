"""CLI job that scans a region and fills the venue cache."""

import argparse
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List

from venue_index.core.config import get_settings
from venue_index.core.db import init_pool, upsert_venue
from venue_index.core.models import EnrichOutcome, PlaceCandidate, PopulateStats, ScanContext
from venue_index.etl.enrich import enrich_candidate
from venue_index.etl.grid import REGIONS, areas_for_region
from venue_index.etl.subdivide import gather

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PopulateResult:
    stats: PopulateStats
    duration_seconds: float
    region: str


def _process_candidate(candidate: PlaceCandidate, force_update: bool) -> EnrichOutcome:
    result = enrich_candidate(candidate, force_update)
    if isinstance(result, EnrichOutcome):
        return result
    upsert_venue(result)
    return EnrichOutcome.ADDED


def _run_batch(
    executor: ThreadPoolExecutor,
    batch: List[PlaceCandidate],
    force_update: bool,
    stats: PopulateStats,
) -> None:
    futures = [(candidate, executor.submit(_process_candidate, candidate, force_update)) for candidate in batch]
    for candidate, future in futures:
        stats.processed += 1
        try:
            outcome = future.result()
        except Exception as exc:  # noqa: BLE001
            stats.errors += 1
            logger.error("Failed to enrich %s (%s): %s", candidate.place_id, candidate.name, exc)
            continue
        if outcome is EnrichOutcome.ADDED:
            stats.added += 1
        elif outcome is EnrichOutcome.SKIPPED:
            stats.skipped += 1
        else:
            stats.filtered += 1


def _format_duration(seconds: float) -> str:
    seconds = int(seconds)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def run_population(
    *,
    region: str = "israel",
    force_update: bool = False,
    batch_size: int = 5,
    delay_between_batches: float = 3.0,
    delay_between_areas: float = 5.0,
    radius: int = 1500,
    start_index: int = 0,
    sleep: Callable[[float], None] = time.sleep,
) -> PopulateResult:
    """Scan every area of ``region`` and upsert the enriched venues.

    Areas are processed one after another; candidates of an area are enriched
    in parallel batches of ``batch_size`` where one failure is counted without
    affecting the rest of the batch. Rows written before a fatal error stay.
    """
    settings = get_settings()
    if not settings.google_api_key:
        raise RuntimeError("GOOGLE_API_KEY is required")
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    init_pool()

    areas = areas_for_region(region, radius)[start_index:]
    stats = PopulateStats()
    ctx = ScanContext()
    started = time.monotonic()
    logger.info("Populating region=%s: %d areas, radius=%dm, force_update=%s", region, len(areas), radius, force_update)

    with ThreadPoolExecutor(max_workers=batch_size) as executor:
        for index, area in enumerate(areas, start=1):
            logger.info("[%d/%d] Scanning %s (%.4f, %.4f)", index, len(areas), area.name, area.lat, area.lng)
            candidates = gather(area.lat, area.lng, area.radius, ctx, sleep=sleep)
            stats.areas_scanned += 1
            stats.found += len(candidates)

            for offset in range(0, len(candidates), batch_size):
                _run_batch(executor, candidates[offset:offset + batch_size], force_update, stats)
                if offset + batch_size < len(candidates):
                    sleep(delay_between_batches)

            elapsed = time.monotonic() - started
            remaining = elapsed / index * (len(areas) - index)
            logger.info(
                "[%d/%d] %s done: found=%d added=%d skipped=%d filtered=%d errors=%d elapsed=%s eta=%s",
                index,
                len(areas),
                area.name,
                len(candidates),
                stats.added,
                stats.skipped,
                stats.filtered,
                stats.errors,
                _format_duration(elapsed),
                _format_duration(remaining),
            )
            if index < len(areas):
                sleep(delay_between_areas)

    stats.subdivisions = ctx.subdivisions
    duration = time.monotonic() - started
    logger.info("Completed region=%s in %s: %s", region, _format_duration(duration), stats.as_dict())
    return PopulateResult(stats=stats, duration_seconds=round(duration, 1), region=region)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Populate the venue cache from Google Places")
    parser.add_argument("--region", default="israel", choices=sorted(REGIONS), help="Region to scan")
    parser.add_argument("--force", dest="force_update", action="store_true", help="Re-enrich fresh rows too")
    parser.add_argument("--batch-size", type=int, default=5, help="Candidates enriched in parallel")
    parser.add_argument("--batch-delay", type=float, default=3.0, help="Seconds between batches")
    parser.add_argument("--area-delay", type=float, default=5.0, help="Seconds between scan areas")
    parser.add_argument("--radius", type=int, default=1500, help="Scan radius in meters")
    parser.add_argument("--start-index", type=int, default=0, help="Resume from this area index")
    return parser


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args()

    run_population(
        region=args.region,
        force_update=args.force_update,
        batch_size=args.batch_size,
        delay_between_batches=args.batch_delay,
        delay_between_areas=args.area_delay,
        radius=args.radius,
        start_index=args.start_index,
    )


if __name__ == "__main__":
    main()
