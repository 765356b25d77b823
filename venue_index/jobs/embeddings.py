"""Backfill summary and review embeddings for cached venues that lack them."""

import argparse
import logging
from typing import Any, Dict

from venue_index.core import db
from venue_index.etl import transform
from venue_index.etl.enrich import REVIEWS_EMBEDDING_MIN_CHARS
from venue_index.vendors import openai_client

logger = logging.getLogger(__name__)


def backfill_embeddings(
    limit: int = 100,
    force: bool = False,
    only_summary: bool = False,
    only_reviews: bool = False,
) -> Dict[str, int]:
    db.init_pool()
    rows = db.venues_missing_embeddings(limit, force=force)
    report = {"processed": 0, "summaryEmbeddings": 0, "reviewsEmbeddings": 0, "errors": 0}
    logger.info("Backfilling embeddings for %d venues", len(rows))

    for row in rows:
        report["processed"] += 1
        try:
            updates = _embeddings_for(row, force, only_summary, only_reviews)
            if updates:
                db.update_venue_embeddings(row["place_id"], **updates)
        except (openai_client.EnrichmentError, db.PersistenceError, ValueError) as exc:
            report["errors"] += 1
            logger.error("Embedding backfill failed for %s: %s", row["place_id"], exc)
            continue
        if "summary_embedding" in updates:
            report["summaryEmbeddings"] += 1
        if "reviews_embedding" in updates:
            report["reviewsEmbeddings"] += 1

    logger.info("Embedding backfill finished: %s", report)
    return report


def _embeddings_for(row: Dict[str, Any], force: bool, only_summary: bool, only_reviews: bool) -> Dict[str, Any]:
    updates: Dict[str, Any] = {}
    reviews = row.get("reviews") or []

    if not only_reviews and (force or not row.get("has_summary_embedding")):
        text = transform.build_embedding_text(
            row["name"], row.get("summary_text"), row.get("categories") or [], row.get("city"), reviews
        )
        if text:
            updates["summary_embedding"] = openai_client.embed_text(text)

    if not only_summary and (force or not row.get("has_reviews_embedding")):
        reviews_text = transform.build_reviews_text(reviews)
        if len(reviews_text) > REVIEWS_EMBEDDING_MIN_CHARS:
            updates["reviews_embedding"] = openai_client.embed_text(reviews_text)
            updates["reviews_text"] = reviews_text
    return updates


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate missing venue embeddings")
    parser.add_argument("--limit", type=int, default=100)
    parser.add_argument("--force", action="store_true", help="Recompute existing embeddings")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--only-summary", action="store_true")
    group.add_argument("--only-reviews", action="store_true")
    return parser


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args()
    backfill_embeddings(args.limit, args.force, args.only_summary, args.only_reviews)


if __name__ == "__main__":
    main()
