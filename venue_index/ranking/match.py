"""Match percentage between a user's taste embedding and cached venues."""

import logging
import random
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence

import numpy as np

from venue_index.core import db
from venue_index.core.config import get_settings

logger = logging.getLogger(__name__)

NEUTRAL_SIMILARITY = 0.7
DEFAULT_MATCH_SCORE = 75
DEFAULT_RATING = 3.5
PRIOR = 0.75
MIN_SCORE = 50
MAX_SCORE = 100
SUMMARY_WEIGHT = 0.7
REVIEWS_WEIGHT = 0.3


@dataclass(frozen=True)
class FixedFallback:
    """Always the same score; used when nothing can be compared."""

    score: int = DEFAULT_MATCH_SCORE

    def value(self, key: Optional[str] = None) -> int:
        return self.score


@dataclass(frozen=True)
class RandomRangeFallback:
    """A score in ``[low, high]`` that is stable for a given venue id."""

    low: int = 70
    high: int = 89

    def value(self, key: Optional[str] = None) -> int:
        rng = random.Random(key) if key is not None else random
        return rng.randint(self.low, self.high)


def fallback_from_name(name: str):
    if name == "random_range":
        return RandomRangeFallback()
    return FixedFallback()


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of two vectors; a zero vector or a length mismatch yields the neutral value."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.shape != vb.shape or va.size == 0:
        return NEUTRAL_SIMILARITY
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return NEUTRAL_SIMILARITY
    return float(np.dot(va, vb) / norm)


def score(
    user_embedding: Optional[Sequence[float]],
    venue_embedding: Optional[Sequence[float]],
    rating: Optional[float],
    *,
    reviews_embedding: Optional[Sequence[float]] = None,
    fallback=None,
    key: Optional[str] = None,
) -> int:
    """Match percentage in ``[50, 100]``.

    ``0.5 * similarity + 0.25 * rating / 5 + 0.25 * 0.75``, scaled to a
    percentage and clamped. A missing rating counts as 3.5. With a reviews
    embedding the similarity blends summary (0.7) and reviews (0.3). When
    either the user or venue embedding is absent the fallback decides.
    """
    if user_embedding is None or venue_embedding is None:
        return (fallback or FixedFallback()).value(key)

    similarity = cosine_similarity(user_embedding, venue_embedding)
    if reviews_embedding is not None:
        similarity = SUMMARY_WEIGHT * similarity + REVIEWS_WEIGHT * cosine_similarity(user_embedding, reviews_embedding)

    rating_value = DEFAULT_RATING if rating is None else float(rating)
    raw = 0.5 * similarity + 0.25 * (rating_value / 5) + 0.25 * PRIOR
    return max(MIN_SCORE, min(MAX_SCORE, int(round(raw * 100))))


def score_batch(user_id: Optional[str], place_ids: Iterable[str]) -> Dict[str, int]:
    """Scores for many venues with one taste lookup and one embeddings query."""
    ids = list(dict.fromkeys(pid for pid in place_ids if pid))
    if not ids:
        return {}

    settings = get_settings()
    no_profile = fallback_from_name(settings.score_no_profile_fallback)
    missing_embedding = fallback_from_name(settings.score_missing_embedding_fallback)

    user_embedding = db.fetch_taste_embedding(user_id) if user_id else None
    if user_embedding is None:
        return {pid: no_profile.value(pid) for pid in ids}

    venues = db.fetch_venue_embeddings(ids)
    scores: Dict[str, int] = {}
    for pid in ids:
        venue = venues.get(pid) or {}
        scores[pid] = score(
            user_embedding,
            venue.get("summary_embedding"),
            venue.get("rating"),
            reviews_embedding=venue.get("reviews_embedding"),
            fallback=missing_embedding,
            key=pid,
        )
    logger.debug("Scored %d venues for user %s", len(scores), user_id)
    return scores
