"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_PLACE_TYPES = ("restaurant", "cafe", "bar", "bakery", "meal_delivery", "meal_takeaway")
REGION_FILTER_POLICIES = {"either", "both", "coordinates", "name", "off"}
SCORE_FALLBACKS = {"fixed", "random_range"}


class ConfigError(RuntimeError):
    """Raised when an environment value cannot be interpreted."""


@dataclass(frozen=True)
class Settings:
    google_api_key: str
    database_url: str
    openai_api_key: str
    worker_port: int = 9000
    db_pool_max: int = 10
    db_acquire_timeout_seconds: float = 30.0
    places_language: str = "en"
    places_local_language: str = "iw"
    places_types: Tuple[str, ...] = DEFAULT_PLACE_TYPES
    places_type_delay_seconds: float = 0.3
    places_page_cap: int = 3
    places_result_cap: int = 60
    places_token_delay_seconds: float = 2.5
    places_token_retry_seconds: float = 2.0
    # Scan budget per area is 4 ** depth including the first scan; 1 disables splitting.
    subdivide_max_depth: int = 3
    subdivide_min_radius: int = 200
    subdivide_delay_seconds: float = 1.0
    freshness_days: int = 30
    region_filter_policy: str = "either"
    openai_chat_model: str = "gpt-4o-mini"
    openai_embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    score_no_profile_fallback: str = "fixed"
    score_missing_embedding_fallback: str = "random_range"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def _list_env(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return tuple(dict.fromkeys(item.strip() for item in raw.split(",") if item.strip()))


def _choice_env(name: str, default: str, choices: set) -> str:
    value = os.getenv(name, default).strip().lower() or default
    if value not in choices:
        raise ConfigError(f"{name} must be one of {sorted(choices)}, got {value!r}")
    return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    google_api_key = os.getenv("GOOGLE_API_KEY", "")
    database_url = os.getenv("DATABASE_URL", "")
    openai_api_key = os.getenv("OPENAI_API_KEY", "")

    if not database_url:
        logger.warning("DATABASE_URL is not set; database operations will fail.")
    if not google_api_key:
        logger.warning("GOOGLE_API_KEY is not configured; Google Places requests will fail.")
    if not openai_api_key:
        logger.warning("OPENAI_API_KEY is not configured; summaries and embeddings will fail.")

    return Settings(
        google_api_key=google_api_key,
        database_url=database_url,
        openai_api_key=openai_api_key,
        worker_port=_int_env("WORKER_PORT", 9000),
        db_pool_max=_int_env("DB_POOL_MAX", 10),
        db_acquire_timeout_seconds=_float_env("DB_ACQUIRE_TIMEOUT_SECONDS", 30.0),
        places_language=os.getenv("PLACES_LANGUAGE", "en"),
        places_local_language=os.getenv("PLACES_LOCAL_LANGUAGE", "iw"),
        places_types=_list_env("PLACES_TYPES", DEFAULT_PLACE_TYPES),
        places_type_delay_seconds=_float_env("PLACES_TYPE_DELAY_SECONDS", 0.3),
        places_page_cap=_int_env("PLACES_PAGE_CAP", 3),
        places_result_cap=_int_env("PLACES_RESULT_CAP", 60),
        places_token_delay_seconds=_float_env("PLACES_TOKEN_DELAY_SECONDS", 2.5),
        places_token_retry_seconds=_float_env("PLACES_TOKEN_RETRY_SECONDS", 2.0),
        subdivide_max_depth=_int_env("SUBDIVIDE_MAX_DEPTH", 3),
        subdivide_min_radius=_int_env("SUBDIVIDE_MIN_RADIUS", 200),
        subdivide_delay_seconds=_float_env("SUBDIVIDE_DELAY_SECONDS", 1.0),
        freshness_days=_int_env("FRESHNESS_DAYS", 30),
        region_filter_policy=_choice_env("REGION_FILTER_POLICY", "either", REGION_FILTER_POLICIES),
        openai_chat_model=os.getenv("OPENAI_CHAT_MODEL", "gpt-4o-mini"),
        openai_embedding_model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
        embedding_dimensions=_int_env("EMBEDDING_DIMENSIONS", 1536),
        score_no_profile_fallback=_choice_env("SCORE_NO_PROFILE_FALLBACK", "fixed", SCORE_FALLBACKS),
        score_missing_embedding_fallback=_choice_env(
            "SCORE_MISSING_EMBEDDING_FALLBACK", "random_range", SCORE_FALLBACKS
        ),
    )
