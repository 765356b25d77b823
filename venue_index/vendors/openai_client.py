"""Language-model summaries and embeddings through the OpenAI API."""

import json
import logging
from functools import lru_cache
from typing import Any, List, Sequence

from openai import OpenAI, OpenAIError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from venue_index.core.config import get_settings
from venue_index.core.models import Classification
from venue_index.etl.transform import CUISINE_CATEGORIES

logger = logging.getLogger(__name__)

RETRY_ATTEMPTS = 3
MAX_CATEGORIES = 2

SYSTEM_PROMPT = "You are a restaurant expert. Always respond with valid JSON only."


class EnrichmentError(RuntimeError):
    """Raised when a summary or embedding cannot be produced."""


@lru_cache(maxsize=1)
def get_client() -> OpenAI:
    settings = get_settings()
    if not settings.openai_api_key:
        raise RuntimeError("OPENAI_API_KEY is required")
    return OpenAI(api_key=settings.openai_api_key)


def build_summary_prompt(
    name: str,
    city: str,
    categories_hint: Sequence[str],
    rating: Any,
    reviews: Sequence[str],
) -> str:
    review_lines = "\n".join(f"- {text[:300]}" for text in reviews[:5] if text) or "No reviews available"
    return "\n".join(
        [
            f"Restaurant: {name}",
            f"City: {city or 'Unknown'}",
            f"Provider types: {', '.join(categories_hint) or 'Unknown'}",
            f"Rating: {rating if rating is not None else 'N/A'}",
            "Reviews:",
            review_lines,
            "",
            "Write a 2-3 sentence summary of this restaurant (food, atmosphere, what it is known for).",
            f"Pick at most {MAX_CATEGORIES} cuisine types from this list only: {', '.join(CUISINE_CATEGORIES)}.",
            'Respond as JSON: {"summary": "...", "cuisineTypes": ["..."]}',
        ]
    )


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        chunks = text.split("```")
        if len(chunks) >= 3:
            text = chunks[1].strip()
            if text.lower().startswith("json"):
                text = text[4:]
    return text.strip()


def parse_classification(content: str) -> Classification:
    """Validate a model reply into a :class:`Classification`.

    Categories outside the closed vocabulary are dropped and at most two are
    kept. A reply that is not a JSON object raises :class:`EnrichmentError`.
    """
    try:
        data = json.loads(_strip_fences(content or ""))
    except json.JSONDecodeError as exc:
        raise EnrichmentError(f"summary reply is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise EnrichmentError("summary reply is not a JSON object")

    summary = data.get("summary")
    summary = " ".join(summary.split()) if isinstance(summary, str) else ""

    raw_categories = data.get("cuisineTypes") or data.get("categories") or []
    if not isinstance(raw_categories, list):
        raw_categories = []
    allowed = {category.lower(): category for category in CUISINE_CATEGORIES}
    categories: List[str] = []
    for value in raw_categories:
        if not isinstance(value, str):
            continue
        category = allowed.get(value.strip().lower())
        if category and category not in categories:
            categories.append(category)
    return Classification(summary=summary, categories=categories[:MAX_CATEGORIES])


@retry(
    wait=wait_exponential(multiplier=1, min=1, max=10),
    stop=stop_after_attempt(RETRY_ATTEMPTS),
    retry=retry_if_exception_type(EnrichmentError),
    reraise=True,
)
def summarize_venue(prompt: str) -> Classification:
    settings = get_settings()
    try:
        response = get_client().chat.completions.create(
            model=settings.openai_chat_model,
            temperature=0.2,
            max_tokens=200,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
        )
    except OpenAIError as exc:
        logger.warning("Summary request failed: %s", exc)
        raise EnrichmentError(str(exc)) from exc
    return parse_classification(response.choices[0].message.content or "")


@retry(
    wait=wait_exponential(multiplier=1, min=1, max=10),
    stop=stop_after_attempt(RETRY_ATTEMPTS),
    retry=retry_if_exception_type(EnrichmentError),
    reraise=True,
)
def embed_text(text: str) -> List[float]:
    """Embed ``text``; the vector length must match the configured dimensions."""
    settings = get_settings()
    if not text or not text.strip():
        raise ValueError("cannot embed empty text")
    try:
        response = get_client().embeddings.create(model=settings.openai_embedding_model, input=text)
    except OpenAIError as exc:
        logger.warning("Embedding request failed: %s", exc)
        raise EnrichmentError(str(exc)) from exc
    vector = list(response.data[0].embedding)
    if len(vector) != settings.embedding_dimensions:
        raise EnrichmentError(
            f"embedding has {len(vector)} dimensions, expected {settings.embedding_dimensions}"
        )
    return vector
