from __future__ import annotations

from typing import Dict, Optional

from loguru import logger

from models import DEFAULT_INTENT, ExtractionResult, QueryComponents
from services.llm import LanguageModelClient, LLMError
from services.prompts import build_extraction_prompt

EXTRACTION_MAX_TOKENS = 200
EXTRACTION_TEMPERATURE = 0.3

# line label -> QueryComponents attribute
_FIELDS = {
    "intent": "intent",
    "location": "location_query",
    "cuisine": "cuisine",
    "preferences": "preferences",
}


def parse_query_components(text: Optional[str]) -> QueryComponents:
    """Read ``Key: value`` lines; unknown keys and "none" values are ignored."""
    found: Dict[str, str] = {}
    for line in (text or "").strip().splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip().strip("-* ").lower()
        value = value.strip().strip('"').strip()
        if key not in _FIELDS or not value or value.lower() == "none":
            continue
        # first occurrence wins
        found.setdefault(_FIELDS[key], value)

    return QueryComponents(
        intent=found.get("intent") or DEFAULT_INTENT,
        location_query=found.get("location_query"),
        cuisine=found.get("cuisine"),
        preferences=found.get("preferences"),
    )


def extract_query_components(llm: LanguageModelClient, user_input: str) -> ExtractionResult:
    prompt = build_extraction_prompt(user_input)
    try:
        raw = llm.generate(prompt, max_tokens=EXTRACTION_MAX_TOKENS, temperature=EXTRACTION_TEMPERATURE)
    except LLMError as exc:
        logger.error("query extraction failed: {}", exc)
        return ExtractionResult(success=False, message="Failed to process your query")

    components = parse_query_components(raw)
    logger.info(
        "extracted intent={} location={} cuisine={} preferences={}",
        components.intent,
        components.location_query,
        components.cuisine,
        components.preferences,
    )
    return ExtractionResult(success=True, components=components)


def build_search_query(components: QueryComponents) -> str:
    parts = []
    if components.cuisine:
        parts.append(components.cuisine)
    parts.append("restaurants")
    if components.preferences:
        parts.append(components.preferences)
    return " ".join(parts).strip() or "restaurants"
