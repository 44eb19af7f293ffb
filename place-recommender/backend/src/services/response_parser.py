"""Turn raw model output into recommendation records.

Model output is unreliable: delimiters get dropped, fields get reordered and
sometimes the model answers in plain prose. Parsing therefore runs through
four strategies of decreasing structure, each one only tried when the one
before it produced nothing:

1. grammar   -- ``---`` delimited blocks with PLACE/LOCATION/... fields
2. numbered  -- "1. Foo" / "Recommendation 2: Bar" lines
3. paragraph -- up to three blank-line separated paragraphs
4. single    -- the whole text as one record

Any non-empty input yields at least one record.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from loguru import logger

from models import DEFAULT_RATING, RecommendationRecord
from services.prompts import EMPTY_STAR, FILLED_STAR, RECORD_DELIMITER
from utils import strip_thinking_tokens

UNKNOWN_PLACE = "Unknown Place"
NOT_SPECIFIED = "Not specified"
MAX_PARAGRAPHS = 3
MIN_PARAGRAPH_LEN = 10

_PLACE_LINE = re.compile(
    rf"^[ \t]*PLACE[ \t]*:[ \t]*([^{FILLED_STAR}{EMPTY_STAR}\n]*)({FILLED_STAR}+{EMPTY_STAR}*)?",
    re.I | re.M,
)
_NUMBERED_LINE = re.compile(r"^[ \t]*(?:Recommendation\s*)?(\d+)[:.][ \t]*([^\n]*)", re.I | re.M)
_BLANK_LINE = re.compile(r"\r?\n[ \t\r]*\n")
_SENTENCE_END = re.compile(r"[.!?]|\n")


def _label(name: str) -> re.Pattern[str]:
    return re.compile(rf"^[ \t]*{name}[ \t]*:[ \t]*([^\n]*)", re.I | re.M)


def _as_text(value: Optional[str]) -> str:
    return (value or "").strip()


def _as_list(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


@dataclass(frozen=True)
class FieldScanner:
    """Pulls the first ``LABEL: value`` line out of a segment."""

    field: str
    pattern: re.Pattern[str]
    convert: Callable[[Optional[str]], Any]

    def scan(self, segment: str) -> Any:
        match = self.pattern.search(segment)
        return self.convert(match.group(1) if match else None)


FIELD_SCANNERS: Sequence[FieldScanner] = (
    FieldScanner("location", _label("LOCATION"), _as_text),
    FieldScanner("description", _label("DESCRIPTION"), _as_text),
    FieldScanner("features", _label("FEATURES"), _as_list),
    FieldScanner("additional_info", _label("INFO"), _as_text),
)


def _star_rating(stars: Optional[str]) -> int:
    # no clamp: more than five filled stars is passed through as-is
    if not stars:
        return DEFAULT_RATING
    return stars.count(FILLED_STAR)


def parse_block(segment: str) -> Optional[RecommendationRecord]:
    """Parse one delimited segment; ``None`` when it has no PLACE line."""
    place = _PLACE_LINE.search(segment)
    if not place:
        return None
    fields = {scanner.field: scanner.scan(segment) for scanner in FIELD_SCANNERS}
    return RecommendationRecord(
        name=place.group(1).strip() or UNKNOWN_PLACE,
        rating=_star_rating(place.group(2)),
        **fields,
    )


def parse_grammar(text: str) -> List[RecommendationRecord]:
    records: list[RecommendationRecord] = []
    for segment in text.split(RECORD_DELIMITER):
        if not segment.strip():
            continue
        record = parse_block(segment)
        if record is not None:
            records.append(record)
    return records


def parse_numbered(text: str, query: str, location: Optional[str]) -> List[RecommendationRecord]:
    records: list[RecommendationRecord] = []
    for match in _NUMBERED_LINE.finditer(text):
        num, content = match.group(1), match.group(2).strip()
        if not content:
            continue
        records.append(
            RecommendationRecord(
                name=content,
                rating=DEFAULT_RATING,
                location=location or NOT_SPECIFIED,
                description=f'Recommendation based on your request for "{query}"',
                features=[],
                additional_info=f"From model's recommendation #{num}",
            )
        )
    return records


def parse_paragraphs(text: str, query: str, location: Optional[str]) -> List[RecommendationRecord]:
    paragraphs = [p.strip() for p in _BLANK_LINE.split(text) if len(p.strip()) > MIN_PARAGRAPH_LEN]
    records: list[RecommendationRecord] = []
    for idx, paragraph in enumerate(paragraphs[:MAX_PARAGRAPHS], start=1):
        first = _SENTENCE_END.split(paragraph, maxsplit=1)[0].strip()
        records.append(
            RecommendationRecord(
                name=first or f"Recommendation {idx}",
                rating=DEFAULT_RATING,
                location=location or NOT_SPECIFIED,
                description=paragraph,
                features=[],
                additional_info=f'Based on your request for "{query}"',
            )
        )
    return records


def parse_single(text: str, query: str, location: Optional[str]) -> List[RecommendationRecord]:
    return [
        RecommendationRecord(
            name=f"Places for {query}",
            rating=DEFAULT_RATING,
            location=location or NOT_SPECIFIED,
            description=text.strip(),
            features=[],
            additional_info="Based on model response",
        )
    ]


def parse_recommendations(
    raw_text: Optional[str],
    original_query: str,
    location: Optional[str] = None,
) -> List[RecommendationRecord]:
    """Parse model output into records; never raises.

    Returns an empty list only when ``raw_text`` is empty or blank.
    """
    if not raw_text or not raw_text.strip():
        return []
    text = strip_thinking_tokens(raw_text)
    if not text.strip():
        # nothing but reasoning blocks; keep them rather than return nothing
        text = raw_text

    stages: list[tuple[str, Callable[[], List[RecommendationRecord]]]] = [
        ("grammar", lambda: parse_grammar(text)),
        ("numbered", lambda: parse_numbered(text, original_query, location)),
        ("paragraph", lambda: parse_paragraphs(text, original_query, location)),
    ]
    for stage, run in stages:
        try:
            records = run()
        except Exception as exc:
            logger.warning("parser stage {} failed: {}", stage, exc)
            continue
        if records:
            if stage != "grammar":
                logger.info("model output parsed by {} fallback, records={}", stage, len(records))
            return records

    logger.info("model output parsed as a single record")
    return parse_single(text, original_query, location)
