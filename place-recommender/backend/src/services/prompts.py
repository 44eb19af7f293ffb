"""Prompt templates for recommendation, summary and query extraction."""

from __future__ import annotations

from typing import Optional, Sequence

from models import AuthoritativePlace, EnrichedRecommendation, GenerationRequest
from utils import truncate

RECORD_DELIMITER = "---"
FILLED_STAR = "★"
EMPTY_STAR = "☆"

OUTPUT_GRAMMAR = """Example format:
---
PLACE: [Name of Place] [Rating as 1-5 stars using ★]
LOCATION: [Location details]
DESCRIPTION: [Brief description]
FEATURES: [Feature 1], [Feature 2]
INFO: [Additional information]
---"""

WORKED_EXAMPLES = """Example 1:
---
PLACE: Mountain View Trail ★★★★★
LOCATION: Northern Hills, 5km from city center
DESCRIPTION: A scenic trail with panoramic views of the valley and diverse vegetation
FEATURES: 3km moderate difficulty path, Birdwatching spots, Photography points
INFO: Open daily 6AM-6PM, Free entry, Guided tours available on weekends
---

Example 2:
---
PLACE: Riverside Walk ★★★★☆
LOCATION: Southern Pune, along Mula-Mutha River
DESCRIPTION: A peaceful riverside path perfect for morning or evening walks
FEATURES: Flat 2km trail, Sunset viewpoints, Picnic areas
INFO: Open 24/7, No entry fee, Best visited during early mornings
---"""

TASK_INSTRUCTION = (
    "Task: Recommend 3 places matching the user's request. "
    "Format each recommendation exactly as shown in the examples below."
)

SUMMARY_INSTRUCTIONS = """Please write a friendly, conversational response that:
1. Acknowledges their query
2. Mentions the location you searched
3. Summarizes the top recommendations in a natural way
4. Encourages them to ask for more details if needed

Keep the response under 150 words and conversational in tone."""

EXTRACTION_TEMPLATE = """Extract the following components from this restaurant search query:
- Intent (find restaurant, make reservation, review restaurant, etc.)
- Location mentioned (specific area, neighborhood, city, "near me", or none)
- Cuisine or food type (if mentioned)
- Other preferences (price range, atmosphere, etc.)

Query: "{query}"

Format the output as follows:
Intent: [intent]
Location: [extracted location or "none"]
Cuisine: [extracted cuisine or "none"]
Preferences: [extracted preferences or "none"]
"""


def _nearby_block(candidates: Sequence[AuthoritativePlace]) -> str:
    if not candidates:
        return ""
    lines = ["Nearby places:"]
    for idx, place in enumerate(candidates, start=1):
        rating = place.rating if place.rating else "N/A"
        lines.append(f"{idx}. {place.name}: {place.vicinity or ''} (Rating: {rating})")
    return "\n".join(lines) + "\n\n"


def build_recommendation_prompt(
    location: Optional[str],
    query: str,
    candidates: Sequence[AuthoritativePlace] = (),
) -> str:
    """Render the generation prompt that asks for exactly three records.

    The grammar and the two worked examples are constant; only the location,
    the request and the nearby-places block depend on the inputs.
    """
    location_line = f"Location: {location}" if location else "Location: Not specified"
    where = f" in {location}" if location else ""
    return (
        f"{location_line}\n"
        f"User is looking for: {query}\n"
        f"{_nearby_block(candidates)}"
        f"{TASK_INSTRUCTION}\n\n"
        f"{OUTPUT_GRAMMAR}\n\n"
        f"{WORKED_EXAMPLES}\n\n"
        f'Now provide 3 recommendations for "{query}"{where}:'
    )


def build_recommendation_prompt_for(request: GenerationRequest) -> str:
    return build_recommendation_prompt(request.location, request.user_query, request.candidates)


def build_summary_prompt(
    location: Optional[str],
    query: str,
    search_query: str,
    recommendations: Sequence[EnrichedRecommendation],
    limit: int = 5,
) -> str:
    summary = "\n".join(
        f"{idx}. {rec.name} ({rec.rating if rec.rating is not None else 'N/A'}/5): "
        f"{truncate(rec.description or '', 100)}"
        for idx, rec in enumerate(recommendations[:limit], start=1)
    )
    return (
        f'You are a helpful AI restaurant recommendation system. A user has asked: "{query}"\n\n'
        f"You searched for {search_query} near {location or 'their area'} and found these options:\n\n"
        f"{summary}\n\n"
        f"{SUMMARY_INSTRUCTIONS}\n"
    )


def build_extraction_prompt(user_input: str) -> str:
    return EXTRACTION_TEMPLATE.format(query=user_input)


def fallback_summary(location: Optional[str]) -> str:
    return f"Here are some restaurant recommendations near {location or 'your location'} based on your search."
