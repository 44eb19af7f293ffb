from __future__ import annotations

from typing import Callable, List, Optional, Sequence

from models import AuthoritativePlace, EnrichedRecommendation, RecommendationRecord

PhotoUrlBuilder = Callable[[str], str]


def find_matching_place(
    record: RecommendationRecord,
    places: Sequence[AuthoritativePlace],
) -> Optional[AuthoritativePlace]:
    """Exact case-insensitive name match, else the first substring match.

    Substring matching runs both ways and takes the first hit in the order of
    ``places``; there is no scoring between several hits.
    """
    name = record.name.strip().lower()
    if not name:
        return None
    for place in places:
        if place.name.strip().lower() == name:
            return place
    for place in places:
        real = place.name.strip().lower()
        # an empty name is a substring of everything
        if real and (name in real or real in name):
            return place
    return None


def _merge(
    record: RecommendationRecord,
    place: AuthoritativePlace,
    photo_url: Optional[PhotoUrlBuilder],
) -> EnrichedRecommendation:
    url = None
    if place.photo_references and photo_url is not None:
        url = photo_url(place.photo_references[0])
    return EnrichedRecommendation(
        name=record.name,
        description=record.description,
        features=list(record.features),
        price_info=None,
        location=record.location or None,
        additional_info=record.additional_info or None,
        place_id=place.id,
        rating=place.rating if place.rating else record.rating,
        rating_count=place.rating_count,
        address=place.vicinity,
        photo_url=url,
        coordinates=place.coordinates,
        price_level=place.price_level,
        open_now=place.open_now,
    )


def _passthrough(record: RecommendationRecord) -> EnrichedRecommendation:
    return EnrichedRecommendation(
        name=record.name,
        description=record.description,
        features=list(record.features),
        location=record.location or None,
        additional_info=record.additional_info or None,
        rating=record.rating,
        place_id=None,
        photo_url=None,
    )


def reconcile(
    ai_records: Sequence[RecommendationRecord],
    places: Sequence[AuthoritativePlace],
    photo_url: Optional[PhotoUrlBuilder] = None,
) -> List[EnrichedRecommendation]:
    """Merge each AI record with its authoritative place, if any.

    One output per input record, in input order.
    """
    enriched: list[EnrichedRecommendation] = []
    for record in ai_records:
        match = find_matching_place(record, places)
        if match is None:
            enriched.append(_passthrough(record))
        else:
            enriched.append(_merge(record, match, photo_url))
    return enriched
