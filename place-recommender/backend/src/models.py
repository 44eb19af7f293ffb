"""Data models for the place recommender."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_RATING = 4
DEFAULT_INTENT = "find restaurant"


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


@dataclass(frozen=True)
class LocationCandidate:
    id: str
    name: str
    address: Optional[str]
    coordinates: Optional[Coordinates] = None


@dataclass(frozen=True)
class AuthoritativePlace:
    id: str
    name: str
    rating: Optional[float] = None  # 0-5
    rating_count: Optional[int] = None
    vicinity: Optional[str] = None
    price_level: Optional[int] = None  # 0-4
    coordinates: Optional[Coordinates] = None
    photo_references: tuple[str, ...] = ()
    open_now: Optional[bool] = None


@dataclass(frozen=True)
class Photo:
    reference: str
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(frozen=True)
class Review:
    author_name: Optional[str]
    rating: Optional[float]
    time: Optional[int]
    text: str = ""


@dataclass(frozen=True)
class PlaceDetails(AuthoritativePlace):
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    maps_url: Optional[str] = None
    opening_hours: tuple[str, ...] = ()
    reviews: tuple[Review, ...] = ()
    photos: tuple[Photo, ...] = ()


@dataclass(frozen=True)
class ResolvedLocation:
    name: str
    address: Optional[str]
    lat: Optional[float]
    lng: Optional[float]


@dataclass(frozen=True)
class GenerationRequest:
    user_query: str
    location: Optional[str] = None
    candidates: tuple[AuthoritativePlace, ...] = ()


@dataclass
class RecommendationRecord:
    name: str
    rating: int = DEFAULT_RATING
    location: str = ""
    description: str = ""
    features: list[str] = field(default_factory=list)
    additional_info: str = ""


@dataclass
class EnrichedRecommendation:
    # narrative fields from the model
    name: str
    description: str
    features: list[str] = field(default_factory=list)
    price_info: Optional[str] = None
    location: Optional[str] = None
    additional_info: Optional[str] = None
    # authoritative fields from the mapping provider
    place_id: Optional[str] = None
    rating: Optional[float] = None
    rating_count: Optional[int] = None
    address: Optional[str] = None
    photo_url: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    price_level: Optional[int] = None
    open_now: Optional[bool] = None


@dataclass
class QueryComponents:
    intent: str = DEFAULT_INTENT
    location_query: Optional[str] = None
    cuisine: Optional[str] = None
    preferences: Optional[str] = None


@dataclass
class ExtractionResult:
    success: bool
    components: Optional[QueryComponents] = None
    message: Optional[str] = None


@dataclass
class PipelineResult:
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    needs_location_clarification: bool = False
    possible_locations: List[LocationCandidate] = field(default_factory=list)
    location: Optional[ResolvedLocation] = None
    recommendations: List[EnrichedRecommendation] = field(default_factory=list)
    natural_response: Optional[str] = None
    search_query: Optional[str] = None
    raw_response: Optional[str] = None

    @classmethod
    def failure(cls, message: str, error: Optional[str] = None) -> "PipelineResult":
        return cls(success=False, message=message, error=error)

    @classmethod
    def clarification(
        cls,
        message: str,
        locations: Optional[List[LocationCandidate]] = None,
        *,
        success: bool = True,
    ) -> "PipelineResult":
        return cls(
            success=success,
            message=message,
            needs_location_clarification=True,
            possible_locations=list(locations or []),
        )
