from __future__ import annotations

from typing import List, Optional, Sequence

from loguru import logger

from config import Configuration
from models import (
    AuthoritativePlace,
    Coordinates,
    EnrichedRecommendation,
    GenerationRequest,
    PipelineResult,
    PlaceDetails,
    RecommendationRecord,
    ResolvedLocation,
)
from services.google_places import GooglePlacesClient, MapsError, MapsUnavailableError
from services.llm import LanguageModelClient, LLMError, LLMTimeoutError
from services.prompts import build_recommendation_prompt_for, build_summary_prompt, fallback_summary
from services.query_extractor import build_search_query, extract_query_components
from services.reconciler import reconcile
from services.response_parser import parse_recommendations

SUMMARY_MAX_TOKENS = 300
SUMMARY_TEMPERATURE = 0.7

NEED_LOCATION = "I need to know where to look for restaurants. Could you specify a location?"
LOCATION_NOT_FOUND = "Could not find the location you mentioned"
CLARIFY_LOCATION = "Please clarify which location you mean"
QUERY_FAILED = "Failed to understand your query"
LOCATION_LOOKUP_FAILED = "Failed to get location details"
NEARBY_FAILED = "Failed to find nearby restaurants"
GENERATION_FAILED = "Failed to generate recommendations"
GENERATION_TIMEOUT = "Recommendation generation timed out"


class GenerationFailed(Exception):
    def __init__(self, message: str, cause: LLMError) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class RecommendationPipeline:
    """Query understanding, place lookup, generation, parsing and reconciliation."""

    def __init__(self, cfg: Configuration, maps: GooglePlacesClient, llm: LanguageModelClient) -> None:
        self.cfg = cfg
        self.maps = maps
        self.llm = llm

    def _fail(self, message: str, exc: Optional[Exception] = None) -> PipelineResult:
        detail = None
        if exc is not None and self.cfg.debug:
            detail = getattr(exc, "detail", None) or str(exc)
        return PipelineResult.failure(message, detail)

    def _generate(
        self,
        location: Optional[str],
        query: str,
        candidates: Sequence[AuthoritativePlace],
    ) -> tuple[List[RecommendationRecord], str]:
        request = GenerationRequest(
            user_query=query,
            location=location,
            candidates=tuple(candidates[: self.cfg.max_candidates]),
        )
        prompt = build_recommendation_prompt_for(request)
        try:
            raw = self.llm.generate(
                prompt,
                max_tokens=self.cfg.llm_max_new_tokens,
                temperature=self.cfg.llm_temperature,
            )
        except LLMTimeoutError as exc:
            raise GenerationFailed(GENERATION_TIMEOUT, exc) from exc
        except LLMError as exc:
            raise GenerationFailed(GENERATION_FAILED, exc) from exc
        records = parse_recommendations(raw, query, location)
        logger.info("generation produced {} records for query={!r}", len(records), query)
        return records, raw

    def _details(self, location_id: str) -> PlaceDetails:
        return self.maps.get_details(location_id)

    @staticmethod
    def _resolved(details: PlaceDetails) -> ResolvedLocation:
        coords = details.coordinates
        return ResolvedLocation(
            name=details.name,
            address=details.address,
            lat=coords.lat if coords else None,
            lng=coords.lng if coords else None,
        )

    def process_recommendation_query(
        self,
        prompt: str,
        location_id: Optional[str] = None,
        place_type: Optional[str] = None,
    ) -> PipelineResult:
        """Recommend any kind of place for ``prompt``, optionally near a location."""
        location: Optional[ResolvedLocation] = None
        nearby: List[AuthoritativePlace] = []

        if location_id:
            try:
                details = self._details(location_id)
            except MapsError as exc:
                logger.error("location details failed for {}: {}", location_id, exc)
                return self._fail(LOCATION_LOOKUP_FAILED, exc)
            location = self._resolved(details)
            if details.coordinates is not None:
                try:
                    nearby = self.maps.find_nearby(
                        details.coordinates,
                        keyword=place_type or "",
                        radius=self.cfg.nearby_radius_m,
                    )
                except MapsError as exc:
                    logger.warning("nearby search failed, continuing without candidates: {}", exc)

        try:
            records, raw = self._generate(location.address if location else None, prompt, nearby)
        except GenerationFailed as exc:
            logger.error("generation failed: {}", exc.cause)
            return self._fail(exc.message, exc.cause)

        return PipelineResult(
            success=True,
            location=location,
            recommendations=reconcile(records, nearby, self.maps.photo_url),
            raw_response=raw if self.cfg.debug else None,
        )

    def get_recommendations_for_query(self, location_id: str, search_query: str) -> PipelineResult:
        try:
            details = self._details(location_id)
        except MapsError as exc:
            logger.error("location details failed for {}: {}", location_id, exc)
            return self._fail(LOCATION_LOOKUP_FAILED, exc)
        location = self._resolved(details)
        if details.coordinates is None:
            return self._fail(LOCATION_LOOKUP_FAILED)

        try:
            nearby = self.maps.find_nearby(
                details.coordinates,
                keyword=search_query,
                radius=self.cfg.restaurant_radius_m,
                place_type="restaurant",
            )
        except MapsError as exc:
            logger.error("nearby restaurant search failed: {}", exc)
            return self._fail(NEARBY_FAILED, exc)

        try:
            records, raw = self._generate(details.address, search_query, nearby)
        except GenerationFailed as exc:
            logger.error("generation failed: {}", exc.cause)
            return self._fail(exc.message, exc.cause)

        return PipelineResult(
            success=True,
            location=location,
            recommendations=reconcile(records, nearby, self.maps.photo_url),
            search_query=search_query,
            raw_response=raw if self.cfg.debug else None,
        )

    def generate_natural_response(
        self,
        location: Optional[str],
        query: str,
        search_query: str,
        recommendations: Sequence[EnrichedRecommendation],
    ) -> str:
        prompt = build_summary_prompt(location, query, search_query, recommendations)
        try:
            text = self.llm.generate(prompt, max_tokens=SUMMARY_MAX_TOKENS, temperature=SUMMARY_TEMPERATURE)
        except LLMError as exc:
            logger.warning("summary generation failed: {}", exc)
            return fallback_summary(location)
        return text.strip() or fallback_summary(location)

    def generate_text(
        self, prompt: str, max_tokens: Optional[int] = None, temperature: Optional[float] = None
    ) -> str:
        return self.llm.generate(prompt, max_tokens=max_tokens, temperature=temperature)

    def _finish(self, result: PipelineResult, user_input: str, search_query: str, address: Optional[str]) -> PipelineResult:
        result.natural_response = self.generate_natural_response(
            address, user_input, search_query, result.recommendations
        )
        result.search_query = search_query
        return result

    def process_freeform_user_input(
        self,
        user_input: str,
        user_location: Optional[Coordinates] = None,
    ) -> PipelineResult:
        extraction = extract_query_components(self.llm, user_input)
        if not extraction.success or extraction.components is None:
            return self._fail(QUERY_FAILED)
        components = extraction.components

        location_id: Optional[str] = None
        address: Optional[str] = None
        if components.location_query:
            try:
                found = self.maps.search_by_text(components.location_query)
            except MapsUnavailableError as exc:
                logger.error("location search unavailable: {}", exc)
                return self._fail(LOCATION_LOOKUP_FAILED, exc)
            except MapsError as exc:
                logger.info("location search rejected for {!r}: {}", components.location_query, exc)
                found = []
            if not found:
                return PipelineResult.clarification(LOCATION_NOT_FOUND, success=False)
            if len(found) > 1:
                logger.info("location {!r} is ambiguous ({} candidates)", components.location_query, len(found))
                return PipelineResult.clarification(CLARIFY_LOCATION, found)
            location_id, address = found[0].id, found[0].address
        elif user_location is not None:
            try:
                here = self.maps.reverse_geocode(user_location)
            except MapsError as exc:
                logger.error("reverse geocode failed: {}", exc)
                return self._fail(LOCATION_LOOKUP_FAILED, exc)
            if here is None:
                return PipelineResult.clarification(NEED_LOCATION, success=False)
            location_id, address = here.id, here.address
        else:
            return PipelineResult.clarification(NEED_LOCATION, success=False)

        search_query = build_search_query(components)
        result = self.get_recommendations_for_query(location_id, search_query)
        if not result.success:
            return result
        return self._finish(result, user_input, search_query, address)

    def clarify_location(self, user_input: str, location_id: str) -> PipelineResult:
        """Continue a request once the user picked one of the candidate locations."""
        extraction = extract_query_components(self.llm, user_input)
        if not extraction.success or extraction.components is None:
            return self._fail(QUERY_FAILED)

        search_query = build_search_query(extraction.components)
        result = self.get_recommendations_for_query(location_id, search_query)
        if not result.success:
            return result
        address = result.location.address if result.location else None
        return self._finish(result, user_input, search_query, address)
