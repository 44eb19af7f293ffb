from __future__ import annotations

from conftest import KORAMANGALA, KORAMANGALA_DETAILS, FakeLLM, FakeMaps
from models import AuthoritativePlace, Coordinates, LocationCandidate
from services.google_places import MapsError, MapsUnavailableError
from services.llm import LLMTimeoutError, LLMUpstreamError
from services.pipeline import (
    GENERATION_FAILED,
    GENERATION_TIMEOUT,
    LOCATION_LOOKUP_FAILED,
    NEED_LOCATION,
    QUERY_FAILED,
    RecommendationPipeline,
)
from services.prompts import fallback_summary

EXTRACTION = "Intent: find restaurant\nLocation: Koramangala\nCuisine: spicy noodles\nPreferences: none"
GENERATION = (
    "---\nPLACE: Mamagoto ★★★★☆\nLOCATION: 5th Block\nDESCRIPTION: Pan-asian noodles\n"
    "FEATURES: spicy, casual\nINFO: busy on weekends\n---\n"
    "PLACE: Grill House ★★★\nLOCATION: 80 Feet Rd\nDESCRIPTION: Grills\n---\n"
    "PLACE: Imaginary Noodles ★★★★★\nDESCRIPTION: Does not exist\n---"
)
SUMMARY = "Here are three spicy noodle spots in Koramangala!"


def test_freeform_unambiguous_location_runs_full_pipeline(cfg, fake_maps) -> None:
    llm = FakeLLM(EXTRACTION, GENERATION, SUMMARY)
    result = RecommendationPipeline(cfg, fake_maps, llm).process_freeform_user_input(
        "spicy noodles near Koramangala"
    )

    assert result.success
    assert not result.needs_location_clarification
    assert result.search_query == "spicy noodles restaurants"
    assert result.natural_response == SUMMARY
    assert result.location is not None
    assert result.location.address == KORAMANGALA_DETAILS.address

    names = [r.name for r in result.recommendations]
    assert names == ["Mamagoto", "Grill House", "Imaginary Noodles"]
    mamagoto, grill, imaginary = result.recommendations
    assert mamagoto.place_id == "p-noodle"
    assert mamagoto.rating == 4.3
    assert mamagoto.photo_url == "https://photos.test/ph-1?w=400"
    assert grill.place_id == "p-grill"
    assert imaginary.place_id is None
    assert imaginary.rating == 5

    assert ("search_by_text", "Koramangala") in fake_maps.calls
    assert ("find_nearby", "spicy noodles restaurants", cfg.restaurant_radius_m, "restaurant") in fake_maps.calls
    # generation prompt carries the nearby candidates
    assert "1. Mamagoto: 5th Block, Koramangala (Rating: 4.3)" in llm.prompts[1]
    assert "Mamagoto (4.3/5)" in llm.prompts[2]
    # development-only raw output is hidden by default
    assert result.raw_response is None


def test_freeform_ambiguous_location_needs_clarification(cfg) -> None:
    other = LocationCandidate(id="loc-2", name="Koramangala 2", address="Elsewhere")
    maps = FakeMaps(locations=[KORAMANGALA, other])
    llm = FakeLLM("Intent: find restaurant\nLocation: Koramangala\nCuisine: none\nPreferences: none")

    result = RecommendationPipeline(cfg, maps, llm).process_freeform_user_input("restaurants")

    assert result.success
    assert result.needs_location_clarification is True
    assert [loc.id for loc in result.possible_locations] == ["loc-koramangala", "loc-2"]
    assert result.recommendations == []
    # only the extraction call reached the model
    assert len(llm.prompts) == 1


def test_freeform_without_any_location_asks_for_one(cfg, fake_maps) -> None:
    llm = FakeLLM("Intent: find restaurant\nLocation: none\nCuisine: pizza\nPreferences: none")
    result = RecommendationPipeline(cfg, fake_maps, llm).process_freeform_user_input("pizza")
    assert result.success is False
    assert result.needs_location_clarification is True
    assert result.message == NEED_LOCATION


def test_freeform_unknown_location_asks_for_clarification(cfg) -> None:
    maps = FakeMaps(errors={"search_by_text": MapsError("Google API error: ZERO_RESULTS", status="ZERO_RESULTS")})
    llm = FakeLLM(EXTRACTION)
    result = RecommendationPipeline(cfg, maps, llm).process_freeform_user_input("noodles near Atlantis")
    assert result.needs_location_clarification is True
    assert result.possible_locations == []


def test_freeform_location_search_unavailable_is_failure(cfg) -> None:
    maps = FakeMaps(errors={"search_by_text": MapsUnavailableError("request error: timed out")})
    result = RecommendationPipeline(cfg, maps, FakeLLM(EXTRACTION)).process_freeform_user_input("x")
    assert result.success is False
    assert result.needs_location_clarification is False
    assert result.message == LOCATION_LOOKUP_FAILED
    assert result.error is None


def test_freeform_uses_device_location_when_none_mentioned(cfg, fake_maps) -> None:
    fake_maps.reverse = KORAMANGALA
    llm = FakeLLM("Intent: find restaurant\nLocation: none\nCuisine: none\nPreferences: none", GENERATION, SUMMARY)
    here = Coordinates(lat=12.93, lng=77.62)

    result = RecommendationPipeline(cfg, fake_maps, llm).process_freeform_user_input("somewhere to eat", here)

    assert result.success
    assert ("reverse_geocode", here) in fake_maps.calls
    assert result.search_query == "restaurants"


def test_query_understanding_failure(cfg, fake_maps) -> None:
    llm = FakeLLM(LLMUpstreamError("Model is overloaded", status_code=503))
    result = RecommendationPipeline(cfg, fake_maps, llm).process_freeform_user_input("noodles")
    assert result.success is False
    assert result.message == QUERY_FAILED
    assert fake_maps.calls == []


def test_generation_timeout_is_distinct(cfg, fake_maps) -> None:
    llm = FakeLLM(EXTRACTION, LLMTimeoutError("No response from API server"))
    result = RecommendationPipeline(cfg, fake_maps, llm).process_freeform_user_input("noodles near Koramangala")
    assert result.success is False
    assert result.message == GENERATION_TIMEOUT


def test_generation_rejected(cfg, fake_maps) -> None:
    llm = FakeLLM(EXTRACTION, LLMUpstreamError("Model is loading", status_code=503))
    result = RecommendationPipeline(cfg, fake_maps, llm).process_freeform_user_input("noodles near Koramangala")
    assert result.message == GENERATION_FAILED
    assert result.error is None


def test_error_detail_only_in_development(cfg, fake_maps) -> None:
    cfg.app_env = "development"
    llm = FakeLLM(EXTRACTION, LLMUpstreamError("Model is loading", status_code=503))
    result = RecommendationPipeline(cfg, fake_maps, llm).process_freeform_user_input("noodles near Koramangala")
    assert result.error == "Model is loading"


def test_summary_failure_falls_back_to_fixed_sentence(cfg, fake_maps) -> None:
    llm = FakeLLM(EXTRACTION, GENERATION, LLMTimeoutError("No response from API server"))
    result = RecommendationPipeline(cfg, fake_maps, llm).process_freeform_user_input("noodles near Koramangala")
    assert result.success
    assert result.natural_response == fallback_summary(KORAMANGALA.address)


def test_clarify_location_continues_with_chosen_id(cfg, fake_maps) -> None:
    llm = FakeLLM(EXTRACTION, GENERATION, SUMMARY)
    result = RecommendationPipeline(cfg, fake_maps, llm).clarify_location("restaurants", "loc-koramangala")
    assert result.success
    assert ("get_details", "loc-koramangala") in fake_maps.calls
    assert not any(call[0] == "search_by_text" for call in fake_maps.calls)
    assert len(result.recommendations) == 3


def test_clarify_location_unknown_id(cfg, fake_maps) -> None:
    llm = FakeLLM(EXTRACTION)
    result = RecommendationPipeline(cfg, fake_maps, llm).clarify_location("restaurants", "missing")
    assert result.success is False
    assert result.message == LOCATION_LOOKUP_FAILED


def test_recommendation_query_without_location(cfg, fake_maps) -> None:
    llm = FakeLLM("1. Nandi Hills\n2. Skandagiri")
    result = RecommendationPipeline(cfg, fake_maps, llm).process_recommendation_query("sunrise treks")
    assert result.success
    assert result.location is None
    assert [r.name for r in result.recommendations] == ["Nandi Hills", "Skandagiri"]
    assert all(r.place_id is None for r in result.recommendations)
    assert llm.prompts[0].startswith("Location: Not specified")
    assert fake_maps.calls == []


def test_recommendation_query_tolerates_nearby_failure(cfg, fake_maps) -> None:
    fake_maps.errors["find_nearby"] = MapsUnavailableError("request error")
    llm = FakeLLM(GENERATION)
    result = RecommendationPipeline(cfg, fake_maps, llm).process_recommendation_query(
        "noodles", location_id="loc-koramangala", place_type="restaurant"
    )
    assert result.success
    assert result.location is not None
    assert "Nearby places" not in llm.prompts[0]
    assert ("find_nearby", "restaurant", cfg.nearby_radius_m, None) in fake_maps.calls


def test_recommendation_query_details_failure(cfg, fake_maps) -> None:
    result = RecommendationPipeline(cfg, fake_maps, FakeLLM(GENERATION)).process_recommendation_query(
        "noodles", location_id="missing"
    )
    assert result.success is False
    assert result.message == LOCATION_LOOKUP_FAILED


def test_generate_text_passes_through(cfg, fake_maps) -> None:
    llm = FakeLLM("raw completion")
    assert RecommendationPipeline(cfg, fake_maps, llm).generate_text("hello", 20, 0.1) == "raw completion"
    assert llm.prompts == ["hello"]


def test_generation_prompt_caps_candidates(cfg) -> None:
    nearby = [
        AuthoritativePlace(id=f"p{i}", name=f"Stall {i}", vicinity="Koramangala", rating=4.0) for i in range(7)
    ]
    maps = FakeMaps(nearby=nearby, details={KORAMANGALA_DETAILS.id: KORAMANGALA_DETAILS})
    llm = FakeLLM(GENERATION)

    result = RecommendationPipeline(cfg, maps, llm).get_recommendations_for_query(
        "loc-koramangala", "noodles restaurants"
    )

    assert result.success
    prompt = llm.prompts[0]
    assert "5. Stall 4: Koramangala (Rating: 4.0)" in prompt
    assert "Stall 5" not in prompt
    assert "Stall 6" not in prompt
