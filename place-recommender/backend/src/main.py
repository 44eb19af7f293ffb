from __future__ import annotations

import dataclasses
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from config import Configuration
from models import Coordinates, PipelineResult
from services.google_places import GooglePlacesClient, MapsError
from services.llm import LanguageModelClient, LLMError
from services.pipeline import RecommendationPipeline

app = FastAPI(title="Place Recommender")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache
def get_config() -> Configuration:
    cfg = Configuration.from_env()
    logger.info("cfg: {}", cfg.log_summary())
    return cfg


def get_maps(cfg: Configuration = Depends(get_config)) -> GooglePlacesClient:
    return GooglePlacesClient(cfg)


def get_llm(cfg: Configuration = Depends(get_config)) -> LanguageModelClient:
    return LanguageModelClient(cfg)


def get_pipeline(
    cfg: Configuration = Depends(get_config),
    maps: GooglePlacesClient = Depends(get_maps),
    llm: LanguageModelClient = Depends(get_llm),
) -> RecommendationPipeline:
    return RecommendationPipeline(cfg, maps, llm)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CoordinatesPayload(CamelModel):
    lat: float
    lng: float


class LocationCandidatePayload(CamelModel):
    id: str
    name: str
    address: Optional[str] = None
    coordinates: Optional[CoordinatesPayload] = None


class ResolvedLocationPayload(CamelModel):
    name: str
    address: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None


class RecommendationPayload(CamelModel):
    name: str
    description: str
    features: List[str] = []
    price_info: Optional[str] = None
    location: Optional[str] = None
    additional_info: Optional[str] = None
    place_id: Optional[str] = None
    rating: Optional[float] = None
    rating_count: Optional[int] = None
    address: Optional[str] = None
    photo_url: Optional[str] = None
    coordinates: Optional[CoordinatesPayload] = None
    price_level: Optional[int] = None
    open_now: Optional[bool] = None


class ResultPayload(CamelModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    needs_location_clarification: bool = False
    possible_locations: List[LocationCandidatePayload] = []
    location: Optional[ResolvedLocationPayload] = None
    recommendations: List[RecommendationPayload] = []
    natural_response: Optional[str] = None
    search_query: Optional[str] = None
    raw_response: Optional[str] = None


class PhotoPayload(CamelModel):
    url: str
    width: Optional[int] = None
    height: Optional[int] = None


class ReviewPayload(CamelModel):
    author_name: Optional[str] = None
    rating: Optional[float] = None
    time: Optional[int] = None
    text: str = ""


class PlaceDetailsPayload(CamelModel):
    id: str
    name: str
    rating: Optional[float] = None
    rating_count: Optional[int] = None
    vicinity: Optional[str] = None
    price_level: Optional[int] = None
    coordinates: Optional[CoordinatesPayload] = None
    open_now: Optional[bool] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    maps_url: Optional[str] = None
    opening_hours: List[str] = []
    reviews: List[ReviewPayload] = []
    photos: List[PhotoPayload] = []


class ProcessRequest(CamelModel):
    user_input: Optional[str] = Field(None, description="Free-form request, e.g. 'spicy noodles near Koramangala'")
    user_location: Optional[CoordinatesPayload] = Field(None, description="Device location used when none is mentioned")


class ClarifyRequest(CamelModel):
    user_input: Optional[str] = None
    location_id: Optional[str] = Field(None, description="Place id of the location the user picked")


class GenerateTextRequest(CamelModel):
    prompt: Optional[str] = None
    options: Dict[str, Any] = {}


def _respond(result: PipelineResult) -> JSONResponse:
    payload = ResultPayload.model_validate(dataclasses.asdict(result))
    status = 200 if result.success or result.needs_location_clarification else 500
    return JSONResponse(status_code=status, content=payload.model_dump(by_alias=True, mode="json"))


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info("{} {}", request.method, request.url.path)
    return await call_next(request)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on {}: {}", request.url.path, exc)
    cfg = request.app.dependency_overrides.get(get_config, get_config)()
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Server error",
            "error": str(exc) if cfg.debug else "Internal server error",
        },
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "message": "Server is running"}


@app.get("/health/maps")
def health_maps(cfg: Configuration = Depends(get_config), maps: GooglePlacesClient = Depends(get_maps)) -> dict:
    detail = None
    try:
        cfg.require_maps()
        maps.search_by_text("MG Road, Bangalore")
        ok = True
    except (ValueError, MapsError) as exc:
        ok = False
        detail = str(exc)
    return {"ok": ok, "detail": detail}


@app.get("/health/llm")
def health_llm(cfg: Configuration = Depends(get_config)) -> dict:
    detail = None
    try:
        cfg.require_llm()
        ok = True
    except ValueError as exc:
        ok = False
        detail = str(exc)
    return {"ok": ok, "provider": cfg.llm_provider, "model": cfg.llm_model_id, "detail": detail}


@app.get("/api/recommendations/locations")
def search_locations(
    query: Optional[str] = None,
    cfg: Configuration = Depends(get_config),
    maps: GooglePlacesClient = Depends(get_maps),
) -> JSONResponse:
    if not query:
        raise HTTPException(status_code=400, detail="Location query is required")
    try:
        locations = maps.search_by_text(query)
    except MapsError as exc:
        logger.error("location search failed: {}", exc)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "Failed to search location",
                "error": (exc.detail or str(exc)) if cfg.debug else None,
            },
        )
    payload = [LocationCandidatePayload.model_validate(dataclasses.asdict(loc)) for loc in locations]
    return JSONResponse(
        content={"success": True, "locations": [p.model_dump(by_alias=True) for p in payload]}
    )


@app.get("/api/recommendations")
def get_recommendations(
    prompt: Optional[str] = None,
    location_id: Optional[str] = Query(None, alias="locationId"),
    place_type: Optional[str] = Query(None, alias="placeType"),
    pipeline: RecommendationPipeline = Depends(get_pipeline),
) -> JSONResponse:
    if not prompt:
        raise HTTPException(status_code=400, detail="A prompt is required")
    return _respond(pipeline.process_recommendation_query(prompt, location_id=location_id, place_type=place_type))


@app.get("/api/recommendations/place/{place_id}")
def get_place_details(
    place_id: str,
    cfg: Configuration = Depends(get_config),
    maps: GooglePlacesClient = Depends(get_maps),
) -> JSONResponse:
    try:
        details = maps.get_details(place_id)
    except MapsError as exc:
        logger.error("place details failed for {}: {}", place_id, exc)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "Failed to get place details",
                "error": (exc.detail or str(exc)) if cfg.debug else None,
            },
        )
    data = dataclasses.asdict(details)
    data["photos"] = [
        {"url": maps.photo_url(p.reference), "width": p.width, "height": p.height} for p in details.photos
    ]
    payload = PlaceDetailsPayload.model_validate(data)
    return JSONResponse(content={"success": True, "details": payload.model_dump(by_alias=True, mode="json")})


@app.post("/api/recommendations/generate-text")
def generate_text(
    req: GenerateTextRequest,
    cfg: Configuration = Depends(get_config),
    pipeline: RecommendationPipeline = Depends(get_pipeline),
) -> JSONResponse:
    if not req.prompt:
        raise HTTPException(status_code=400, detail="Prompt is required")
    max_tokens = req.options.get("maxTokens")
    temperature = req.options.get("temperature")
    try:
        max_tokens = int(max_tokens) if max_tokens else None
        temperature = float(temperature) if temperature is not None else None
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="maxTokens and temperature must be numbers")
    try:
        text = pipeline.generate_text(req.prompt, max_tokens=max_tokens, temperature=temperature)
    except LLMError as exc:
        logger.error("text generation failed: {}", exc)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "Failed to generate text",
                "error": str(exc) if cfg.debug else None,
            },
        )
    return JSONResponse(content={"success": True, "generatedText": text})


@app.post("/api/conversation/process")
def process_user_input(req: ProcessRequest, pipeline: RecommendationPipeline = Depends(get_pipeline)) -> JSONResponse:
    if not req.user_input:
        raise HTTPException(status_code=400, detail="User input is required")
    user_location = None
    if req.user_location is not None:
        user_location = Coordinates(lat=req.user_location.lat, lng=req.user_location.lng)
    return _respond(pipeline.process_freeform_user_input(req.user_input, user_location))


@app.post("/api/conversation/clarify-location")
def clarify_location(req: ClarifyRequest, pipeline: RecommendationPipeline = Depends(get_pipeline)) -> JSONResponse:
    if not req.user_input or not req.location_id:
        raise HTTPException(status_code=400, detail="User input and location ID are required")
    return _respond(pipeline.clarify_location(req.user_input, req.location_id))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=get_config().port, reload=True)
