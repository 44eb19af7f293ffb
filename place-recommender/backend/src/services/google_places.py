from __future__ import annotations

import threading
import time
import urllib.parse
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import requests
from loguru import logger

from config import Configuration
from models import (
    AuthoritativePlace,
    Coordinates,
    LocationCandidate,
    Photo,
    PlaceDetails,
    Review,
)

DETAIL_FIELDS = (
    "name,rating,formatted_phone_number,formatted_address,website,url,opening_hours,"
    "price_level,review,photo,user_ratings_total,geometry"
)


class MapsError(RuntimeError):
    """The provider answered but rejected the request (non-OK status)."""

    def __init__(self, message: str, status: Optional[str] = None, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.detail = detail


class MapsUnavailableError(MapsError):
    """The provider could not be reached or timed out."""


@dataclass
class _RetryPolicy:
    retries: int = 3
    base_delay: float = 0.5


def _coords(geometry: Optional[dict]) -> Optional[Coordinates]:
    loc = (geometry or {}).get("location") or {}
    lat, lng = loc.get("lat"), loc.get("lng")
    if lat is None or lng is None:
        return None
    return Coordinates(lat=float(lat), lng=float(lng))


def _photos(raw: Optional[list]) -> tuple[Photo, ...]:
    out: list[Photo] = []
    for p in raw or []:
        ref = p.get("photo_reference")
        if not ref:
            continue
        out.append(Photo(reference=str(ref), width=p.get("width"), height=p.get("height")))
    return tuple(out)


class GooglePlacesClient:
    def __init__(self, cfg: Configuration, session: Optional[requests.Session] = None) -> None:
        self.cfg = cfg
        self.base = cfg.maps_base_url.rstrip("/")
        self.session = session or requests.Session()
        self.policy = _RetryPolicy()
        self._cache_ttl = cfg.maps_cache_ttl
        self._cache_max = 128
        self._cache_lock = threading.Lock()
        self._search_cache: OrderedDict[str, Tuple[float, List[LocationCandidate]]] = OrderedDict()
        self._nearby_cache: OrderedDict[str, Tuple[float, List[AuthoritativePlace]]] = OrderedDict()

    def _cache_get(self, cache: OrderedDict[str, Tuple[float, Any]], key: str):  # type: ignore[valid-type]
        with self._cache_lock:
            entry = cache.get(key)
            if not entry:
                return None
            ts, value = entry
            if time.time() - ts > self._cache_ttl:
                cache.pop(key, None)
                return None
            cache.move_to_end(key)
            return value

    def _cache_set(self, cache: OrderedDict[str, Tuple[float, Any]], key: str, value):  # type: ignore[valid-type]
        with self._cache_lock:
            cache[key] = (time.time(), value)
            cache.move_to_end(key)
            while len(cache) > self._cache_max:
                cache.popitem(last=False)

    def _get(self, path: str, params: dict, *, ok_statuses: tuple[str, ...] = ("OK",)) -> dict:
        url = f"{self.base}{path}"
        params = {**params, "key": self.cfg.google_maps_api_key}
        attempt = 0
        while True:
            attempt += 1
            try:
                resp = self.session.get(url, params=params, timeout=self.cfg.maps_timeout)
            except requests.RequestException as exc:  # network error
                if attempt <= self.policy.retries:
                    time.sleep(self.policy.base_delay * attempt)
                    continue
                raise MapsUnavailableError(f"request error: {exc}")

            if resp.status_code in (429, 500, 502, 503, 504):
                if attempt <= self.policy.retries:
                    time.sleep(self.policy.base_delay * attempt)
                    continue
                raise MapsUnavailableError(f"upstream {resp.status_code}: {resp.text[:300]}")

            if not resp.ok:
                raise MapsError(f"upstream {resp.status_code}: {resp.text[:300]}")

            try:
                payload = resp.json()
            except ValueError:
                raise MapsError("invalid json response")

            status = payload.get("status")
            if status not in ok_statuses:
                logger.warning("google places {} returned status={}", path, status)
                raise MapsError(
                    f"Google API error: {status}",
                    status=status,
                    detail=payload.get("error_message"),
                )
            return payload

    def search_by_text(self, query: str) -> List[LocationCandidate]:
        key = query.strip().lower()
        cached = self._cache_get(self._search_cache, key)
        if cached is not None:
            return list(cached)
        payload = self._get("/place/textsearch/json", {"query": query})
        results = [
            LocationCandidate(
                id=str(item.get("place_id")),
                name=str(item.get("name") or ""),
                address=item.get("formatted_address"),
                coordinates=_coords(item.get("geometry")),
            )
            for item in payload.get("results") or []
        ]
        self._cache_set(self._search_cache, key, list(results))
        return results

    def find_nearby(
        self,
        coordinates: Coordinates,
        *,
        keyword: str = "",
        radius: int = 1500,
        place_type: Optional[str] = None,
    ) -> List[AuthoritativePlace]:
        key = f"{place_type or '*'}:{keyword.strip().lower()}:{coordinates.lat:.5f},{coordinates.lng:.5f}:{radius}"
        cached = self._cache_get(self._nearby_cache, key)
        if cached is not None:
            return list(cached)
        params: dict[str, Any] = {
            "location": f"{coordinates.lat},{coordinates.lng}",
            "radius": radius,
        }
        if keyword:
            params["keyword"] = keyword
        if place_type:
            params["type"] = place_type
        payload = self._get("/place/nearbysearch/json", params, ok_statuses=("OK", "ZERO_RESULTS"))
        results = [self._parse_place(item) for item in payload.get("results") or []]
        self._cache_set(self._nearby_cache, key, list(results))
        return results

    def _parse_place(self, item: dict) -> AuthoritativePlace:
        rating = item.get("rating")
        return AuthoritativePlace(
            id=str(item.get("place_id")),
            name=str(item.get("name") or ""),
            rating=float(rating) if isinstance(rating, (int, float)) else None,
            rating_count=item.get("user_ratings_total"),
            vicinity=item.get("vicinity"),
            price_level=item.get("price_level"),
            coordinates=_coords(item.get("geometry")),
            photo_references=tuple(p.reference for p in _photos(item.get("photos"))),
            open_now=(item.get("opening_hours") or {}).get("open_now"),
        )

    def get_details(self, place_id: str) -> PlaceDetails:
        payload = self._get("/place/details/json", {"place_id": place_id, "fields": DETAIL_FIELDS})
        place = payload.get("result") or {}
        photos = _photos(place.get("photos"))
        rating = place.get("rating")
        reviews = tuple(
            Review(
                author_name=r.get("author_name"),
                rating=r.get("rating"),
                time=r.get("time"),
                text=r.get("text") or "",
            )
            for r in place.get("reviews") or []
        )
        return PlaceDetails(
            id=place_id,
            name=str(place.get("name") or ""),
            rating=float(rating) if isinstance(rating, (int, float)) else None,
            rating_count=place.get("user_ratings_total"),
            vicinity=place.get("vicinity"),
            price_level=place.get("price_level"),
            coordinates=_coords(place.get("geometry")),
            photo_references=tuple(p.reference for p in photos),
            open_now=(place.get("opening_hours") or {}).get("open_now"),
            address=place.get("formatted_address"),
            phone=place.get("formatted_phone_number"),
            website=place.get("website"),
            maps_url=place.get("url"),
            opening_hours=tuple((place.get("opening_hours") or {}).get("weekday_text") or []),
            reviews=reviews,
            photos=photos,
        )

    def reverse_geocode(self, coordinates: Coordinates) -> Optional[LocationCandidate]:
        payload = self._get(
            "/geocode/json",
            {"latlng": f"{coordinates.lat},{coordinates.lng}"},
            ok_statuses=("OK", "ZERO_RESULTS"),
        )
        results = payload.get("results") or []
        if not results:
            return None
        first = results[0]
        address = first.get("formatted_address")
        return LocationCandidate(
            id=str(first.get("place_id")),
            name=str(address or ""),
            address=address,
            coordinates=_coords(first.get("geometry")) or coordinates,
        )

    def photo_url(self, reference: str, max_width: int = 400) -> str:
        query = urllib.parse.urlencode(
            {"maxwidth": max_width, "photoreference": reference, "key": self.cfg.google_maps_api_key or ""}
        )
        return f"{self.base}/place/photo?{query}"
