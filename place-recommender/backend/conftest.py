import sys
from pathlib import Path

import pytest


# Ensure backend/src is on sys.path for tests so that imports like `services.*` work.
ROOT = Path(__file__).resolve().parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from config import Configuration  # noqa: E402
from models import AuthoritativePlace, Coordinates, LocationCandidate, PlaceDetails  # noqa: E402
from services.google_places import MapsError  # noqa: E402


class FakeLLM:
    """Replays canned responses in order; an Exception entry is raised instead."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts: list[str] = []

    def generate(self, prompt, *, max_tokens=None, temperature=None):
        self.prompts.append(prompt)
        if not self.responses:
            return ""
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeMaps:
    def __init__(self, locations=None, nearby=None, details=None, reverse=None, errors=None):
        self.locations = locations or []
        self.nearby = nearby or []
        self.details = details or {}
        self.reverse = reverse
        self.errors = errors or {}
        self.calls: list[tuple] = []

    def _maybe_fail(self, op):
        if op in self.errors:
            raise self.errors[op]

    def search_by_text(self, query):
        self.calls.append(("search_by_text", query))
        self._maybe_fail("search_by_text")
        return list(self.locations)

    def find_nearby(self, coordinates, *, keyword="", radius=1500, place_type=None):
        self.calls.append(("find_nearby", keyword, radius, place_type))
        self._maybe_fail("find_nearby")
        return list(self.nearby)

    def get_details(self, place_id):
        self.calls.append(("get_details", place_id))
        self._maybe_fail("get_details")
        if place_id not in self.details:
            raise MapsError("Google API error: NOT_FOUND", status="NOT_FOUND")
        return self.details[place_id]

    def reverse_geocode(self, coordinates):
        self.calls.append(("reverse_geocode", coordinates))
        self._maybe_fail("reverse_geocode")
        return self.reverse

    def photo_url(self, reference, max_width=400):
        return f"https://photos.test/{reference}?w={max_width}"


KORAMANGALA = LocationCandidate(
    id="loc-koramangala",
    name="Koramangala",
    address="Koramangala, Bengaluru, Karnataka, India",
    coordinates=Coordinates(lat=12.9352, lng=77.6245),
)

KORAMANGALA_DETAILS = PlaceDetails(
    id="loc-koramangala",
    name="Koramangala",
    address="Koramangala, Bengaluru, Karnataka, India",
    coordinates=Coordinates(lat=12.9352, lng=77.6245),
)

NOODLE_BAR = AuthoritativePlace(
    id="p-noodle",
    name="Mamagoto",
    rating=4.3,
    rating_count=2100,
    vicinity="5th Block, Koramangala",
    price_level=2,
    coordinates=Coordinates(lat=12.934, lng=77.62),
    photo_references=("ph-1", "ph-2"),
    open_now=True,
)

GRILL_HOUSE = AuthoritativePlace(
    id="p-grill",
    name="The Grill House Restaurant",
    rating=4.0,
    rating_count=310,
    vicinity="80 Feet Rd, Koramangala",
    coordinates=Coordinates(lat=12.936, lng=77.63),
)


@pytest.fixture
def cfg() -> Configuration:
    return Configuration(
        google_maps_api_key="maps-test-key",
        huggingface_api_key="hf-test-key",
        app_env="test",
    )


@pytest.fixture
def fake_maps() -> FakeMaps:
    return FakeMaps(
        locations=[KORAMANGALA],
        nearby=[NOODLE_BAR, GRILL_HOUSE],
        details={KORAMANGALA_DETAILS.id: KORAMANGALA_DETAILS},
    )
