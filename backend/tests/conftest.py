"""
pytest configuration and shared fixtures for the Blockbrief backend tests.

No test talks to Socrata. Module builders get a ``FakeSoda`` that answers
per dataset id from canned rows (or raises); client tests use
``httpx.MockTransport``; route tests drive the ASGI app with
``httpx.ASGITransport``.
"""

import os

# Set env vars BEFORE importing config so module-level constants pick them up
os.environ.setdefault("SODA_RESPONSE_CACHE", "0")
os.environ.setdefault("SOCRATA_APP_TOKEN", "")

import pytest
from pyproj import CRS, Transformer

from brief import build_query_context
from brief_modules.helpers import BuildServices
from cache import TTLCache
from config import EPSG_2263
from models import Location

NOW = "2026-03-15T12:00:00.000Z"


class FakeSoda:
    """Stands in for SodaClient.query_dataset.

    ``responses`` maps dataset id to a list of rows, an exception instance to
    raise, or a callable ``(query) -> rows`` for datasets queried more than
    one way. Unlisted datasets return no rows. Every call is recorded.
    """

    def __init__(self, responses: dict | None = None):
        self.responses = dict(responses or {})
        self.calls: list[tuple[str, dict]] = []

    async def query_dataset(self, dataset_id: str, **query):
        self.calls.append((dataset_id, query))
        response = self.responses.get(dataset_id, [])
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            response = response(query)
            if isinstance(response, BaseException):
                raise response
        return list(response)

    def calls_for(self, dataset_id: str) -> list[dict]:
        return [q for d, q in self.calls if d == dataset_id]

    async def aclose(self):
        pass


def state_plane_wkt(points: list[tuple[float, float]]) -> str:
    """LINESTRING in EPSG:2263 feet for a list of (lat, lon) points."""
    to_plane = Transformer.from_crs(CRS.from_epsg(4326), CRS.from_proj4(EPSG_2263), always_xy=True)
    coords = []
    for lat, lon in points:
        x, y = to_plane.transform(lon, lat)
        coords.append(f"{x:.2f} {y:.2f}")
    return f"LINESTRING ({', '.join(coords)})"


@pytest.fixture()
def fake_soda():
    return FakeSoda()


@pytest.fixture()
def services(fake_soda):
    return BuildServices(soda=fake_soda, cache=TTLCache())


@pytest.fixture()
def location():
    return Location(
        lat=40.74844,
        lon=-73.98566,
        bbl="1008350041",
        bin="1015862",
        borough="Manhattan",
        community_district="105",
        zip_code="10118",
        normalized_address="350 5th Ave, Manhattan, NY 10118",
    )


@pytest.fixture()
def ctx(location):
    return build_query_context(location, now=NOW)
