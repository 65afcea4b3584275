"""Shared test fixtures."""

from __future__ import annotations

import io
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from streak_bot.db import StreakStore
from streak_bot.quiz.manager import LocationResolver

TEST_MAP = "A Balanced Europe"
TEST_SLUG = "a-balanced-europe"


class FakeClock:
    """Milliseconds, advanced by hand."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def png_bytes(size=(1280, 720), color=(40, 90, 160)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    return StreakStore(str(tmp_path / "pb.json"), str(tmp_path / "lb.json"))


@pytest.fixture
def locations():
    return [
        {"lat": 48.8566, "lng": 2.3522},
        {"lat": 47.2184, "lng": -1.5536, "heading": 90},
        {"lat": 45.7640, "lng": 4.8357},
    ]


@pytest.fixture
def catalog(locations):
    catalog = MagicMock()
    catalog.fetch_locations = AsyncMock(return_value={"ready": True, "locations": locations})
    catalog.close = AsyncMock()
    return catalog


@pytest.fixture
def geocoder():
    geocoder = MagicMock()
    geocoder.reverse_lookup = AsyncMock(return_value={"country": "France", "state": "Brittany"})
    geocoder.close = AsyncMock()
    return geocoder


@pytest.fixture
def resolver(catalog, geocoder):
    return LocationResolver(catalog=catalog, geocoder=geocoder, maps={TEST_MAP: TEST_SLUG})


@pytest.fixture
def renderer():
    renderer = MagicMock()
    renderer.render = AsyncMock(return_value=b"jpeg-bytes")
    renderer.pool.close = AsyncMock()
    return renderer
