from __future__ import annotations

import pytest
import requests

from atmosfault.cache import TTLCache
from atmosfault.exceptions import UpstreamUnavailable
from atmosfault.services.geocoding import Coordinates, Geocoder, split_locality
from atmosfault.services.weather import WeatherService

from conftest import FakeResponse, FakeSession

MAPBOX = "https://geo.example/places"
LEIPZIG = {"features": [{"center": [12.37, 51.34]}]}


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _geocoder(session: FakeSession, clock: FakeClock | None = None, api_key: str | None = "token") -> Geocoder:
    cache = TTLCache(ttl_seconds=1800, clock=clock or FakeClock())
    return Geocoder(api_key=api_key, cache=cache, base_url=MAPBOX, session=session)


# ── locality parsing ─────────────────────────────────────────


@pytest.mark.parametrize(
    ("locality", "expected"),
    [
        ("LEIPZIG", ("LEIPZIG", None)),
        ("LONDON - HEATHROW - UK", ("LONDON", "UK")),
        ("EAST MIDLANDS - UK", ("EAST MIDLANDS", None)),
        ("CINCINNATI HUB - OH - US", ("CINCINNATI HUB", "US")),
    ],
)
def test_split_locality(locality: str, expected: tuple) -> None:
    assert split_locality(locality) == expected


# ── geocoder ─────────────────────────────────────────────────


def test_lookup_returns_coordinates_and_queries_mapbox() -> None:
    session = FakeSession(default=FakeResponse(LEIPZIG))

    coords = _geocoder(session).lookup("LEIPZIG - SAXONY - DE")

    assert coords == Coordinates(latitude=51.34, longitude=12.37)
    call = session.calls[0]
    assert call["url"] == f"{MAPBOX}/LEIPZIG.json"
    assert call["params"]["country"] == "de"
    assert call["params"]["types"] == "place"


def test_country_aliases_are_normalized() -> None:
    session = FakeSession(default=FakeResponse(LEIPZIG))
    _geocoder(session).lookup("LONDON", country_code="UK")
    assert session.calls[0]["params"]["country"] == "gb"


def test_cached_until_ttl_expires() -> None:
    session = FakeSession(default=FakeResponse(LEIPZIG))
    clock = FakeClock()
    geocoder = _geocoder(session, clock)

    geocoder.lookup("LEIPZIG")
    clock.now += 1799
    geocoder.lookup("LEIPZIG")
    assert len(session.calls) == 1

    clock.now += 1
    geocoder.lookup("LEIPZIG")
    assert len(session.calls) == 2


def test_unknown_city_is_negatively_cached() -> None:
    session = FakeSession(default=FakeResponse({"features": []}))
    geocoder = _geocoder(session)

    assert geocoder.lookup("ATLANTIS") is None
    assert geocoder.lookup("ATLANTIS") is None
    assert len(session.calls) == 1


@pytest.mark.parametrize(
    "result",
    [
        FakeResponse(status_code=500),
        FakeResponse(invalid_json=True),
        FakeResponse({"features": [{"center": "bad"}]}),
        requests.exceptions.ConnectionError("down"),
    ],
)
def test_lookup_never_raises(result) -> None:
    session = FakeSession(default=result)
    assert _geocoder(session).lookup("LEIPZIG") is None


def test_no_api_key_means_no_coordinates() -> None:
    session = FakeSession(default=FakeResponse(LEIPZIG))
    assert _geocoder(session, api_key=None).lookup("LEIPZIG") is None
    assert session.calls == []


def test_blank_locality_is_skipped() -> None:
    session = FakeSession(default=FakeResponse(LEIPZIG))
    assert _geocoder(session).lookup("   ") is None
    assert _geocoder(session).lookup(None) is None
    assert session.calls == []


def test_cache_evicts_oldest_when_full() -> None:
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=60, max_entries=10, clock=clock)
    for i in range(11):
        clock.now += 1
        cache.set(i, i)

    assert len(cache) == 10
    assert cache.lookup(0) == (False, None)
    assert cache.get(10) == 10


# ── weather ──────────────────────────────────────────────────


WEATHER = {
    "main": {"temp": 14.2, "feels_like": 13.1, "pressure": 1012, "humidity": 80},
    "wind": {"speed": 5.5, "deg": 240},
    "weather": [{"description": "light rain", "icon": "10d"}],
    "clouds": {"all": 75},
}


def test_weather_report_is_parsed() -> None:
    session = FakeSession(default=FakeResponse(WEATHER))
    report = WeatherService(api_key="k", session=session).at(51.34, 12.37)

    assert report.temperature == 14.2
    assert report.description == "light rain"
    assert report.to_dict()["clouds"] == 75
    assert session.calls[0]["params"]["units"] == "metric"


def test_weather_without_key_is_none() -> None:
    session = FakeSession(default=FakeResponse(WEATHER))
    assert WeatherService(api_key=None, session=session).at(0.0, 0.0) is None
    assert session.calls == []


@pytest.mark.parametrize("result", [FakeResponse(status_code=401), FakeResponse({"main": {}})])
def test_weather_failures_raise_upstream_unavailable(result) -> None:
    service = WeatherService(api_key="k", session=FakeSession(default=result))
    with pytest.raises(UpstreamUnavailable):
        service.at(0.0, 0.0)
