from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import Any

import pytest
import requests
from sqlalchemy.pool import StaticPool

from atmosfault.models.base import build_engine, build_session_factory, init_db
from atmosfault.store import TelemetryStore, TrackingCacheStore

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200, invalid_json: bool = False) -> None:
        self._payload = payload
        self.status_code = status_code
        self._invalid_json = invalid_json

    def json(self) -> Any:
        if self._invalid_json:
            raise ValueError("not json")
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error", response=self)


class FakeSession:
    """Stands in for requests.Session; routes by URL and records calls."""

    def __init__(self, routes: dict[str, Any] | None = None, default: Any = None) -> None:
        self.routes = routes or {}
        self.default = default
        self.calls: list[dict[str, Any]] = []

    def get(self, url: str, params: dict | None = None, headers: dict | None = None, timeout: float | None = None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        result = self.routes.get(url, self.default)
        if isinstance(result, Exception):
            raise result
        if result is None:
            return FakeResponse(status_code=404)
        return result


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://", poolclass=StaticPool, echo=False)
    init_db(bind=engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def telemetry_store(session_factory) -> TelemetryStore:
    return TelemetryStore(session_factory=session_factory)


@pytest.fixture
def tracking_cache(session_factory) -> TrackingCacheStore:
    return TrackingCacheStore(session_factory=session_factory)


def sample_row(batch_index: int, ordinal: int, lat: float, lon: float, alt: float,
               observed_at: datetime = NOW) -> dict:
    return {
        "batch_index": batch_index,
        "ordinal": ordinal,
        "latitude": lat,
        "longitude": lon,
        "altitude": alt,
        "observed_at": observed_at,
    }


@pytest.fixture
def file_session_factory(tmp_path):
    """File-backed database for tests that touch the store from several threads."""
    db_path = tmp_path / "atmosfault.db"
    engine = build_engine(f"sqlite:///{db_path}", echo=False)
    init_db(bind=engine)
    yield build_session_factory(engine)
    engine.dispose()


def shipment_payload(shipment_id: str = "1234567890", status_code: str = "transit") -> dict:
    return {
        "shipments": [
            {
                "id": shipment_id,
                "service": "express",
                "origin": {"address": {"addressLocality": "LEIPZIG - GERMANY - DE"}},
                "destination": {"address": {"addressLocality": "NEW YORK - NY - US", "countryCode": "US"}},
                "status": {
                    "timestamp": "2025-06-01T10:00:00Z",
                    "statusCode": status_code,
                    "status": "Processed",
                    "description": "Processed at hub",
                    "location": {"address": {"addressLocality": "EAST MIDLANDS - UK"}},
                },
                "events": [
                    {
                        "timestamp": "2025-06-01T10:00:00Z",
                        "statusCode": status_code,
                        "description": "Processed at hub",
                        "location": {"address": {"addressLocality": "EAST MIDLANDS - UK"}},
                    },
                    {
                        "timestamp": "2025-05-31T08:00:00Z",
                        "statusCode": "pending",
                        "description": "Shipment picked up",
                        "location": {"address": {"addressLocality": "LEIPZIG - GERMANY - DE"}},
                    },
                ],
                "details": {"product": {"productName": "EXPRESS WORLDWIDE"}, "totalNumberOfPieces": 1},
            }
        ]
    }


class CountingClient:
    """Provider client double that counts live calls."""

    def __init__(self, result=None, delay: float = 0.0) -> None:
        self.result = result if result is not None else shipment_payload()
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def fetch(self, tracking_number: str) -> dict:
        with self._lock:
            self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result
