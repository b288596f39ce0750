from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from atmosfault.exceptions import StorageError, UpstreamUnavailable
from atmosfault.services.cache_aside import CacheAsideFetcher
from atmosfault.services.provider import ProviderResponse, TrackingProviderClient
from atmosfault.store import TrackingCacheStore

from conftest import NOW, CountingClient, FakeResponse, FakeSession, shipment_payload

PROVIDER_URL = "https://tracking.example/shipments"


class BrokenStore:
    def get(self, external_id):
        raise StorageError("read failed")

    def upsert(self, external_id, payload, refreshed_at):
        raise StorageError("write failed")


def _fetcher(client, store, now=NOW, ttl: float = 300) -> CacheAsideFetcher:
    return CacheAsideFetcher(client=client, store=store, ttl_seconds=ttl, clock=lambda: now)


# ── provider validation ──────────────────────────────────────


def test_provider_payload_is_parsed() -> None:
    response = ProviderResponse.from_dict(shipment_payload())
    shipment = response.shipments[0]
    assert shipment.id == "1234567890"
    assert shipment.origin.locality == "LEIPZIG - GERMANY - DE"
    assert shipment.destination.country_code == "US"
    assert shipment.status.status_code == "transit"
    assert [e.description for e in shipment.events] == ["Processed at hub", "Shipment picked up"]
    assert shipment.product_name == "EXPRESS WORLDWIDE"
    assert shipment.total_pieces == 1


@pytest.mark.parametrize(
    "payload",
    [
        None,
        [],
        {"shipments": "nope"},
        {"shipments": [{"id": 5}]},
        {"shipments": [{"id": "1", "status": {"statusCode": "transit"}}]},
        {"shipments": [{"id": "1", "status": {"timestamp": "t", "statusCode": "transit"}, "events": "x"}]},
    ],
)
def test_malformed_provider_payload_is_rejected(payload) -> None:
    with pytest.raises(UpstreamUnavailable):
        ProviderResponse.from_dict(payload)


def test_provider_client_sends_key_and_query() -> None:
    session = FakeSession(default=FakeResponse(shipment_payload()))
    client = TrackingProviderClient(api_key="k", base_url=PROVIDER_URL, session=session)

    response = client.get_shipment_tracking("1234567890")

    assert response.shipments[0].id == "1234567890"
    call = session.calls[0]
    assert call["headers"] == {"DHL-API-Key": "k"}
    assert call["params"]["trackingNumber"] == "1234567890"
    assert call["params"]["service"] == "express"


def test_provider_client_without_key_is_unavailable() -> None:
    session = FakeSession(default=FakeResponse(shipment_payload()))
    client = TrackingProviderClient(api_key=None, base_url=PROVIDER_URL, session=session)
    with pytest.raises(UpstreamUnavailable):
        client.fetch("1234567890")
    assert session.calls == []


def test_provider_http_error_carries_status() -> None:
    session = FakeSession(default=FakeResponse(status_code=429))
    client = TrackingProviderClient(api_key="k", base_url=PROVIDER_URL, session=session)
    with pytest.raises(UpstreamUnavailable) as exc_info:
        client.fetch("1234567890")
    assert exc_info.value.status_code == 429


# ── cache-aside policy ───────────────────────────────────────


def test_fresh_row_is_served_without_live_call(tracking_cache) -> None:
    tracking_cache.upsert("1234567890", shipment_payload(), refreshed_at=NOW - timedelta(seconds=100))
    client = CountingClient()

    response = _fetcher(client, tracking_cache).get_tracking("1234567890")

    assert response.shipments[0].id == "1234567890"
    assert client.calls == 0


def test_stale_row_is_refreshed_once(tracking_cache) -> None:
    tracking_cache.upsert(
        "1234567890",
        shipment_payload(status_code="pending"),
        refreshed_at=NOW - timedelta(seconds=400),
    )
    client = CountingClient(result=shipment_payload(status_code="delivered"))
    fetcher = _fetcher(client, tracking_cache)

    response = fetcher.get_tracking("1234567890")

    assert client.calls == 1
    assert response.shipments[0].status.status_code == "delivered"
    record = tracking_cache.get("1234567890")
    assert record.refreshed_at == NOW
    assert record.payload["shipments"][0]["status"]["statusCode"] == "delivered"
    assert record.created_at == NOW - timedelta(seconds=400)


def test_row_exactly_at_ttl_is_stale(tracking_cache) -> None:
    tracking_cache.upsert("1234567890", shipment_payload(), refreshed_at=NOW - timedelta(seconds=300))
    client = CountingClient()

    _fetcher(client, tracking_cache).get_tracking("1234567890")

    assert client.calls == 1


def test_miss_fetches_and_stores(tracking_cache) -> None:
    client = CountingClient()
    fetcher = _fetcher(client, tracking_cache)

    assert fetcher.get_tracking("1234567890") is not None
    assert fetcher.get_tracking("1234567890") is not None

    assert client.calls == 1
    assert fetcher.stats["hits"] == 1
    assert fetcher.stats["misses"] == 1


def test_live_failure_returns_none_without_stale_fallback(tracking_cache) -> None:
    tracking_cache.upsert("1234567890", shipment_payload(), refreshed_at=NOW - timedelta(hours=2))
    client = CountingClient(result=UpstreamUnavailable("down", service="tracking"))

    assert _fetcher(client, tracking_cache).get_tracking("1234567890") is None


def test_malformed_live_payload_returns_none_and_is_not_cached(tracking_cache) -> None:
    client = CountingClient(result={"shipments": "garbage"})

    assert _fetcher(client, tracking_cache).get_tracking("1234567890") is None
    assert tracking_cache.get("1234567890") is None


def test_storage_failures_do_not_hide_fresh_results() -> None:
    client = CountingClient()

    response = _fetcher(client, BrokenStore()).get_tracking("1234567890")

    assert response is not None
    assert client.calls == 1


def test_concurrent_misses_share_one_live_call(file_session_factory) -> None:
    client = CountingClient(delay=0.2)
    fetcher = _fetcher(client, TrackingCacheStore(session_factory=file_session_factory))
    results = []

    def lookup():
        results.append(fetcher.get_tracking("1234567890"))

    threads = [threading.Thread(target=lookup) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert client.calls == 1
    assert len(results) == 5
    assert all(r is not None for r in results)


def test_purge_drops_old_rows(tracking_cache) -> None:
    tracking_cache.upsert("old", shipment_payload("old"), refreshed_at=NOW - timedelta(days=30))
    tracking_cache.upsert("new", shipment_payload("new"), refreshed_at=NOW)

    assert _fetcher(CountingClient(), tracking_cache).purge_older_than(7) == 1
    assert tracking_cache.get("old") is None
    assert tracking_cache.get("new") is not None
