from __future__ import annotations

import threading
from datetime import timedelta

import pytest
import requests

from atmosfault.exceptions import UpstreamUnavailable, ValidationError
from atmosfault.ingestion import IngestionPipeline, RawSample, TelemetryFeedClient, validate_batch_index
from atmosfault.ingestion.pipeline import chunked
from atmosfault.models.base import build_engine, build_session_factory, init_db
from atmosfault.store import TelemetryStore

from conftest import NOW, FakeResponse, FakeSession, sample_row

BASE = "https://feed.example/treasure"


def _url(hour: int) -> str:
    return f"{BASE}/{hour:02d}.json"


def _pipeline(store, routes: dict, chunk_size: int = 1000, **kwargs) -> tuple[IngestionPipeline, FakeSession]:
    session = FakeSession(routes=routes)
    client = TelemetryFeedClient(base_url=BASE, timeout=1.0, session=session)
    pipeline = IngestionPipeline(
        client=client,
        store=store,
        chunk_size=chunk_size,
        max_workers=1,
        clock=lambda: NOW,
        **kwargs,
    )
    return pipeline, session


# ── feed parsing ─────────────────────────────────────────────


@pytest.mark.parametrize(
    "row",
    [
        None,
        [],
        [1.0, 2.0],
        ["a", 2.0, 3.0],
        [float("nan"), 2.0, 3.0],
        [91.0, 0.0, 3.0],
        [0.0, 181.0, 3.0],
        {"lat": 1},
    ],
)
def test_malformed_rows_are_rejected(row) -> None:
    assert RawSample.from_array(0, row) is None


def test_valid_row_keeps_its_ordinal() -> None:
    sample = RawSample.from_array(7, [10, 20, 3.5])
    assert sample == RawSample(ordinal=7, latitude=10.0, longitude=20.0, altitude=3.5)


@pytest.mark.parametrize("value", [-1, 24, "5", 5.0, True, None])
def test_validate_batch_index_rejects_bad_hours(value) -> None:
    with pytest.raises(ValidationError):
        validate_batch_index(value)


def test_fetch_batch_uses_zero_padded_url() -> None:
    session = FakeSession(routes={_url(5): FakeResponse([[1, 2, 3]])})
    client = TelemetryFeedClient(base_url=BASE + "/", session=session)
    samples = client.fetch_batch(5)
    assert session.calls[0]["url"] == f"{BASE}/05.json"
    assert len(samples) == 1


@pytest.mark.parametrize(
    "result",
    [
        FakeResponse(status_code=503),
        FakeResponse(invalid_json=True),
        FakeResponse({"not": "an array"}),
        requests.exceptions.Timeout("slow"),
        requests.exceptions.ConnectionError("down"),
    ],
)
def test_fetch_batch_failures_are_upstream_unavailable(result) -> None:
    client = TelemetryFeedClient(base_url=BASE, session=FakeSession(routes={_url(3): result}))
    with pytest.raises(UpstreamUnavailable):
        client.fetch_batch(3)


# ── ingestion ────────────────────────────────────────────────


def test_ingest_batch_writes_keyed_samples(telemetry_store) -> None:
    rows = [[10.0, 20.0, 3.0], [11.0, 21.0, 5.0]]
    pipeline, _ = _pipeline(telemetry_store, {_url(5): FakeResponse(rows)})

    assert pipeline.ingest_batch(5) == 2
    assert telemetry_store.count(batch_index=5) == 2

    second = telemetry_store.get(5, 1)
    assert second.latitude == 11.0
    assert second.longitude == 21.0
    assert second.altitude == 5.0
    assert second.source_id == "ATM-05000001"


def test_skipped_rows_do_not_shift_later_ordinals(telemetry_store) -> None:
    rows = [[1.0, 1.0, 1.0], "junk", [3.0, 3.0, 3.0]]
    pipeline, _ = _pipeline(telemetry_store, {_url(2): FakeResponse(rows)})

    assert pipeline.ingest_batch(2) == 2
    assert telemetry_store.get(2, 1) is None
    assert telemetry_store.get(2, 2).latitude == 3.0


def test_reingesting_a_batch_is_idempotent_and_overwrites(telemetry_store) -> None:
    pipeline, session = _pipeline(telemetry_store, {_url(0): FakeResponse([[1.0, 1.0, 1.0]])})
    pipeline.ingest_batch(0)

    session.routes[_url(0)] = FakeResponse([[2.0, 2.0, 9.0]])
    pipeline.ingest_batch(0)

    assert telemetry_store.count() == 1
    sample = telemetry_store.get(0, 0)
    assert sample.latitude == 2.0
    assert sample.altitude == 9.0


def test_rows_are_written_in_chunks(telemetry_store, monkeypatch) -> None:
    rows = [[float(i % 80), 0.0, 1.0] for i in range(2500)]
    pipeline, _ = _pipeline(telemetry_store, {_url(1): FakeResponse(rows)}, chunk_size=1000)

    sizes = []
    original = telemetry_store.upsert_chunk

    def spy(chunk):
        sizes.append(len(chunk))
        return original(chunk)

    monkeypatch.setattr(telemetry_store, "upsert_chunk", spy)

    assert pipeline.ingest_batch(1) == 2500
    assert sizes == [1000, 1000, 500]
    assert telemetry_store.count(batch_index=1) == 2500


def test_chunked_splits_evenly_and_keeps_remainder() -> None:
    assert [len(c) for c in chunked(list(range(7)), 3)] == [3, 3, 1]
    assert list(chunked([], 3)) == []


def test_ingest_batch_surfaces_feed_failure(telemetry_store) -> None:
    pipeline, _ = _pipeline(telemetry_store, {})
    with pytest.raises(UpstreamUnavailable):
        pipeline.ingest_batch(4)


def test_ingest_all_isolates_failed_batches(telemetry_store) -> None:
    routes = {_url(h): FakeResponse([[float(h), 0.0, 1.0]]) for h in range(24)}
    routes[_url(7)] = FakeResponse(status_code=500)
    routes[_url(12)] = requests.exceptions.Timeout("slow")
    pipeline, _ = _pipeline(telemetry_store, routes)

    result = pipeline.ingest_all()

    assert result.total == 22
    assert result.failed_batches == [7, 12]
    assert [hour for hour, _ in result.per_batch] == list(range(24))
    body = result.to_dict()
    assert body["total_records"] == 22
    assert body["hour_results"][7] == {"hour": 7, "count": 0}
    assert telemetry_store.count() == 22
    assert pipeline.stats["error_count"] == 2


def test_ingest_all_in_parallel_reports_in_batch_order(tmp_path) -> None:
    db_path = tmp_path / "parallel.db"
    engine = build_engine(f"sqlite:///{db_path}", echo=False)
    init_db(bind=engine)
    telemetry_store = TelemetryStore(session_factory=build_session_factory(engine))
    routes = {_url(h): FakeResponse([[float(h), 0.0, 1.0], [0.0, float(h), 2.0]]) for h in range(24)}
    session = FakeSession(routes=routes)
    pipeline = IngestionPipeline(
        client=TelemetryFeedClient(base_url=BASE, session=session),
        store=telemetry_store,
        max_workers=4,
        clock=lambda: NOW,
    )

    result = pipeline.ingest_all()

    assert result.total == 48
    assert [hour for hour, _ in result.per_batch] == list(range(24))
    assert telemetry_store.count() == 48
    engine.dispose()


def test_cancelled_pipeline_writes_nothing(telemetry_store) -> None:
    cancel = threading.Event()
    cancel.set()
    pipeline, _ = _pipeline(
        telemetry_store,
        {_url(0): FakeResponse([[1.0, 1.0, 1.0]])},
        cancel_event=cancel,
    )

    assert pipeline.ingest_batch(0) == 0
    assert pipeline.ingest_all().total == 0
    assert telemetry_store.count() == 0


def test_purge_removes_only_stale_samples(telemetry_store) -> None:
    telemetry_store.upsert_chunk([
        sample_row(0, 0, 1.0, 1.0, 1.0, observed_at=NOW - timedelta(days=10)),
        sample_row(0, 1, 1.0, 1.0, 1.0, observed_at=NOW - timedelta(days=1)),
    ])
    pipeline, _ = _pipeline(telemetry_store, {})

    assert pipeline.purge_older_than(7) == 1
    assert telemetry_store.get(0, 0) is None
    assert telemetry_store.get(0, 1) is not None
