"""
Job queue consumer tests.

The queue is an in-memory table; upstream sources are a MockTransport.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from geoagent.core.models import QueryJobStatus
from geoagent.exceptions import MalformedQueryError, TransportError
from geoagent.infrastructure import InMemoryRecordStore
from geoagent.queue_worker import parse_query_json
from tests.factories.model_factories import make_queue_record, make_target_query, random_timestamp

QUEUE_TABLE = "AgentQueries"


def _run(consumer, call):
    """Await ``call`` then close the consumer's HTTP client."""
    async def scenario():
        try:
            return await call
        finally:
            await consumer.orchestrator.fetcher.close()
    return asyncio.run(scenario())


def _seed(record_store, *records):
    asyncio.run(record_store.add_records(QUEUE_TABLE, list(records)))


def _rows(record_store):
    return {r["id"]: r for r in asyncio.run(record_store.fetch_all(QUEUE_TABLE))}


def _undated(**kwargs):
    record = make_queue_record(**kwargs)
    record["created_at"] = ""
    return record


# ============================================================================
# parse_query_json
# ============================================================================

class TestParseQueryJson:

    def test_object_passes_through(self):
        query = make_target_query()
        assert parse_query_json(query) is query

    def test_json_text(self):
        assert parse_query_json('{"target": {"source": "osm"}}') == {"target": {"source": "osm"}}

    @pytest.mark.parametrize("value", ["{not json", "[1, 2]", None, 42])
    def test_malformed(self, value):
        with pytest.raises(MalformedQueryError):
            parse_query_json(value)


# ============================================================================
# initialize
# ============================================================================

class TestInitialize:

    def test_sweeps_pending_jobs(self, make_consumer, record_store, fake_sources):
        _seed(record_store, make_queue_record(record_id=1), make_queue_record(record_id=2, status="success"))
        consumer = make_consumer()

        assert _run(consumer, consumer.initialize()) is True

        rows = _rows(record_store)
        assert rows[1]["status"] == "success"
        assert len(fake_sources.requests) == 1
        assert consumer.enabled

    def test_unreachable_table_disables(self, make_consumer):
        consumer = make_consumer(store=InMemoryRecordStore())

        assert _run(consumer, consumer.initialize()) is False
        assert consumer.enabled is False
        assert _run(consumer, consumer.handle_records([make_queue_record(record_id=1)])) == 0

    def test_disabled_by_config(self, make_consumer, record_store):
        _seed(record_store, make_queue_record(record_id=1))
        consumer = make_consumer(enabled=False)

        assert _run(consumer, consumer.initialize()) is False
        assert _rows(record_store)[1]["status"] == "pending"

    def test_second_call_is_noop(self, make_consumer, record_store, fake_sources):
        _seed(record_store, make_queue_record(record_id=1))
        consumer = make_consumer()

        async def twice():
            first = await consumer.initialize()
            await consumer.record_store.update_record(QUEUE_TABLE, 1, {"status": "pending"})
            second = await consumer.initialize()
            return first, second

        assert _run(consumer, twice()) == (True, True)
        assert len(fake_sources.requests) == 1


# ============================================================================
# process_job
# ============================================================================

class TestProcessJob:

    def test_success_writes_result_and_notifies(self, make_consumer, record_store):
        _seed(record_store, make_queue_record(record_id=1))
        consumer = make_consumer()

        assert _run(consumer, consumer.initialize()) is True

        row = _rows(record_store)[1]
        assert row["status"] == "success"
        assert row["executed_at"]
        result = json.loads(row["result_json"])
        assert result["success"] is True
        assert result["result"]["layers"][0]["id"] == "target"

        notification = consumer.store.get_state("ui.notification")
        assert notification["type"] == "success"
        assert notification["message"] == "Requête agent exécutée avec succès"
        assert notification["queryId"] == 1
        assert consumer.stats == {"enabled": True, "in_flight": 0, "processed": 1, "failed": 0}

    def test_malformed_json_fails_only_that_job(self, make_consumer, record_store):
        _seed(
            record_store,
            make_queue_record(record_id=1, query="{not json"),
            make_queue_record(record_id=2),
        )
        consumer = make_consumer()

        _run(consumer, consumer.initialize())

        rows = _rows(record_store)
        assert rows[1]["status"] == "error"
        assert "Invalid query_json" in rows[1]["error_message"]
        assert rows[1]["executed_at"]
        assert rows[2]["status"] == "success"
        assert consumer.stats["processed"] == 1
        assert consumer.stats["failed"] == 1

    @pytest.mark.parametrize("payload", [
        42,
        ["L", {"target": {"source": "osm", "type": "amenity", "value": "school"}}],
    ], ids=["number", "list"])
    def test_non_text_query_json_fails_the_job(self, make_consumer, record_store, fake_sources, payload):
        _seed(record_store, make_queue_record(record_id=7, query=payload))
        consumer = make_consumer()

        _run(consumer, consumer.initialize())

        row = _rows(record_store)[7]
        assert row["status"] == "error"
        assert "Invalid query_json format" in row["error_message"]
        assert row["executed_at"]
        assert fake_sources.requests == []
        notification = consumer.store.get_state("ui.notification")
        assert notification["type"] == "error"
        assert notification["queryId"] == 7
        assert notification["errorCode"] == "MALFORMED_QUERY"

    def test_invalid_column_fails_the_job_once(self, make_consumer, record_store, fake_sources):
        record = make_queue_record(record_id=8, version="draft")
        _seed(record_store, record)
        consumer = make_consumer()

        _run(consumer, consumer.initialize())

        row = _rows(record_store)[8]
        assert row["status"] == "error"
        assert "version" in row["error_message"]
        assert fake_sources.requests == []
        assert _run(consumer, consumer.handle_records([record])) == 0
        assert consumer.stats["failed"] == 1

    def test_invalid_row_that_is_not_pending_is_skipped(self, make_consumer, record_store):
        _seed(record_store, make_queue_record(record_id=9, status="success", version="draft"))
        consumer = make_consumer()

        _run(consumer, consumer.initialize())

        assert _rows(record_store)[9]["status"] == "success"
        assert consumer.stats["failed"] == 0

    def test_unknown_treatment_never_succeeds(self, make_consumer, record_store, fake_sources):
        query = make_target_query(treatments=[{"id": "teleport"}])
        _seed(record_store, make_queue_record(record_id=5, query=query))
        consumer = make_consumer()

        _run(consumer, consumer.initialize())

        row = _rows(record_store)[5]
        assert row["status"] == "error"
        assert "teleport" in row["error_message"]
        assert fake_sources.requests == []
        notification = consumer.store.get_state("ui.notification")
        assert notification["type"] == "error"
        assert notification["message"].startswith("Erreur lors de l'exécution: ")
        assert notification["errorCode"] == "UNKNOWN_TREATMENT"
        assert notification["retryable"] is False

    def test_orchestrator_sees_processing_status(self, make_consumer, record_store):
        _seed(record_store, make_queue_record(record_id=3))
        consumer = make_consumer()
        seen = []
        original = consumer.orchestrator.execute

        async def spy(query):
            seen.append(_rows_now(record_store)[3]["status"])
            return await original(query)

        consumer.orchestrator.execute = spy
        _run(consumer, consumer.initialize())
        assert seen == ["processing"]

    def test_status_write_failure_does_not_raise(self, make_consumer, record_store):
        _seed(record_store, make_queue_record(record_id=1))
        consumer = make_consumer(store=_FailingWrites(record_store))

        status = _run(consumer, consumer.process_job(make_queue_record(record_id=1)))

        assert status == QueryJobStatus.SUCCESS
        assert _rows(record_store)[1]["status"] == "pending"

    def test_non_pending_row_skipped(self, make_consumer, record_store, fake_sources):
        consumer = make_consumer()
        status = _run(consumer, consumer.process_job(make_queue_record(record_id=1, status="success")))
        assert status is None
        assert fake_sources.requests == []

    def test_unreadable_row_skipped(self, make_consumer):
        consumer = make_consumer()
        assert _run(consumer, consumer.process_job({"id": "not-a-number"})) is None


def _rows_now(record_store):
    # Peek at the dict-backed table without awaiting
    return {rid: dict(r) for rid, r in record_store._table(QUEUE_TABLE).items()}


class _FailingWrites(InMemoryRecordStore):
    """Reads pass through to ``inner``; every write fails."""

    def __init__(self, inner):
        super().__init__()
        self.inner = inner

    async def fetch_all(self, table):
        return await self.inner.fetch_all(table)

    async def update_record(self, table, record_id, fields):
        raise TransportError("host is read-only", status_code=503)


# ============================================================================
# handle_records: duplicates and stale notifications
# ============================================================================

class TestHandleRecords:

    def test_concurrent_duplicate_notifications_execute_once(self, make_consumer, record_store, fake_sources):
        consumer = make_consumer()
        _run(consumer, consumer.initialize())
        _seed(record_store, make_queue_record(record_id=9))
        rows = asyncio.run(record_store.fetch_all(QUEUE_TABLE))
        writes = []
        original_update = record_store.update_record

        async def counting_update(table, record_id, fields):
            writes.append(fields["status"])
            await original_update(table, record_id, fields)

        record_store.update_record = counting_update

        async def both():
            return await asyncio.gather(consumer.handle_records(rows), consumer.handle_records(rows))

        results = _run(consumer, both())

        assert sorted(results) == [0, 1]
        assert len(fake_sources.requests) == 1
        assert writes == ["processing", "success"]

    def test_overlapping_notifications_run_jobs_one_at_a_time(self, make_consumer, record_store):
        consumer = make_consumer()
        _run(consumer, consumer.initialize())
        first, second = make_queue_record(record_id=11), make_queue_record(record_id=12)
        _seed(record_store, first, second)
        original = consumer.orchestrator.execute
        active = []
        peak = []

        async def slow_execute(query):
            active.append(1)
            peak.append(len(active))
            try:
                await asyncio.sleep(0.02)
                return await original(query)
            finally:
                active.pop()

        consumer.orchestrator.execute = slow_execute

        async def both():
            return await asyncio.gather(
                consumer.handle_records([first, second]),
                consumer.handle_records([second]),
            )

        results = _run(consumer, both())

        assert max(peak) == 1
        assert sum(results) == 2
        rows = _rows(record_store)
        assert rows[11]["status"] == rows[12]["status"] == "success"

    def test_stale_notification_ignored(self, make_consumer, record_store, fake_sources):
        consumer = make_consumer()
        _run(consumer, consumer.initialize())
        stale = make_queue_record(record_id=4)
        _seed(record_store, stale)

        assert _run(consumer, consumer.handle_records([stale])) == 1
        assert _run(consumer, consumer.handle_records([stale])) == 0
        assert len(fake_sources.requests) == 1

    def test_reused_id_with_new_version_runs_again(self, make_consumer, record_store, fake_sources):
        consumer = make_consumer()
        _run(consumer, consumer.initialize())
        _seed(record_store, make_queue_record(record_id=4, version=1))

        assert _run(consumer, consumer.handle_records([make_queue_record(record_id=4, version=1)])) == 1
        assert _run(consumer, consumer.handle_records([make_queue_record(record_id=4, version=2)])) == 1
        assert len(fake_sources.requests) == 2

    def test_resolved_key_cache_is_bounded(self, make_consumer, record_store):
        consumer = make_consumer(completed_key_cache_size=2)
        _run(consumer, consumer.initialize())
        records = [make_queue_record(record_id=i) for i in (1, 2, 3)]
        _seed(record_store, *records)

        _run(consumer, consumer.handle_records(records))

        assert len(consumer._resolved_keys) == 2
        assert records[0]["id"] not in {int(key.split(":")[0]) for key in consumer._resolved_keys}

    def test_only_pending_rows_processed(self, make_consumer, record_store, fake_sources):
        consumer = make_consumer()
        _run(consumer, consumer.initialize())
        records = [
            make_queue_record(record_id=1, status="processing"),
            make_queue_record(record_id=2, status="error"),
            make_queue_record(record_id=3, status=""),
        ]
        _seed(record_store, *records)

        assert _run(consumer, consumer.handle_records(records)) == 1
        assert _rows(record_store)[3]["status"] == "success"


# ============================================================================
# execute_query / history / cleanup
# ============================================================================

class TestDirectAccess:

    def test_execute_query_bypasses_table(self, make_consumer, record_store):
        consumer = make_consumer()
        result = _run(consumer, consumer.execute_query(make_target_query()))
        assert result.success is True
        assert _rows(record_store) == {}

    def test_history_newest_first(self, make_consumer, record_store):
        now = datetime.now(timezone.utc)
        _seed(
            record_store,
            make_queue_record(record_id=1, status="success", created_at=(now - timedelta(hours=3)).isoformat()),
            make_queue_record(record_id=2, status="success", created_at=(now - timedelta(hours=1)).timestamp()),
            make_queue_record(record_id=3, status="error", created_at=(now - timedelta(hours=2)).isoformat()),
            _undated(record_id=4, status="error"),
        )
        consumer = make_consumer(history_limit=3)

        history = _run(consumer, consumer.get_job_history())

        assert [row["id"] for row in history] == [2, 3, 1]
        assert [row["id"] for row in _run(consumer, consumer.get_job_history(limit=10))] == [2, 3, 1, 4]

    def test_history_on_unreadable_table(self, make_consumer):
        consumer = make_consumer(store=InMemoryRecordStore())
        assert _run(consumer, consumer.get_job_history()) == []

    def test_cleanup_deletes_old_terminal_jobs(self, make_consumer, record_store):
        old_iso = random_timestamp(min_days=8, max_days=30).isoformat()
        old_epoch = random_timestamp(min_days=8, max_days=30).timestamp()
        recent = random_timestamp(min_days=0, max_days=6).isoformat()
        _seed(
            record_store,
            make_queue_record(record_id=1, status="success", created_at=old_iso),
            make_queue_record(record_id=2, status="error", created_at=old_epoch),
            make_queue_record(record_id=3, status="pending", created_at=old_iso),
            make_queue_record(record_id=4, status="success", created_at=recent),
            _undated(record_id=5, status="success"),
        )
        consumer = make_consumer()

        deleted = _run(consumer, consumer.cleanup_old_jobs())

        assert deleted == 2
        assert sorted(_rows(record_store)) == [3, 4, 5]

    def test_cleanup_custom_age(self, make_consumer, record_store):
        _seed(record_store, make_queue_record(
            record_id=1, status="success",
            created_at=(datetime.now(timezone.utc) - timedelta(days=2)).isoformat(),
        ))
        consumer = make_consumer()
        assert _run(consumer, consumer.cleanup_old_jobs(max_age_days=1)) == 1

    def test_cleanup_on_unreadable_table(self, make_consumer):
        consumer = make_consumer(store=InMemoryRecordStore())
        assert _run(consumer, consumer.cleanup_old_jobs()) == 0
