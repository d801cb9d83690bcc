# ============================================================================
# AGENT QUERY QUEUE CONSUMER
# ============================================================================
# STATUS: Core - Host table used as a durable job queue
# PURPOSE: Claim pending query jobs, run them, write status back
# ============================================================================
"""
Agent Query Queue Consumer

The agent writes structured queries into a host table (``AgentQueries``).
For every pending row the consumer:

1. Claims the id in the in-memory in-flight set (no await in between)
2. Writes ``status=processing``
3. Parses ``query_json`` (object or JSON text)
4. Runs the query through the QueryOrchestrator
5. Writes ``success`` + ``result_json`` or ``error`` + ``error_message``
   with ``executed_at``, and posts a ``ui.notification``
6. Releases the id

Jobs run one at a time, across overlapping notifications too, so the
shared ``data.currentQuery`` and ``data.executionSteps`` store paths
never interleave. A row whose columns do not validate fails as a job
when its id is readable. A job's failure never escapes ``process_job``
and the consumer never raises to its host.
"""

import asyncio
import json
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError

from geoagent.config import QueueConfig
from geoagent.core.errors import create_error_response
from geoagent.core.logic.transitions import can_job_transition, is_job_terminal
from geoagent.core.models import (
    ExecutionResult, NotificationType, QueryJobRecord, QueryJobStatus, parse_timestamp,
)
from geoagent.exceptions import ContractViolationError, MalformedQueryError, QueueUnavailableError
from geoagent.infrastructure import IRecordStore, QueueFields
from geoagent.services import QueryOrchestrator
from geoagent.store import ReactiveStore
from geoagent.util_logger import LoggerFactory, ComponentType, LogContext

logger = LoggerFactory.create_logger(ComponentType.WORKER, "JobQueueConsumer")

JobInput = Union[QueryJobRecord, Dict[str, Any]]


def parse_query_json(value: Any) -> Dict[str, Any]:
    """
    Structured query carried by a queue row.

    Raises:
        MalformedQueryError: not an object and not JSON text of an object
    """
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError as e:
            raise MalformedQueryError(f"Invalid query_json format: {e}") from e
        if isinstance(parsed, dict):
            return parsed
        raise MalformedQueryError(f"query_json must encode an object, got {type(parsed).__name__}")
    raise MalformedQueryError("Invalid query_json format: missing or not text")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobQueueConsumer:
    """
    Consumes the agent query table.

    Args:
        record_store: Host table access
        orchestrator: Runs each job's query
        store: Receives ui.notification on every resolved job
        config: Queue table settings
    """

    def __init__(self, record_store: IRecordStore, orchestrator: QueryOrchestrator,
                 store: ReactiveStore, config: Optional[QueueConfig] = None):
        self.record_store = record_store
        self.orchestrator = orchestrator
        self.store = store
        self.config = config or QueueConfig()
        self.table = self.config.table_name

        self._initialized = False
        self._enabled = False
        self._in_flight: set = set()
        self._resolved_keys: "OrderedDict[str, QueryJobStatus]" = OrderedDict()
        self._jobs_processed = 0
        self._jobs_failed = 0
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def initialize(self) -> bool:
        """
        Verify the queue table and sweep leftover pending jobs.

        Returns:
            True when the consumer is enabled. An unreachable table
            disables the consumer instead of raising.
        """
        if self._initialized:
            logger.warning(f"Queue consumer already initialized on '{self.table}'")
            return self._enabled
        self._initialized = True

        if not self.config.enabled:
            logger.info("Queue consumer disabled (GEOAGENT_QUEUE_ENABLED=false)")
            return False

        try:
            records = await self.record_store.fetch_all(self.table)
        except Exception as e:
            error = QueueUnavailableError(f"Queue table '{self.table}' is not reachable: {e}")
            logger.warning(
                f"{error}. Agent queries disabled. Expected columns: "
                f"{QueueFields.QUERY_JSON}, {QueueFields.STATUS}, {QueueFields.RESULT_JSON}, "
                f"{QueueFields.ERROR_MESSAGE}, {QueueFields.CREATED_AT}, {QueueFields.EXECUTED_AT}",
                extra=LogContext(table=self.table).as_extra(),
            )
            return False

        self._enabled = True
        logger.info(f"Queue consumer initialized on '{self.table}'")
        await self._process_records(records)
        return True

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def handle_records(self, records: Iterable[JobInput]) -> int:
        """
        Process pending rows from a change notification, one at a time.

        Returns:
            Number of jobs executed
        """
        if not self._enabled:
            return 0
        return await self._process_records(records)

    async def _process_records(self, records: Iterable[JobInput]) -> int:
        pending = []
        for record in records:
            job, _ = self._load(record)
            if job is not None and self._is_claimable(job):
                pending.append(record)
        if not pending:
            return 0

        logger.info(f"Processing {len(pending)} pending queries")
        executed = 0
        for record in pending:
            if await self.process_job(record) is not None:
                executed += 1
        return executed

    def _load(self, record: JobInput) -> Tuple[Optional[QueryJobRecord], Optional[MalformedQueryError]]:
        """
        Row as a job, plus the error to fail it with when its columns are invalid.

        A row is skipped (None job) only when its id is unusable or it is
        not pending; any other invalid column fails the job.
        """
        if isinstance(record, QueryJobRecord):
            return record, None
        try:
            return QueryJobRecord.from_record(record), None
        except ValidationError as e:
            job = QueryJobRecord.salvage(record)
            if job is None:
                if record.get(QueueFields.STATUS) in (None, '', QueryJobStatus.PENDING.value):
                    logger.warning(f"Skipping queue row with unusable id {record.get('id')!r}: {e}")
                else:
                    logger.debug(f"Ignoring invalid non-pending queue row {record.get('id')!r}")
                return None, None
            columns = sorted({str(err['loc'][0]) for err in e.errors() if err['loc']})
            return job, MalformedQueryError(f"Invalid queue row: bad column(s) {', '.join(columns)}")

    def _coerce(self, records: Iterable[JobInput]) -> List[QueryJobRecord]:
        return [job for job, _ in map(self._load, records) if job is not None]

    def _is_claimable(self, job: QueryJobRecord) -> bool:
        return (
            job.status == QueryJobStatus.PENDING
            and job.id not in self._in_flight
            and job.job_key not in self._resolved_keys
        )

    def _execution_lock(self) -> asyncio.Lock:
        # One lock per event loop; a lock cannot be shared across loops
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    # ------------------------------------------------------------------
    # Per-job processing
    # ------------------------------------------------------------------

    async def process_job(self, record: JobInput) -> Optional[QueryJobStatus]:
        """
        Run one job to a terminal status.

        Claimed jobs wait on a shared lock, so at most one job executes at
        a time even when change notifications overlap.

        Returns:
            The terminal status written, or None when the job was skipped
            (already in flight, already resolved, or not pending)
        """
        job, row_error = self._load(record)
        if job is None:
            return None

        # Check-then-insert with no suspension point in between
        if not self._is_claimable(job):
            return None
        self._in_flight.add(job.id)

        context = LogContext(job_id=str(job.id), job_key=job.job_key, table=self.table)
        try:
            async with self._execution_lock():
                await self._write_status(job.id, job.status, QueryJobStatus.PROCESSING, {})

                try:
                    if row_error is not None:
                        raise row_error
                    query = parse_query_json(job.query_json)
                    logger.info(f"Executing query for job {job.id}", extra=context.as_extra())
                    result = await self.orchestrator.execute(query)
                except Exception as e:
                    return await self._resolve_failure(job, e, context)
                return await self._resolve_success(job, result, context)
        finally:
            self._in_flight.discard(job.id)

    async def _resolve_success(self, job: QueryJobRecord, result: ExecutionResult,
                               context: LogContext) -> QueryJobStatus:
        await self._write_status(job.id, QueryJobStatus.PROCESSING, QueryJobStatus.SUCCESS, {
            QueueFields.RESULT_JSON: json.dumps(result.to_dict(), ensure_ascii=False),
            QueueFields.EXECUTED_AT: _utc_now_iso(),
        })
        self._jobs_processed += 1
        self._remember(job.job_key, QueryJobStatus.SUCCESS)
        logger.info(f"Query {job.id} completed successfully", extra=context.as_extra())
        self._notify(NotificationType.SUCCESS, "Requête agent exécutée avec succès", job.id)
        return QueryJobStatus.SUCCESS

    async def _resolve_failure(self, job: QueryJobRecord, error: Exception,
                               context: LogContext) -> QueryJobStatus:
        await self._write_status(job.id, QueryJobStatus.PROCESSING, QueryJobStatus.ERROR, {
            QueueFields.ERROR_MESSAGE: str(error),
            QueueFields.EXECUTED_AT: _utc_now_iso(),
        })
        self._jobs_failed += 1
        self._remember(job.job_key, QueryJobStatus.ERROR)
        details = create_error_response(error, queryId=job.id)
        logger.error(
            f"Query {job.id} failed: {details['error']}: {error}",
            extra={'custom_dimensions': {**context.to_dict(), 'error_code': details['error']}},
        )
        self._notify(
            NotificationType.ERROR,
            f"Erreur lors de l'exécution: {error}",
            job.id,
            errorCode=details['error'],
            retryable=details['retryable'],
        )
        return QueryJobStatus.ERROR

    async def _write_status(self, job_id: int, current: QueryJobStatus, target: QueryJobStatus,
                            fields: Dict[str, Any]) -> None:
        if not can_job_transition(current, target):
            raise ContractViolationError(
                f"Illegal job status transition {current.value} -> {target.value} for job {job_id}"
            )
        updates = {QueueFields.STATUS: target.value, **fields}
        try:
            await self.record_store.update_record(self.table, job_id, updates)
        except Exception as e:
            logger.error(f"Failed to write status {target.value} for job {job_id}: {e}")

    def _remember(self, job_key: str, status: QueryJobStatus) -> None:
        self._resolved_keys[job_key] = status
        while len(self._resolved_keys) > self.config.completed_key_cache_size:
            self._resolved_keys.popitem(last=False)

    def _notify(self, kind: NotificationType, message: str, job_id: int, **extra: Any) -> None:
        self.store.set_state("ui.notification", {
            "type": kind.value,
            "message": message,
            "queryId": job_id,
            "timestamp": _utc_now_iso(),
            **extra,
        }, f"Agent query {kind.value}")

    # ------------------------------------------------------------------
    # Direct access
    # ------------------------------------------------------------------

    async def execute_query(self, query: Dict[str, Any]) -> ExecutionResult:
        """Run a query without going through the table (manual runs, tests)."""
        logger.info("Manual query execution")
        return await self.orchestrator.execute(query)

    async def get_job_history(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Queue rows, newest ``created_at`` first; empty when the table is unreadable."""
        limit = limit or self.config.history_limit
        try:
            records = await self.record_store.fetch_all(self.table)
        except Exception as e:
            logger.error(f"Error fetching query history: {e}")
            return []

        oldest = datetime.min.replace(tzinfo=timezone.utc)

        def created(record: Dict[str, Any]) -> datetime:
            return parse_timestamp(record.get(QueueFields.CREATED_AT)) or oldest

        return sorted(records, key=created, reverse=True)[:limit]

    async def cleanup_old_jobs(self, max_age_days: Optional[int] = None) -> int:
        """
        Delete terminal jobs created more than ``max_age_days`` ago.

        Returns:
            Number of rows deleted
        """
        days = self.config.retention_days if max_age_days is None else max_age_days
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        try:
            records = await self.record_store.fetch_all(self.table)
        except Exception as e:
            logger.error(f"Cleanup could not read '{self.table}': {e}")
            return 0

        deleted = 0
        for job in self._coerce(records):
            created_at = job.created_at_datetime()
            if not is_job_terminal(job.status) or created_at is None or created_at >= cutoff:
                continue
            try:
                await self.record_store.delete_record(self.table, job.id)
                deleted += 1
            except Exception as e:
                logger.error(f"Cleanup failed to delete job {job.id}: {e}")

        if deleted:
            logger.info(f"Cleaned up {deleted} queries older than {days} days")
        return deleted

    @property
    def stats(self) -> dict:
        """Get consumer statistics."""
        return {
            "enabled": self._enabled,
            "in_flight": len(self._in_flight),
            "processed": self._jobs_processed,
            "failed": self._jobs_failed,
        }
