# ============================================================================
# AGENT QUERY QUEUE POLLER
# ============================================================================
# STATUS: Core - Host table change detection
# PURPOSE: Poll the queue table and hand pending rows to the consumer
# ============================================================================
"""
Agent Query Queue Poller

Stands in for the host's change notifications: every
``poll_interval_seconds`` it reads the queue table and passes the rows to
``JobQueueConsumer.handle_records``, which filters for pending jobs.

Usage:
    config = get_config()
    await run_queue_consumer(config)
"""

import asyncio
from typing import Optional

import httpx

from geoagent.config import AppConfig, get_config
from geoagent.exceptions import ConfigurationError
from geoagent.infrastructure import GristRecordStore, IRecordStore
from geoagent.services import FeatureFetcher, QueryOrchestrator, SourceCatalog, TreatmentRegistry
from geoagent.store import ReactiveStore
from geoagent.util_logger import LoggerFactory, ComponentType

from .consumer import JobQueueConsumer

logger = LoggerFactory.create_logger(ComponentType.WORKER, "QueuePoller")


class QueuePoller:
    """
    Polls the agent query table.

    Runs until ``stop()`` is called. A failed read is logged and retried
    on the next tick; it never ends the loop.
    """

    def __init__(self, consumer: JobQueueConsumer, poll_interval_seconds: Optional[float] = None):
        """
        Initialize poller.

        Args:
            consumer: Consumer that owns the record store and queue table
            poll_interval_seconds: Override of the queue config interval
        """
        self.consumer = consumer
        self.poll_interval_seconds = (
            poll_interval_seconds
            if poll_interval_seconds is not None
            else consumer.config.poll_interval_seconds
        )
        self._running = False
        self._stop_event: Optional[asyncio.Event] = None
        self._polls = 0
        self._poll_errors = 0

    async def start(self) -> bool:
        """Initialize the consumer and purge expired jobs; False when the queue is unusable."""
        logger.info(f"Starting queue poller on table: {self.consumer.table}")
        if not await self.consumer.initialize():
            logger.warning("Queue consumer is disabled, poller not started")
            return False

        await self.consumer.cleanup_old_jobs()
        self._stop_event = asyncio.Event()
        self._running = True
        logger.info("Queue poller started successfully")
        return True

    async def stop(self) -> None:
        """Ask the loop to exit after the current poll."""
        logger.info("Stopping queue poller...")
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()

    async def run(self) -> None:
        """
        Main poller loop.

        Runs until stopped.
        """
        if not await self.start():
            return

        try:
            while self._running:
                await self.poll_once()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval_seconds)
                except asyncio.TimeoutError:
                    pass
        except Exception as e:
            logger.exception(f"Queue poller error: {e}")
            raise
        finally:
            self._running = False
            logger.info(
                f"Queue poller stopped. "
                f"Polls: {self._polls}, "
                f"Errors: {self._poll_errors}, "
                f"Processed: {self.consumer.stats['processed']}, "
                f"Failed: {self.consumer.stats['failed']}"
            )

    async def poll_once(self) -> int:
        """
        Read the table once and process pending rows.

        Returns:
            Number of jobs executed
        """
        self._polls += 1
        try:
            records = await self.consumer.record_store.fetch_all(self.consumer.table)
        except Exception as e:
            self._poll_errors += 1
            logger.error(f"Error reading queue table '{self.consumer.table}': {e}")
            return 0
        return await self.consumer.handle_records(records)

    @property
    def is_running(self) -> bool:
        """Check if poller is running."""
        return self._running

    @property
    def stats(self) -> dict:
        """Get poller statistics."""
        return {
            "running": self._running,
            "polls": self._polls,
            "poll_errors": self._poll_errors,
            **self.consumer.stats,
        }


def build_consumer(config: AppConfig, record_store: IRecordStore,
                   transport: Optional[httpx.AsyncBaseTransport] = None,
                   store: Optional[ReactiveStore] = None) -> JobQueueConsumer:
    """Wire the store, catalog, fetcher, treatments and orchestrator behind a consumer."""
    store = store or ReactiveStore(max_history=config.store.max_history)
    catalog = SourceCatalog(config.sources)
    fetcher = FeatureFetcher(catalog, record_store, transport=transport)
    orchestrator = QueryOrchestrator(
        store,
        fetcher,
        TreatmentRegistry(),
        query_history_limit=config.store.query_history_limit,
    )
    return JobQueueConsumer(record_store, orchestrator, store, config.queue)


async def run_queue_consumer(config: Optional[AppConfig] = None) -> None:
    """
    Run the queue poller against the configured Grist document.

    Convenience function for running as a standalone process.

    Raises:
        ConfigurationError: If the host settings are incomplete
    """
    config = config or get_config()

    errors = config.validate_for_host()
    if errors:
        raise ConfigurationError(f"Invalid configuration: {errors}")

    async with GristRecordStore(config.host) as record_store:
        consumer = build_consumer(config, record_store)
        try:
            await QueuePoller(consumer).run()
        finally:
            await consumer.orchestrator.fetcher.close()
