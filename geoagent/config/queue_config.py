"""
Agent Query Queue Configuration.

Provides configuration for:
    - Queue table name in the host document
    - Polling interval for the optional poller
    - Retention for terminal jobs
    - Size of the resolved-job key cache used to ignore stale notifications

Exports:
    QueueConfig: Pydantic queue configuration model
"""

import os
from pydantic import BaseModel, Field

from .defaults import QueueDefaults


class QueueConfig(BaseModel):
    """
    Agent query queue configuration.

    The queue is a host table; rows move pending -> processing ->
    success|error and are never requeued.
    """

    enabled: bool = Field(
        default=QueueDefaults.ENABLED,
        description="Start the queue consumer at all"
    )

    table_name: str = Field(
        default=QueueDefaults.TABLE_NAME,
        description="Host table holding agent query jobs"
    )

    poll_interval_seconds: float = Field(
        default=QueueDefaults.POLL_INTERVAL_SECONDS,
        gt=0,
        description="Seconds between queue table polls when the host does not push changes"
    )

    retention_days: int = Field(
        default=QueueDefaults.RETENTION_DAYS,
        ge=0,
        description="Terminal jobs older than this many days are deleted by cleanup"
    )

    history_limit: int = Field(
        default=QueueDefaults.HISTORY_LIMIT,
        ge=1,
        description="Default number of jobs returned by job history"
    )

    completed_key_cache_size: int = Field(
        default=QueueDefaults.COMPLETED_KEY_CACHE_SIZE,
        ge=1,
        description="Number of resolved job keys remembered to ignore stale re-delivery"
    )

    @classmethod
    def from_environment(cls):
        """Load from environment variables."""
        return cls(
            enabled=os.environ.get("GEOAGENT_QUEUE_ENABLED", "true").lower() == "true",
            table_name=os.environ.get("GEOAGENT_QUEUE_TABLE", QueueDefaults.TABLE_NAME),
            poll_interval_seconds=float(os.environ.get(
                "GEOAGENT_QUEUE_POLL_INTERVAL", str(QueueDefaults.POLL_INTERVAL_SECONDS)
            )),
            retention_days=int(os.environ.get(
                "GEOAGENT_QUEUE_RETENTION_DAYS", str(QueueDefaults.RETENTION_DAYS)
            )),
            history_limit=int(os.environ.get(
                "GEOAGENT_QUEUE_HISTORY_LIMIT", str(QueueDefaults.HISTORY_LIMIT)
            )),
            completed_key_cache_size=int(os.environ.get(
                "GEOAGENT_QUEUE_COMPLETED_KEYS", str(QueueDefaults.COMPLETED_KEY_CACHE_SIZE)
            )),
        )
