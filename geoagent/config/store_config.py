"""
Reactive Store Configuration.

Exports:
    StoreConfig: History bounds for the state store and query history
"""

import os
from pydantic import BaseModel, Field

from .defaults import StoreDefaults


class StoreConfig(BaseModel):
    """Bounds for undo/redo history and the executed query list."""

    max_history: int = Field(
        default=StoreDefaults.MAX_HISTORY,
        ge=1,
        description="Maximum number of undo snapshots kept"
    )

    query_history_limit: int = Field(
        default=StoreDefaults.QUERY_HISTORY_LIMIT,
        ge=1,
        description="Number of execution results kept under data.queryHistory"
    )

    @classmethod
    def from_environment(cls):
        """Load from environment variables."""
        return cls(
            max_history=int(os.environ.get(
                "GEOAGENT_STORE_MAX_HISTORY", str(StoreDefaults.MAX_HISTORY)
            )),
            query_history_limit=int(os.environ.get(
                "GEOAGENT_STORE_QUERY_HISTORY", str(StoreDefaults.QUERY_HISTORY_LIMIT)
            )),
        )
