"""
Record Store Abstract Base Class - Single Point of Truth.

Enforces exact method signatures for every host table backend so the
queue consumer and the project-sourced fetch stage can run against the
Grist REST API or an in-memory table interchangeably.

Records are flat dicts: ``{"id": <int>, <column>: <value>, ...}``.

Exports:
    IRecordStore: Host table access interface
    QueueFields: Canonical queue table column names
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Final, List


# ============================================================================
# CANONICAL COLUMN NAMES - Single source of truth
# ============================================================================

class QueueFields:
    """
    Column names of the agent query queue table.
    """

    ID: Final[str] = "id"
    QUERY_JSON: Final[str] = "query_json"
    STATUS: Final[str] = "status"
    RESULT_JSON: Final[str] = "result_json"
    ERROR_MESSAGE: Final[str] = "error_message"
    CREATED_AT: Final[str] = "created_at"
    EXECUTED_AT: Final[str] = "executed_at"
    VERSION: Final[str] = "version"


# ============================================================================
# ABSTRACT BASE CLASS - Enforce exact signatures
# ============================================================================

class IRecordStore(ABC):
    """
    Host table access.

    Implementations raise TransportError when the host cannot be reached
    and ResourceNotFoundError when the table does not exist.
    """

    @abstractmethod
    async def fetch_all(self, table: str) -> List[Dict[str, Any]]:
        """Every record of ``table`` as flat dicts including ``id``."""
        pass

    @abstractmethod
    async def update_record(self, table: str, record_id: int, fields: Dict[str, Any]) -> None:
        """Overwrite the given columns of one record."""
        pass

    @abstractmethod
    async def delete_record(self, table: str, record_id: int) -> None:
        """Remove one record."""
        pass

    @abstractmethod
    async def add_records(self, table: str, records: List[Dict[str, Any]]) -> List[int]:
        """Insert records and return their new ids in order."""
        pass

    async def close(self) -> None:
        """Release any held connections."""
        return None
