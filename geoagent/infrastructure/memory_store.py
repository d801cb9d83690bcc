"""
In-Memory Record Store.

Dict-backed host tables for local development and tests. Tables must be
created before use, mirroring a host document where the queue table may
or may not have been provisioned.
"""

import copy
from typing import Any, Dict, List, Optional

from geoagent.exceptions import ResourceNotFoundError
from geoagent.util_logger import LoggerFactory, ComponentType

from .interface_repository import IRecordStore

logger = LoggerFactory.create_logger(ComponentType.REPOSITORY, "InMemoryRecordStore")


class InMemoryRecordStore(IRecordStore):
    """Record store over plain dicts; records are copied in and out."""

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self._tables: Dict[str, Dict[int, Dict[str, Any]]] = {}
        self._next_id: Dict[str, int] = {}
        for name, records in (tables or {}).items():
            self.create_table(name)
            self._insert(name, records)

    def create_table(self, table: str) -> None:
        self._tables.setdefault(table, {})
        self._next_id.setdefault(table, 1)

    def _table(self, table: str) -> Dict[int, Dict[str, Any]]:
        if table not in self._tables:
            raise ResourceNotFoundError(f"Table '{table}' does not exist")
        return self._tables[table]

    def _insert(self, table: str, records: List[Dict[str, Any]]) -> List[int]:
        rows = self._table(table)
        ids = []
        for record in records:
            record = copy.deepcopy(record)
            record_id = record.get("id") or self._next_id[table]
            record["id"] = record_id
            rows[record_id] = record
            self._next_id[table] = max(self._next_id[table], record_id + 1)
            ids.append(record_id)
        return ids

    async def fetch_all(self, table: str) -> List[Dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._table(table).values()]

    async def update_record(self, table: str, record_id: int, fields: Dict[str, Any]) -> None:
        rows = self._table(table)
        if record_id not in rows:
            raise ResourceNotFoundError(f"Record {record_id} not found in '{table}'")
        rows[record_id].update(copy.deepcopy(fields))
        logger.debug(f"Updated {table}#{record_id}: {sorted(fields)}")

    async def delete_record(self, table: str, record_id: int) -> None:
        rows = self._table(table)
        if rows.pop(record_id, None) is None:
            raise ResourceNotFoundError(f"Record {record_id} not found in '{table}'")

    async def add_records(self, table: str, records: List[Dict[str, Any]]) -> List[int]:
        return self._insert(table, records)
