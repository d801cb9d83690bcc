# ============================================================================
# GRIST RECORD STORE
# ============================================================================
# STATUS: Infrastructure - Host table access over the Grist REST API
# PURPOSE: fetch/update/delete/add records in the host document
# ============================================================================
"""
Grist Record Store

Talks to the Grist REST API:

    GET   /api/docs/{doc}/tables/{table}/records          -> {"records": [{"id", "fields"}]}
    PATCH /api/docs/{doc}/tables/{table}/records          <- {"records": [{"id", "fields"}]}
    POST  /api/docs/{doc}/tables/{table}/records          <- {"records": [{"fields"}]}
    POST  /api/docs/{doc}/tables/{table}/data/delete      <- [id, ...]

Records are flattened to ``{"id": ..., **fields}`` on the way out.
"""

from typing import Any, Dict, List, Optional

import httpx

from geoagent.config import HostConfig
from geoagent.exceptions import ResourceNotFoundError, TransportError
from geoagent.util_logger import LoggerFactory, ComponentType

from .interface_repository import IRecordStore

logger = LoggerFactory.create_logger(ComponentType.REPOSITORY, "GristRecordStore")


class GristRecordStore(IRecordStore):
    """
    Record store backed by one Grist document.

    The HTTP client is created lazily and reused; call ``close()`` or use
    ``async with`` to release it.
    """

    def __init__(self, config: HostConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize store.

        Args:
            config: Host connection settings
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.config.server_url.rstrip("/"),
                headers=headers,
                timeout=httpx.Timeout(self.config.request_timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _table_path(self, table: str) -> str:
        return f"/api/docs/{self.config.doc_id}/tables/{table}"

    async def _request(self, method: str, path: str, table: str, **kwargs) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransportError(f"Grist {method} {path} timed out: {e}", url=path) from e
        except httpx.RequestError as e:
            raise TransportError(f"Grist {method} {path} failed: {e}", url=path) from e

        if response.status_code == 404:
            raise ResourceNotFoundError(f"Table '{table}' not found in document {self.config.doc_id}")
        if not response.is_success:
            raise TransportError(
                f"Grist {method} {path} returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                url=path,
            )
        return response

    async def fetch_all(self, table: str) -> List[Dict[str, Any]]:
        response = await self._request("GET", f"{self._table_path(table)}/records", table)
        try:
            payload = response.json()
        except ValueError as e:
            raise TransportError(f"Grist returned non-JSON records for '{table}'") from e
        records = [{"id": r["id"], **r.get("fields", {})} for r in payload.get("records", [])]
        logger.debug(f"Fetched {len(records)} records from {table}")
        return records

    async def update_record(self, table: str, record_id: int, fields: Dict[str, Any]) -> None:
        await self._request(
            "PATCH",
            f"{self._table_path(table)}/records",
            table,
            json={"records": [{"id": record_id, "fields": fields}]},
        )

    async def delete_record(self, table: str, record_id: int) -> None:
        await self._request(
            "POST",
            f"{self._table_path(table)}/data/delete",
            table,
            json=[record_id],
        )

    async def add_records(self, table: str, records: List[Dict[str, Any]]) -> List[int]:
        response = await self._request(
            "POST",
            f"{self._table_path(table)}/records",
            table,
            json={"records": [{"fields": r} for r in records]},
        )
        return [r["id"] for r in response.json().get("records", [])]

    async def __aenter__(self) -> "GristRecordStore":
        await self._get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
