"""
Query Job Record - Persistence Boundary

QueryJobRecord is one row of the agent query queue table. Rows arrive
from the host as flat dicts (``{"id": ..., "query_json": ..., ...}``);
``from_record`` tolerates the host's loose typing (empty strings for
unset text columns, epoch seconds for DateTime columns).
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .enums import QueryJobStatus


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Host DateTime cell as an aware datetime.

    Accepts ISO-8601 text or epoch seconds; returns None when unset or
    unparseable. Naive values are taken as UTC.
    """
    if value is None or value == '' or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class QueryJobRecord(BaseModel):
    """
    Database representation of an agent query job.

    ``version`` is optional; when the host table carries one it is part of
    the job key so a reused id is processed again, while a stale
    notification for an already-resolved row is ignored.
    """

    model_config = ConfigDict(extra='ignore')

    id: int
    # Whatever the host cell holds; parse_query_json decides whether it is usable
    query_json: Any = None
    status: QueryJobStatus = Field(default=QueryJobStatus.PENDING)
    result_json: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Union[str, float, None] = None
    executed_at: Optional[str] = None
    version: Optional[int] = None

    @field_validator('status', mode='before')
    @classmethod
    def _blank_status_is_pending(cls, value):
        if value in (None, ''):
            return QueryJobStatus.PENDING
        return value

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "QueryJobRecord":
        """Build from a flat host record, dropping empty-string cells."""
        return cls(**{k: v for k, v in record.items() if v != ''})

    @classmethod
    def salvage(cls, record: Dict[str, Any]) -> Optional["QueryJobRecord"]:
        """
        Minimal pending record for a row that fails validation.

        Only the id must parse; columns that do not fit are dropped so the
        job can still be claimed and resolved as an error. Returns None
        when the id is unusable or the row is not pending.
        """
        if record.get('status') not in (None, '', QueryJobStatus.PENDING.value):
            return None
        created_at = record.get('created_at')
        if isinstance(created_at, bool) or not isinstance(created_at, (str, int, float)):
            created_at = None
        version = record.get('version')
        if isinstance(version, bool) or not isinstance(version, int):
            version = None
        try:
            return cls(id=record.get('id'), created_at=created_at or None, version=version)
        except ValidationError:
            return None

    @property
    def job_key(self) -> str:
        """Identity of this particular submission of the row."""
        marker = self.version if self.version is not None else self.created_at
        return f"{self.id}:{marker}"

    def created_at_datetime(self) -> Optional[datetime]:
        """created_at as an aware datetime (None when unset or unparseable)."""
        return parse_timestamp(self.created_at)
