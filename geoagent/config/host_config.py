"""
Grist Host Configuration.

Exports:
    HostConfig: Connection settings for the Grist REST API
"""

import os
from typing import List, Optional
from pydantic import BaseModel, Field

from .defaults import HostDefaults


class HostConfig(BaseModel):
    """Connection settings for the spreadsheet host document."""

    server_url: str = Field(
        default=HostDefaults.SERVER_URL,
        description="Base URL of the Grist server"
    )

    doc_id: str = Field(
        default=HostDefaults.DOC_ID,
        description="Document id holding the queue and project tables"
    )

    api_key: Optional[str] = Field(
        default=None,
        repr=False,
        description="Bearer token for the Grist REST API"
    )

    request_timeout_seconds: float = Field(
        default=HostDefaults.REQUEST_TIMEOUT_SECONDS,
        gt=0,
        description="Timeout for a single host API call"
    )

    @classmethod
    def from_environment(cls):
        """Load from environment variables."""
        return cls(
            server_url=os.environ.get("GRIST_SERVER_URL", HostDefaults.SERVER_URL),
            doc_id=os.environ.get("GRIST_DOC_ID", HostDefaults.DOC_ID),
            api_key=os.environ.get("GRIST_API_KEY"),
            request_timeout_seconds=float(os.environ.get(
                "GRIST_REQUEST_TIMEOUT", str(HostDefaults.REQUEST_TIMEOUT_SECONDS)
            )),
        )

    def validate_settings(self) -> List[str]:
        """
        Validate settings needed to talk to a live host.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        if not self.doc_id:
            errors.append("GRIST_DOC_ID is required")
        if not self.server_url.startswith(("http://", "https://")):
            errors.append(f"GRIST_SERVER_URL must be an http(s) URL, got {self.server_url!r}")
        return errors

    def debug_dict(self) -> dict:
        """Settings safe to log."""
        return {
            'server_url': self.server_url,
            'doc_id': self.doc_id,
            'api_key': '***MASKED***' if self.api_key else None,
            'request_timeout_seconds': self.request_timeout_seconds,
        }
