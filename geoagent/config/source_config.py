"""
External Data Source Configuration.

Endpoints for the IGN WFS and OSM Overpass services, the project table
used by ``project``-sourced fetches, and HTTP limits.

Exports:
    SourceConfig: Pydantic source configuration model
"""

import os
from pydantic import BaseModel, Field

from .defaults import SourceDefaults


class SourceConfig(BaseModel):
    """Data source endpoints and fetch limits."""

    ign_wfs_url: str = Field(
        default=SourceDefaults.IGN_WFS_URL,
        description="IGN Geoplateforme WFS endpoint"
    )

    osm_overpass_url: str = Field(
        default=SourceDefaults.OSM_OVERPASS_URL,
        description="Overpass API interpreter endpoint"
    )

    project_table: str = Field(
        default=SourceDefaults.PROJECT_TABLE,
        description="Host table read by project-sourced fetches"
    )

    max_features: int = Field(
        default=SourceDefaults.MAX_FEATURES,
        ge=1,
        description="Feature cap applied when a data spec does not set one"
    )

    http_timeout_seconds: float = Field(
        default=SourceDefaults.HTTP_TIMEOUT_SECONDS,
        gt=0,
        description="Timeout for a single source request"
    )

    @classmethod
    def from_environment(cls):
        """Load from environment variables."""
        return cls(
            ign_wfs_url=os.environ.get("GEOAGENT_IGN_WFS_URL", SourceDefaults.IGN_WFS_URL),
            osm_overpass_url=os.environ.get("GEOAGENT_OSM_OVERPASS_URL", SourceDefaults.OSM_OVERPASS_URL),
            project_table=os.environ.get("GEOAGENT_PROJECT_TABLE", SourceDefaults.PROJECT_TABLE),
            max_features=int(os.environ.get(
                "GEOAGENT_MAX_FEATURES", str(SourceDefaults.MAX_FEATURES)
            )),
            http_timeout_seconds=float(os.environ.get(
                "GEOAGENT_HTTP_TIMEOUT", str(SourceDefaults.HTTP_TIMEOUT_SECONDS)
            )),
        )
