"""
Main Application Configuration.

Composes the domain configurations into one model.

Exports:
    AppConfig: Root configuration model
"""

import os
from typing import List
from pydantic import BaseModel, Field

from geoagent.exceptions import ConfigurationError

from .host_config import HostConfig
from .queue_config import QueueConfig
from .source_config import SourceConfig
from .store_config import StoreConfig


class AppConfig(BaseModel):
    """
    Root configuration for the query pipeline and queue worker.

    Usage:
        config = AppConfig.from_environment()
        table = config.queue.table_name
    """

    host: HostConfig = Field(
        default_factory=HostConfig,
        description="Grist host connection"
    )

    queue: QueueConfig = Field(
        default_factory=QueueConfig,
        description="Agent query queue table settings"
    )

    store: StoreConfig = Field(
        default_factory=StoreConfig,
        description="Reactive store history bounds"
    )

    sources: SourceConfig = Field(
        default_factory=SourceConfig,
        description="External data source endpoints"
    )

    debug_mode: bool = Field(
        default=False,
        description="Verbose logging of pipeline payloads"
    )

    @classmethod
    def from_environment(cls) -> "AppConfig":
        """
        Load all domain configs from environment variables.

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed or
                fails model validation
        """
        try:
            return cls(
                host=HostConfig.from_environment(),
                queue=QueueConfig.from_environment(),
                store=StoreConfig.from_environment(),
                sources=SourceConfig.from_environment(),
                debug_mode=os.environ.get("DEBUG_MODE", "false").lower() == "true",
            )
        except ValueError as e:
            # pydantic.ValidationError is a ValueError subclass
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def validate_for_host(self) -> List[str]:
        """Errors that prevent running against a live Grist host."""
        return self.host.validate_settings()
