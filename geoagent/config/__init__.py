"""
Configuration Package - Domain-Specific Configuration Modules

Structure:
    config/
    ├── __init__.py         # This file - exports and singleton
    ├── app_config.py       # Main config (composes domain configs)
    ├── defaults.py         # Default values
    ├── host_config.py      # Grist REST API connection
    ├── queue_config.py     # Agent query queue table
    ├── source_config.py    # WFS / Overpass / project table
    └── store_config.py     # Undo/redo and query history bounds

Usage:
    from geoagent.config import get_config
    config = get_config()
    table = config.queue.table_name

    from geoagent.config import debug_config
    info = debug_config()  # API key masked
"""

from typing import Optional

from .app_config import AppConfig
from .host_config import HostConfig
from .queue_config import QueueConfig
from .source_config import SourceConfig
from .store_config import StoreConfig


# ============================================================================
# SINGLETON PATTERN
# ============================================================================

_config_instance: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Get global configuration singleton.

    Returns:
        AppConfig instance loaded from environment
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = AppConfig.from_environment()
    return _config_instance


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() re-reads the environment."""
    global _config_instance
    _config_instance = None


def debug_config() -> dict:
    """
    Get sanitized configuration for debugging (masks sensitive values).

    Returns:
        Dictionary with configuration values, secrets masked
    """
    try:
        config = get_config()
        return {
            'host': config.host.debug_dict(),
            'queue': config.queue.model_dump(),
            'store': config.store.model_dump(),
            'sources': config.sources.model_dump(),
            'debug_mode': config.debug_mode,
        }
    except Exception as e:
        return {'error': f'Configuration validation failed: {e}'}


__all__ = [
    'AppConfig',
    'HostConfig',
    'QueueConfig',
    'SourceConfig',
    'StoreConfig',
    'get_config',
    'reset_config',
    'debug_config',
]
