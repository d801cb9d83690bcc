"""
Config test fixtures: clean environment via monkeypatch.
"""

import pytest


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all env vars that config modules might read, for isolation."""
    env_vars_to_clear = [
        "GRIST_SERVER_URL", "GRIST_DOC_ID", "GRIST_API_KEY", "GRIST_REQUEST_TIMEOUT",
        "GEOAGENT_QUEUE_ENABLED", "GEOAGENT_QUEUE_TABLE", "GEOAGENT_QUEUE_POLL_INTERVAL",
        "GEOAGENT_QUEUE_RETENTION_DAYS", "GEOAGENT_QUEUE_HISTORY_LIMIT",
        "GEOAGENT_QUEUE_COMPLETED_KEYS",
        "GEOAGENT_STORE_MAX_HISTORY", "GEOAGENT_STORE_QUERY_HISTORY",
        "GEOAGENT_IGN_WFS_URL", "GEOAGENT_OSM_OVERPASS_URL", "GEOAGENT_PROJECT_TABLE",
        "GEOAGENT_MAX_FEATURES", "GEOAGENT_HTTP_TIMEOUT",
        "DEBUG_MODE",
    ]
    for var in env_vars_to_clear:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch
