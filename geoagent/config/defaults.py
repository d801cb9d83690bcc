"""
Configuration Defaults - Single source of truth for all default values.

Organization:
    - HostDefaults: Grist host placeholders (MUST be overridden for a live host)
    - QueueDefaults: Agent query queue table and polling
    - StoreDefaults: Reactive store history bounds
    - SourceDefaults: External data source endpoints and limits

Usage:
    from geoagent.config.defaults import QueueDefaults

    table_name: str = Field(default=QueueDefaults.TABLE_NAME, ...)
"""


class HostDefaults:
    """
    Grist host defaults.

    DOC_ID is intentionally empty so ``HostConfig.validate_settings()`` reports it
    when running against a live host.
    """

    SERVER_URL = "http://localhost:8484"
    DOC_ID = ""
    REQUEST_TIMEOUT_SECONDS = 30.0


class QueueDefaults:
    """Agent query queue defaults."""

    TABLE_NAME = "AgentQueries"
    POLL_INTERVAL_SECONDS = 5.0
    RETENTION_DAYS = 7
    HISTORY_LIMIT = 10
    COMPLETED_KEY_CACHE_SIZE = 1000
    ENABLED = True


class StoreDefaults:
    """Reactive store defaults."""

    MAX_HISTORY = 50
    QUERY_HISTORY_LIMIT = 10

    # Paris
    DEFAULT_CENTER = (48.8566, 2.3522)
    DEFAULT_ZOOM = 6


class SourceDefaults:
    """External data source defaults."""

    IGN_WFS_URL = "https://data.geopf.fr/wfs"
    OSM_OVERPASS_URL = "https://overpass-api.de/api/interpreter"
    OVERPASS_TIMEOUT_SECONDS = 25
    PROJECT_TABLE = "GIS_WorkSpace"
    PROJECT_GEOMETRY_COLUMN = "geometry_wgs84"
    MAX_FEATURES = 1000
    HTTP_TIMEOUT_SECONDS = 30.0
    DEFAULT_BASEMAP = "osm-standard"
