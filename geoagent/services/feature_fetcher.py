# ============================================================================
# FEATURE FETCHER
# ============================================================================
# STATUS: Service - Executes catalog requests
# PURPOSE: Fetch WFS / Overpass / host-table data as GeoJSON-like features
# ============================================================================
"""
Feature Fetcher

Executes SourceRequests built by the SourceCatalog and normalises every
response to a FeatureSet ``{source, features[], bbox}``.

Dispatch is keyed by SourceType and checked against the catalog at
construction: a catalog source whose type has no handler is a
ContractViolationError, not a runtime surprise.

Failure mapping:
    - network error, timeout, non-2xx status, non-JSON body -> TransportError
    - unknown source / layer -> UnknownSourceError (raised by the catalog)
"""

import json
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx
from shapely import wkt
from shapely.errors import ShapelyError
from shapely.geometry import mapping

from geoagent.core.logic.geometry import calculate_bbox
from geoagent.core.models import DataSpec, FeatureSet, SourceType
from geoagent.exceptions import ContractViolationError, TransportError
from geoagent.infrastructure import IRecordStore
from geoagent.util_logger import LoggerFactory, ComponentType, log_exceptions

from .source_catalog import SourceCatalog, SourceRequest

logger = LoggerFactory.create_logger(ComponentType.SERVICE, "FeatureFetcher")


def _as_lists(value: Any) -> Any:
    """shapely mapping() yields tuples; GeoJSON consumers expect lists."""
    if isinstance(value, (list, tuple)):
        return [_as_lists(v) for v in value]
    if isinstance(value, dict):
        return {k: _as_lists(v) for k, v in value.items()}
    return value


def osm_element_geometry(element: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Geometry of one Overpass element.

    Nodes become Points; ways with ``out geom`` coordinates become a
    Polygon when closed, else a LineString. Relations and ways without
    geometry have none.
    """
    if element.get("type") == "node" and "lon" in element and "lat" in element:
        return {"type": "Point", "coordinates": [element["lon"], element["lat"]]}

    if element.get("type") == "way" and element.get("geometry"):
        coords = [[g["lon"], g["lat"]] for g in element["geometry"]]
        if len(coords) >= 4 and coords[0] == coords[-1]:
            return {"type": "Polygon", "coordinates": [coords]}
        return {"type": "LineString", "coordinates": coords}

    return None


def osm_elements_to_features(elements: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {
            "type": "Feature",
            "id": f"{el.get('type')}/{el.get('id')}",
            "geometry": osm_element_geometry(el),
            "properties": el.get("tags") or {},
        }
        for el in elements
    ]


def parse_geometry(value: Any) -> Optional[Dict[str, Any]]:
    """
    Geometry cell of a host record as a GeoJSON geometry.

    Accepts a GeoJSON mapping, GeoJSON text, or WKT text. Unparseable
    cells yield None and are logged.
    """
    if value in (None, ""):
        return None
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("{"):
            try:
                return json.loads(text)
            except ValueError:
                logger.warning(f"Unparseable GeoJSON geometry: {text[:80]}")
                return None
        try:
            return _as_lists(mapping(wkt.loads(text)))
        except (ShapelyError, ValueError):
            logger.warning(f"Unparseable WKT geometry: {text[:80]}")
            return None
    logger.warning(f"Unsupported geometry cell type: {type(value).__name__}")
    return None


def records_to_features(records: Sequence[Dict[str, Any]], geometry_column: str) -> List[Dict[str, Any]]:
    features = []
    for record in records:
        properties = {k: v for k, v in record.items() if k not in ("id", geometry_column)}
        features.append({
            "type": "Feature",
            "id": record.get("id"),
            "geometry": parse_geometry(record.get(geometry_column)),
            "properties": properties,
        })
    return features


class FeatureFetcher:
    """
    Fetches datasets described by the catalog.

    Args:
        catalog: Source catalog used to build requests
        record_store: Host table access for ``project`` sources
        timeout_seconds: Per-request HTTP timeout
        transport: Optional httpx transport (tests pass a MockTransport)
    """

    def __init__(self, catalog: SourceCatalog, record_store: IRecordStore,
                 timeout_seconds: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.catalog = catalog
        self.record_store = record_store
        self.timeout_seconds = timeout_seconds or catalog.config.http_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.request_count = 0

        self._handlers: Dict[SourceType, Callable[[SourceRequest], Awaitable[List[Dict[str, Any]]]]] = {
            SourceType.WFS: self._fetch_wfs,
            SourceType.OVERPASS: self._fetch_overpass,
            SourceType.RECORDS: self._fetch_records,
        }
        missing = self.catalog.source_types() - set(self._handlers)
        if missing:
            raise ContractViolationError(
                f"No fetch handler for source types: {sorted(t.value for t in missing)}"
            )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch(self, source_id: str, layer_or_tag: Optional[str], *,
                    value: Optional[str] = None,
                    bbox: Optional[Sequence[float]] = None,
                    filter: Optional[Dict[str, Any]] = None,
                    max_features: Optional[int] = None) -> FeatureSet:
        """
        Fetch one dataset. Empty results are valid.

        Raises:
            UnknownSourceError: Source or layer not in the catalog
            TransportError: The request failed or returned non-JSON
        """
        request = self.catalog.build_request(
            source_id, layer_or_tag, value=value, bbox=bbox,
            filter=filter, max_features=max_features,
        )
        return await self.fetch_request(request)

    async def fetch_spec(self, spec: DataSpec, bbox: Optional[Sequence[float]] = None,
                         default_table: Optional[str] = None) -> FeatureSet:
        """Fetch the dataset a query DataSpec describes."""
        layer_or_tag = spec.layer_or_tag
        if (layer_or_tag is None and default_table
                and self.catalog.get_source(spec.source).type == SourceType.RECORDS):
            layer_or_tag = default_table
        return await self.fetch(
            spec.source, layer_or_tag, value=spec.value, bbox=bbox,
            filter=spec.filter, max_features=spec.max_features,
        )

    @log_exceptions(ComponentType.SERVICE, "FeatureFetcher")
    async def fetch_request(self, request: SourceRequest) -> FeatureSet:
        """Execute a prepared request."""
        self.request_count += 1
        features = await self._handlers[request.source_type](request)
        logger.info(
            f"Fetched {len(features)} features from {request.source}"
            f" ({request.layer or request.tag or request.table})"
        )
        return FeatureSet(
            source=request.source,
            features=features,
            bbox=calculate_bbox(features),
            layer=request.layer,
            tag=request.tag,
            value=request.value,
            table=request.table,
        )

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _send(self, request: SourceRequest) -> Any:
        client = await self._get_client()
        try:
            response = await client.request(
                request.method, request.url,
                params=request.params or None,
                content=request.content,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"{request.source} request timed out: {e}", url=request.url) from e
        except httpx.RequestError as e:
            raise TransportError(f"{request.source} request failed: {e}", url=request.url) from e

        if not response.is_success:
            raise TransportError(
                f"{request.source} returned HTTP {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                url=request.url,
            )
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                f"{request.source} returned a non-JSON body", status_code=response.status_code, url=request.url
            ) from e

    async def _fetch_wfs(self, request: SourceRequest) -> List[Dict[str, Any]]:
        payload = await self._send(request)
        if not isinstance(payload, dict):
            raise TransportError(f"{request.source} returned JSON that is not a FeatureCollection")
        return list(payload.get("features") or [])

    async def _fetch_overpass(self, request: SourceRequest) -> List[Dict[str, Any]]:
        payload = await self._send(request)
        if not isinstance(payload, dict):
            raise TransportError(f"{request.source} returned JSON without elements")
        return osm_elements_to_features(payload.get("elements") or [])

    async def _fetch_records(self, request: SourceRequest) -> List[Dict[str, Any]]:
        records = await self.record_store.fetch_all(request.table)
        if request.filter:
            records = [
                r for r in records
                if all(r.get(key) == expected for key, expected in request.filter.items())
            ]
        return records_to_features(records, request.geometry_column)
