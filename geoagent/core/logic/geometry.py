# ============================================================================
# VIEWPORT CALCULATIONS FOR COMPOSED VIEWS
# ============================================================================
# STATUS: Core - Pure calculation functions
# PURPOSE: Bounding box, center and zoom derivation from GeoJSON features
# ============================================================================
"""
Viewport Calculations for Composed Views.

All functions are pure and operate on GeoJSON-like dicts. Coordinates are
``[lon, lat]`` as in GeoJSON; bboxes are ``[min_lon, min_lat, max_lon,
max_lat]``; centers are ``[lat, lon]`` as map widgets expect.

Exports:
    extract_coordinates: Flatten every position of a geometry
    calculate_bbox: Union bbox over features
    calculate_center: Midpoint of a bbox as [lat, lon]
    calculate_zoom: Coarse zoom level for a bbox
"""

from numbers import Real
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

DEFAULT_CENTER = [48.8566, 2.3522]
DEFAULT_ZOOM = 6

# (minimum span in degrees, zoom); first match wins, else FALLBACK_ZOOM
ZOOM_BREAKPOINTS = (
    (5.0, 6),
    (1.0, 9),
    (0.5, 11),
    (0.1, 13),
)
FALLBACK_ZOOM = 15


def _is_position(value: Any) -> bool:
    return (
        isinstance(value, (list, tuple))
        and len(value) >= 2
        and all(isinstance(v, Real) and not isinstance(v, bool) for v in value[:2])
    )


def _walk_positions(coords: Any) -> Iterator[Sequence[float]]:
    if _is_position(coords):
        yield coords
    elif isinstance(coords, (list, tuple)):
        for item in coords:
            yield from _walk_positions(item)


def extract_coordinates(geometry: Optional[Dict[str, Any]]) -> List[Sequence[float]]:
    """
    Extract every position of a geometry, whatever its nesting depth.

    GeometryCollections are walked member by member. A missing or
    coordinate-less geometry yields an empty list.
    """
    if not geometry:
        return []
    if geometry.get("type") == "GeometryCollection":
        positions = []
        for member in geometry.get("geometries") or []:
            positions.extend(extract_coordinates(member))
        return positions
    return list(_walk_positions(geometry.get("coordinates")))


def calculate_bbox(features: Iterable[Dict[str, Any]]) -> Optional[List[float]]:
    """
    Element-wise min/max over all coordinates of the features.

    Features without geometry are ignored.

    Returns:
        [min_lon, min_lat, max_lon, max_lat] or None if no coordinate exists
    """
    min_x = min_y = float("inf")
    max_x = max_y = float("-inf")
    found = False

    for feature in features:
        for position in extract_coordinates((feature or {}).get("geometry")):
            x, y = position[0], position[1]
            min_x, max_x = min(min_x, x), max(max_x, x)
            min_y, max_y = min(min_y, y), max(max_y, y)
            found = True

    if not found:
        return None
    return [min_x, min_y, max_x, max_y]


def calculate_center(bbox: Optional[Sequence[float]]) -> List[float]:
    """Midpoint of a bbox as [lat, lon]; Paris when there is no bbox."""
    if not bbox:
        return list(DEFAULT_CENTER)
    min_x, min_y, max_x, max_y = bbox
    return [(min_y + max_y) / 2, (min_x + max_x) / 2]


def calculate_zoom(bbox: Optional[Sequence[float]]) -> int:
    """
    Coarse initial zoom from the larger of the lat/lon spans.

    Not projection-accurate; only meant to frame the first viewport.
    """
    if not bbox:
        return DEFAULT_ZOOM
    min_x, min_y, max_x, max_y = bbox
    span = max(max_y - min_y, max_x - min_x)
    for threshold, zoom in ZOOM_BREAKPOINTS:
        if span > threshold:
            return zoom
    return FALLBACK_ZOOM
