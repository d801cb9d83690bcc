"""
Pipeline Result Models.

Exports:
    FeatureSet: Output of a fetch or treatment stage
    ExecutionStep: One ordered progress record
    MapLayer: One styled layer of the composed view
    ComposedView: Layers plus viewport
    ExecutionResult: Outcome of one query execution
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import StepType


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class FeatureSet(BaseModel):
    """
    GeoJSON-like features produced by a fetch, plus where they came from.

    Treatments take and return this same shape.
    """

    model_config = ConfigDict(extra='ignore')

    source: str
    features: List[Dict[str, Any]] = Field(default_factory=list)
    bbox: Optional[List[float]] = None
    layer: Optional[str] = None
    tag: Optional[str] = None
    value: Optional[str] = None
    table: Optional[str] = None
    treatment: Optional[str] = None
    treatment_params: Optional[Dict[str, Any]] = None

    @property
    def feature_count(self) -> int:
        return len(self.features)


class ExecutionStep(BaseModel):
    """One progress record mirrored into data.executionSteps."""

    model_config = ConfigDict(use_enum_values=True)

    type: StepType
    message: str
    data: Optional[Dict[str, Any]] = None
    timestamp: str = Field(default_factory=_utc_now_iso)


class MapLayer(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    type: str = "geojson"
    features: List[Dict[str, Any]] = Field(default_factory=list)
    style: Dict[str, Any] = Field(default_factory=dict)
    visible: bool = True
    z_index: int = Field(default=0, alias="zIndex")
    highlight: bool = False


class ComposedView(BaseModel):
    """What the map should show once a query has run."""

    layers: List[MapLayer] = Field(default_factory=list)
    bounds: Optional[List[float]] = None
    center: List[float]
    zoom: int
    basemap: str


class ExecutionResult(BaseModel):
    """
    Outcome of one query execution, kept in data.queryHistory.

    ``result`` is None and ``error`` set when a stage failed.
    """

    model_config = ConfigDict(populate_by_name=True)

    execution_id: str = Field(..., alias="executionId")
    query: Dict[str, Any]
    steps: List[ExecutionStep] = Field(default_factory=list)
    result: Optional[ComposedView] = None
    error: Optional[str] = None
    timestamp: str = Field(default_factory=_utc_now_iso)
    success: bool

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe form using the wire key names (executionId, zIndex)."""
        return self.model_dump(mode='json', by_alias=True)
