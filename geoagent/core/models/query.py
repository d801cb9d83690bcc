"""
Structured Query Models.

The agent writes a structured query as JSON into the queue table; these
models are the validated form the orchestrator consumes.

Exports:
    DataSpec: What to fetch for one role (zone, reference, target)
    TreatmentSpec: One treatment step
    SpatialFilterSpec: Predicate between target and reference
    VisualizationSpec: Which layers to show and how
    StructuredQuery: Whole query
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import LayerRole


class DataSpec(BaseModel):
    """
    Fetch description for one role.

    ``layer`` names a catalog layer (WFS, project table); ``tag`` names an
    OSM tag family and is also accepted under the ``type`` key.
    """

    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    source: str = Field(..., min_length=1, description="Catalog source id (ign, osm, project)")
    layer: Optional[str] = Field(default=None, description="Catalog layer id")
    tag: Optional[str] = Field(default=None, alias="type", description="OSM tag family")
    value: Optional[str] = Field(default=None, description="OSM tag value")
    filter: Dict[str, Any] = Field(default_factory=dict, description="Attribute equality filter")
    max_features: Optional[int] = Field(default=None, alias="maxFeatures", ge=1)

    @property
    def layer_or_tag(self) -> Optional[str]:
        return self.layer or self.tag


class TreatmentSpec(BaseModel):
    """One treatment step. Only steps applied to the reference run today."""

    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    id: str = Field(..., min_length=1)
    params: Dict[str, Any] = Field(default_factory=dict)
    apply_to: str = Field(default=LayerRole.REFERENCE.value)


class SpatialFilterSpec(BaseModel):
    """Predicate between target and reference; free-form extras are kept."""

    model_config = ConfigDict(extra='allow')

    predicate: str = Field(default="intersects")


class VisualizationSpec(BaseModel):
    model_config = ConfigDict(extra='ignore')

    layers: List[str] = Field(default_factory=list)
    styles: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    basemap: Optional[str] = None


class StructuredQuery(BaseModel):
    """
    A whole agent query.

    Every part is optional; the orchestrator runs only the stages whose
    inputs are present. Without a visualization every fetched dataset is
    shown.
    """

    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    zone: Optional[DataSpec] = None
    reference: Optional[DataSpec] = None
    target: Optional[DataSpec] = None
    treatments: List[TreatmentSpec] = Field(default_factory=list)
    spatial_filter: Optional[SpatialFilterSpec] = Field(default=None, alias="spatialFilter")
    visualization: Optional[VisualizationSpec] = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe form with the wire key names."""
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)
