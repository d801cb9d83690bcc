"""
Core data models - pure data structures, no business logic.

Exports:
    Enums: QueryJobStatus, StepType, LayerRole, SourceType, NotificationType
    Query: DataSpec, TreatmentSpec, SpatialFilterSpec, VisualizationSpec, StructuredQuery
    Results: FeatureSet, ExecutionStep, MapLayer, ComposedView, ExecutionResult
    Job: QueryJobRecord, parse_timestamp
"""

from .enums import (
    QueryJobStatus,
    StepType,
    LayerRole,
    SourceType,
    NotificationType,
)
from .query import (
    DataSpec,
    TreatmentSpec,
    SpatialFilterSpec,
    VisualizationSpec,
    StructuredQuery,
)
from .results import (
    FeatureSet,
    ExecutionStep,
    MapLayer,
    ComposedView,
    ExecutionResult,
)
from .job import QueryJobRecord, parse_timestamp

__all__ = [
    'QueryJobStatus',
    'StepType',
    'LayerRole',
    'SourceType',
    'NotificationType',
    'DataSpec',
    'TreatmentSpec',
    'SpatialFilterSpec',
    'VisualizationSpec',
    'StructuredQuery',
    'FeatureSet',
    'ExecutionStep',
    'MapLayer',
    'ComposedView',
    'ExecutionResult',
    'QueryJobRecord',
    'parse_timestamp',
]
