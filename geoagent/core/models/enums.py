"""
Pure Enumeration Types for the Query Pipeline.

No business logic - pure type definitions only.

Exports:
    QueryJobStatus: Queue row state enumeration
    StepType: Execution step kinds, in pipeline order
    LayerRole: Roles a fetched dataset plays in a query
    SourceType: Transport kinds a catalog source can use
    NotificationType: UI notification kinds
"""

from enum import Enum


class QueryJobStatus(str, Enum):
    """
    Valid status values for agent query jobs.

    State transitions:
    - PENDING -> PROCESSING -> SUCCESS (normal flow)
    - PENDING -> PROCESSING -> ERROR (any stage failure)

    SUCCESS and ERROR are terminal; jobs are never requeued.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


class StepType(str, Enum):
    """Execution step kinds recorded in data.executionSteps."""

    ZONE = "zone"
    REFERENCE = "reference"
    TREATMENT = "treatment"
    TARGET = "target"
    FILTER = "filter"
    COMPOSE = "compose"


class LayerRole(str, Enum):
    """Datasets a structured query can fetch; each may become one map layer."""

    ZONE = "zone"
    REFERENCE = "reference"
    TARGET = "target"


class SourceType(str, Enum):
    """How a catalog source is reached."""

    WFS = "wfs"            # OGC WFS GetFeature over HTTP GET
    OVERPASS = "overpass"  # Overpass QL over HTTP POST
    RECORDS = "records"    # Host table via the record store


class NotificationType(str, Enum):
    """Kinds of transient notifications written to ui.notification."""

    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
