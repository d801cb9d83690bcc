# ============================================================================
# QUERY ORCHESTRATOR
# ============================================================================
# STATUS: Service - Runs one structured query through the pipeline stages
# PURPOSE: zone -> reference -> treatments -> target -> spatial filter -> compose
# ============================================================================
"""
Query Orchestrator

Executes one StructuredQuery through fixed, strictly ordered stages and
publishes progress into the ReactiveStore as it goes:

    1. zone        fetch; its bbox constrains every later fetch
    2. reference   fetch
    3. treatment   each ``apply_to == 'reference'`` treatment, in order
    4. target      fetch
    5. filter      spatial filter hook, when target and reference exist
    6. compose     layers + bounds/center/zoom published to the store

Stages never run concurrently, even when two fetches are independent, so
the step log stays linear and later stages can use earlier bounds.

Any exception aborts the whole query: a ``success: false`` result is
appended to ``data.queryHistory`` and the exception is re-raised.
"""

import inspect
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from geoagent.config.defaults import SourceDefaults, StoreDefaults
from geoagent.core.logic.geometry import calculate_bbox, calculate_center, calculate_zoom
from geoagent.core.models import (
    ComposedView,
    ExecutionResult,
    ExecutionStep,
    FeatureSet,
    LayerRole,
    MapLayer,
    SpatialFilterSpec,
    StepType,
    StructuredQuery,
)
from geoagent.exceptions import MalformedQueryError
from geoagent.store import ReactiveStore
from geoagent.util_logger import LoggerFactory, ComponentType, LogContext

from .feature_fetcher import FeatureFetcher
from .treatment_registry import TreatmentRegistry

logger = LoggerFactory.create_logger(ComponentType.SERVICE, "QueryOrchestrator")

SpatialFilter = Callable[
    [FeatureSet, FeatureSet, SpatialFilterSpec],
    Union[FeatureSet, Awaitable[FeatureSet]],
]

# Default look of each role's layer; explicit visualization styles win.
LAYER_DEFAULTS: Dict[LayerRole, Dict[str, Any]] = {
    LayerRole.ZONE: {
        "name": "Zone",
        "z_index": 1,
        "highlight": False,
        "style": {"fillColor": "#3b82f6", "fillOpacity": 0.1, "strokeColor": "#1e40af", "strokeWidth": 2},
    },
    LayerRole.REFERENCE: {
        "name": "Référence",
        "z_index": 2,
        "highlight": False,
        "style": {"fillColor": "#10b981", "fillOpacity": 0.3, "strokeColor": "#059669", "strokeWidth": 1},
    },
    LayerRole.TARGET: {
        "name": "Résultats",
        "z_index": 3,
        "highlight": True,
        "style": {"color": "#ef4444", "fillColor": "#fca5a5", "fillOpacity": 0.6, "strokeWidth": 2, "radius": 8},
    },
}


def passthrough_spatial_filter(target: FeatureSet, reference: FeatureSet,
                               spec: SpatialFilterSpec) -> FeatureSet:
    """Default spatial filter: keeps every target feature."""
    return target


@dataclass
class _Execution:
    execution_id: str
    query: Dict[str, Any]
    steps: List[ExecutionStep] = field(default_factory=list)


class QueryOrchestrator:
    """
    Runs structured queries against one store.

    Args:
        store: Store receiving progress, layers and history
        fetcher: Executes catalog requests
        treatments: Registry used to validate and apply treatments
        spatial_filter: Hook for stage 5; pass-through by default
        query_history_limit: Number of results kept in data.queryHistory
        default_basemap: Basemap when the query does not name one
    """

    def __init__(self, store: ReactiveStore, fetcher: FeatureFetcher,
                 treatments: TreatmentRegistry,
                 spatial_filter: SpatialFilter = passthrough_spatial_filter,
                 query_history_limit: int = StoreDefaults.QUERY_HISTORY_LIMIT,
                 default_basemap: str = SourceDefaults.DEFAULT_BASEMAP):
        self.store = store
        self.fetcher = fetcher
        self.treatments = treatments
        self.spatial_filter = spatial_filter
        self.query_history_limit = query_history_limit
        self.default_basemap = default_basemap

    async def execute(self, query: Union[StructuredQuery, Mapping[str, Any]]) -> ExecutionResult:
        """
        Run every stage the query asks for.

        Returns:
            ExecutionResult with success=True

        Raises:
            MalformedQueryError: query does not validate
            UnknownTreatmentError: a treatment id is not registered
            UnknownSourceError, TransportError: a fetch failed
        """
        execution = _Execution(
            execution_id=str(uuid.uuid4()),
            query=self._query_snapshot(query),
        )
        context = LogContext(execution_id=execution.execution_id)
        started = time.monotonic()

        self.store.batch_update(
            {"data.currentQuery": execution.query, "data.executionSteps": []},
            "Query execution started",
        )

        try:
            parsed = self._parse(query)
            self.treatments.validate(t.id for t in parsed.treatments)
            view = await self._run_stages(parsed, execution)
        except Exception as e:
            duration_ms = (time.monotonic() - started) * 1000
            logger.error(
                f"Query failed after {duration_ms:.0f}ms: {type(e).__name__}: {e}",
                extra=context.as_extra(),
            )
            self._save_to_history(ExecutionResult(
                execution_id=execution.execution_id,
                query=execution.query,
                steps=execution.steps,
                error=str(e),
                success=False,
            ))
            raise

        result = ExecutionResult(
            execution_id=execution.execution_id,
            query=execution.query,
            steps=execution.steps,
            result=view,
            success=True,
        )
        self._save_to_history(result)
        duration_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"Query completed in {duration_ms:.0f}ms: "
            f"{len(execution.steps)} steps, {len(view.layers)} layers",
            extra=context.as_extra(),
        )
        return result

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run_stages(self, query: StructuredQuery, execution: _Execution) -> ComposedView:
        default_table = self.store.get_state("data.currentTable")

        zone = None
        if query.zone:
            zone = await self.fetcher.fetch_spec(query.zone, default_table=default_table)
            self._add_step(execution, StepType.ZONE, "Zone fetched", {"count": zone.feature_count})

        constraint = zone.bbox if zone else None

        reference = None
        if query.reference:
            reference = await self.fetcher.fetch_spec(
                query.reference, bbox=constraint, default_table=default_table
            )
            self._add_step(execution, StepType.REFERENCE, "Reference data fetched",
                           {"count": reference.feature_count})

        if reference is not None:
            for treatment in query.treatments:
                if treatment.apply_to != LayerRole.REFERENCE.value:
                    continue
                reference = self.treatments.apply(treatment, reference)
                self._add_step(execution, StepType.TREATMENT, f"Applied {treatment.id}",
                               {"treatment": treatment.id, "params": treatment.params})

        target = None
        if query.target:
            target = await self.fetcher.fetch_spec(
                query.target, bbox=constraint, default_table=default_table
            )
            self._add_step(execution, StepType.TARGET, "Target data fetched",
                           {"count": target.feature_count})

        if query.spatial_filter and target is not None and reference is not None:
            before = target.feature_count
            filtered = self.spatial_filter(target, reference, query.spatial_filter)
            if inspect.isawaitable(filtered):
                filtered = await filtered
            target = filtered
            self._add_step(execution, StepType.FILTER, "Spatial filter applied",
                           {"before": before, "after": target.feature_count})

        view = self._compose(query, {
            LayerRole.ZONE: zone,
            LayerRole.REFERENCE: reference,
            LayerRole.TARGET: target,
        })
        self._add_step(execution, StepType.COMPOSE, "View composed", {"layers": len(view.layers)})
        return view

    def _compose(self, query: StructuredQuery,
                 datasets: Dict[LayerRole, Optional[FeatureSet]]) -> ComposedView:
        visualization = query.visualization
        if visualization is not None:
            requested = set(visualization.layers)
            styles = visualization.styles
            basemap = visualization.basemap or self.default_basemap
        else:
            requested = {role.value for role, data in datasets.items() if data is not None}
            styles = {}
            basemap = self.default_basemap

        layers = []
        for role in LayerRole:
            data = datasets.get(role)
            if data is None or role.value not in requested:
                continue
            defaults = LAYER_DEFAULTS[role]
            layers.append(MapLayer(
                id=role.value,
                name=defaults["name"],
                type=role.value,
                features=data.features,
                style=styles.get(role.value) or dict(defaults["style"]),
                visible=True,
                z_index=defaults["z_index"],
                highlight=defaults["highlight"],
            ))

        bbox = calculate_bbox(f for layer in layers for f in layer.features)
        view = ComposedView(
            layers=layers,
            bounds=bbox,
            center=calculate_center(bbox),
            zoom=calculate_zoom(bbox),
            basemap=basemap,
        )

        self.store.batch_update({
            "layers.system": [layer.model_dump(mode="json", by_alias=True) for layer in layers],
            "map.center": view.center,
            "map.zoom": view.zoom,
            "map.bounds": view.bounds,
        }, "Query results displayed")
        return view

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _query_snapshot(query: Any) -> Dict[str, Any]:
        if isinstance(query, StructuredQuery):
            return query.to_dict()
        if isinstance(query, Mapping):
            return dict(query)
        return {"raw": repr(query)}

    @staticmethod
    def _parse(query: Any) -> StructuredQuery:
        if isinstance(query, StructuredQuery):
            return query
        if not isinstance(query, Mapping):
            raise MalformedQueryError(
                f"Structured query must be an object, got {type(query).__name__}"
            )
        try:
            return StructuredQuery.model_validate(dict(query))
        except ValidationError as e:
            raise MalformedQueryError(f"Invalid structured query: {e}") from e

    def _add_step(self, execution: _Execution, step_type: StepType, message: str,
                  data: Optional[Dict[str, Any]] = None) -> None:
        execution.steps.append(ExecutionStep(type=step_type, message=message, data=data))
        self.store.set_state(
            "data.executionSteps",
            [step.model_dump(mode="json") for step in execution.steps],
            message,
        )

    def _save_to_history(self, result: ExecutionResult) -> None:
        history = self.store.get_state("data.queryHistory") or []
        entries = [result.to_dict(), *history][: self.query_history_limit]
        self.store.batch_update({
            "data.queryHistory": entries,
            "data.currentQuery": None,
        }, "Query saved to history")
