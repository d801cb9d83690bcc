"""
Query orchestrator tests: stage order, composition and history.
"""

import asyncio

import pytest

from geoagent.config import SourceConfig
from geoagent.core.models import FeatureSet, StructuredQuery
from geoagent.exceptions import MalformedQueryError, TransportError, UnknownTreatmentError
from geoagent.infrastructure import InMemoryRecordStore
from geoagent.services import FeatureFetcher, QueryOrchestrator, SourceCatalog, TreatmentRegistry
from geoagent.store import ReactiveStore
from tests.factories.http_factories import FakeSources
from tests.factories.model_factories import (
    make_osm_node,
    make_point_feature,
    make_polygon_feature,
    make_target_query,
)

PARIS_BBOX = [2.2, 48.8, 2.4, 48.9]


def _orchestrator(fake, store=None, record_store=None, **kwargs):
    store = store or ReactiveStore()
    fetcher = FeatureFetcher(
        SourceCatalog(SourceConfig()),
        record_store or InMemoryRecordStore(),
        transport=fake.transport,
    )
    return QueryOrchestrator(store, fetcher, TreatmentRegistry(), **kwargs)


def _execute(orchestrator, query):
    async def scenario():
        try:
            return await orchestrator.execute(query)
        finally:
            await orchestrator.fetcher.close()
    return asyncio.run(scenario())


# ============================================================================
# Target-only queries
# ============================================================================

class TestTargetOnly:

    def test_single_fetch_single_layer(self):
        nodes = [make_osm_node() for _ in range(4)]
        fake = FakeSources(overpass_elements=nodes)
        orchestrator = _orchestrator(fake)

        result = _execute(orchestrator, make_target_query())

        assert len(fake.requests) == 1
        assert result.success is True
        layers = result.result.layers
        assert [layer.id for layer in layers] == ["target"]
        assert [f["id"] for f in layers[0].features] == [f"node/{n['id']}" for n in nodes]
        assert [step.type for step in result.steps] == ["target", "compose"]

    def test_school_bounds_match_fetched_coordinates(self):
        positions = [[2.301, 48.851], [2.352, 48.874], [2.333, 48.842]]
        fake = FakeSources(overpass_elements=[make_osm_node(p) for p in positions])
        store = ReactiveStore()
        orchestrator = _orchestrator(fake, store=store)

        result = _execute(orchestrator, {
            "target": {"source": "osm", "tag": "amenity", "value": "school"},
            "visualization": {"layers": ["target"]},
        })

        expected = [2.301, 48.842, 2.352, 48.874]
        view = result.result
        assert len(view.layers) == 1
        assert view.bounds == expected
        assert view.center == pytest.approx([(48.842 + 48.874) / 2, (2.301 + 2.352) / 2])
        assert view.zoom == 15
        assert store.get_state("map.bounds") == expected
        assert store.get_state("map.zoom") == 15
        assert store.get_state("map.center") == view.center

    def test_layer_published_with_role_defaults(self):
        fake = FakeSources(overpass_elements=[make_osm_node()])
        store = ReactiveStore()
        _execute(_orchestrator(fake, store=store), make_target_query())

        [layer] = store.get_state("layers.system")
        assert layer["id"] == "target"
        assert layer["name"] == "Résultats"
        assert layer["zIndex"] == 3
        assert layer["highlight"] is True
        assert layer["style"]["color"] == "#ef4444"

    def test_empty_result_uses_default_viewport(self):
        fake = FakeSources()
        result = _execute(_orchestrator(fake), make_target_query())
        assert result.result.bounds is None
        assert result.result.center == [48.8566, 2.3522]
        assert result.result.zoom == 6


# ============================================================================
# Full pipeline
# ============================================================================

class TestStages:

    def _full_query(self, **extra):
        return {
            "zone": {"source": "ign", "layer": "communes", "filter": {"nom": "Paris"}},
            "reference": {"source": "ign", "layer": "routes"},
            "treatments": [{"id": "buffer", "params": {"distance": 200}}],
            "target": {"source": "osm", "type": "amenity", "value": "school"},
            "spatialFilter": {"predicate": "intersects"},
            **extra,
        }

    def test_stage_order(self):
        fake = FakeSources(
            wfs_features=[make_polygon_feature(PARIS_BBOX)],
            overpass_elements=[make_osm_node()],
        )
        result = _execute(_orchestrator(fake), self._full_query())

        assert [step.type for step in result.steps] == [
            "zone", "reference", "treatment", "target", "filter", "compose",
        ]
        assert len(fake.requests) == 3

    def test_zone_bbox_constrains_later_fetches(self):
        fake = FakeSources(
            wfs_features=[make_polygon_feature(PARIS_BBOX)],
            overpass_elements=[make_osm_node()],
        )
        _execute(_orchestrator(fake), self._full_query())

        zone_params, reference_params = fake.wfs_params
        assert "bbox" not in zone_params
        assert reference_params["bbox"] == "2.2,48.8,2.4,48.9,EPSG:4326"
        assert "(48.8,2.2,48.9,2.4)" in fake.overpass_queries[0]

    def test_buffer_applied_to_reference(self):
        fake = FakeSources(wfs_features=[make_polygon_feature(PARIS_BBOX)])
        result = _execute(_orchestrator(fake), {
            "reference": {"source": "ign", "layer": "routes"},
            "treatments": [{"id": "buffer", "params": {"distance": 200}}],
        })
        [layer] = result.result.layers
        assert layer.id == "reference"
        assert layer.features[0]["_buffered"] is True
        assert layer.features[0]["_bufferDistance"] == 200

    def test_treatment_for_other_role_not_applied(self):
        fake = FakeSources(wfs_features=[make_polygon_feature(PARIS_BBOX)])
        result = _execute(_orchestrator(fake), {
            "reference": {"source": "ign", "layer": "routes"},
            "treatments": [{"id": "buffer", "params": {"distance": 200}, "apply_to": "target"}],
        })
        assert "_buffered" not in result.result.layers[0].features[0]
        assert "treatment" not in [step.type for step in result.steps]

    def test_custom_async_spatial_filter(self):
        inside = make_point_feature([2.3, 48.85])
        outside = make_point_feature([5.0, 45.0])
        fake = FakeSources(wfs_features=[make_polygon_feature(PARIS_BBOX)])
        seen = {}

        async def keep_inside(target, reference, spec):
            seen["predicate"] = spec.predicate
            return target.model_copy(update={"features": [inside]})

        orchestrator = _orchestrator(fake, spatial_filter=keep_inside)
        orchestrator.fetcher.fetch_spec = _stub_target(orchestrator.fetcher.fetch_spec, [inside, outside])

        result = _execute(orchestrator, {
            "reference": {"source": "ign", "layer": "routes"},
            "target": {"source": "osm", "type": "amenity", "value": "school"},
            "spatialFilter": {"predicate": "within"},
        })

        assert seen["predicate"] == "within"
        filter_step = [s for s in result.steps if s.type == "filter"][0]
        assert filter_step.data == {"before": 2, "after": 1}
        target_layer = [layer for layer in result.result.layers if layer.id == "target"][0]
        assert target_layer.features == [inside]

    def test_spatial_filter_skipped_without_reference(self):
        fake = FakeSources(overpass_elements=[make_osm_node()])
        result = _execute(_orchestrator(fake), make_target_query(spatialFilter={"predicate": "within"}))
        assert "filter" not in [step.type for step in result.steps]

    def test_visualization_selects_and_styles(self):
        fake = FakeSources(
            wfs_features=[make_polygon_feature(PARIS_BBOX)],
            overpass_elements=[make_osm_node([2.3, 48.85])],
        )
        result = _execute(_orchestrator(fake), self._full_query(visualization={
            "layers": ["target", "zone"],
            "styles": {"zone": {"fillColor": "#000000"}},
            "basemap": "ign-plan",
        }))
        view = result.result
        assert [layer.id for layer in view.layers] == ["zone", "target"]
        assert view.layers[0].style == {"fillColor": "#000000"}
        assert view.basemap == "ign-plan"
        assert view.bounds == PARIS_BBOX

    def test_project_source_uses_current_table(self):
        record_store = InMemoryRecordStore({
            "Parcels": [{"id": 1, "geometry_wgs84": "POINT (2.35 48.85)", "label": "A"}],
        })
        store = ReactiveStore()
        store.set_state("data.currentTable", "Parcels")
        result = _execute(
            _orchestrator(FakeSources(), store=store, record_store=record_store),
            {"target": {"source": "project"}},
        )
        [layer] = result.result.layers
        assert layer.features[0]["properties"] == {"label": "A"}


def _stub_target(original, features):
    async def fetch_spec(spec, bbox=None, default_table=None):
        if spec.source == "osm":
            return FeatureSet(source="osm", features=features)
        return await original(spec, bbox=bbox, default_table=default_table)
    return fetch_spec


# ============================================================================
# Store publication
# ============================================================================

class TestStorePublication:

    def test_steps_mirrored_as_they_happen(self):
        fake = FakeSources(overpass_elements=[make_osm_node()])
        store = ReactiveStore()
        snapshots = []
        store.subscribe("data.executionSteps", lambda steps: snapshots.append([s["type"] for s in steps]))

        _execute(_orchestrator(fake, store=store), make_target_query())

        assert snapshots == [[], ["target"], ["target", "compose"]]

    def test_map_published_in_one_batch(self):
        fake = FakeSources(overpass_elements=[make_osm_node()])
        store = ReactiveStore()
        calls = []
        store.subscribe("map", calls.append)
        _execute(_orchestrator(fake, store=store), make_target_query())
        assert len(calls) == 1

    def test_current_query_cleared_and_history_prepended(self):
        fake = FakeSources(overpass_elements=[make_osm_node()])
        store = ReactiveStore()
        seen_current = []
        store.subscribe("data.currentQuery", seen_current.append)

        result = _execute(_orchestrator(fake, store=store), make_target_query())

        assert seen_current[0]["target"]["value"] == "school"
        assert store.get_state("data.currentQuery") is None
        [entry] = store.get_state("data.queryHistory")
        assert entry["executionId"] == result.execution_id
        assert entry["success"] is True

    def test_history_bounded_newest_first(self):
        fake = FakeSources(overpass_elements=[make_osm_node()])
        store = ReactiveStore()
        orchestrator = _orchestrator(fake, store=store, query_history_limit=3)

        ids = [_execute(orchestrator, make_target_query()).execution_id for _ in range(5)]

        history = store.get_state("data.queryHistory")
        assert [entry["executionId"] for entry in history] == ids[::-1][:3]

    def test_structured_query_instance_accepted(self):
        fake = FakeSources(overpass_elements=[make_osm_node()])
        query = StructuredQuery.model_validate(make_target_query())
        assert _execute(_orchestrator(fake), query).query["target"]["type"] == "amenity"


# ============================================================================
# Failures
# ============================================================================

class TestFailures:

    def test_unknown_treatment_rejects_before_any_fetch(self):
        fake = FakeSources(wfs_features=[make_polygon_feature(PARIS_BBOX)])
        store = ReactiveStore()

        with pytest.raises(UnknownTreatmentError) as excinfo:
            _execute(_orchestrator(fake, store=store), {
                "reference": {"source": "ign", "layer": "routes"},
                "treatments": [{"id": "teleport"}],
            })

        assert excinfo.value.treatment_ids == ["teleport"]
        assert fake.requests == []
        [entry] = store.get_state("data.queryHistory")
        assert entry["success"] is False
        assert "teleport" in entry["error"]

    @pytest.mark.parametrize("query", [
        ["not", "an", "object"],
        {"target": {"layer": "communes"}},
        {"treatments": "buffer"},
    ])
    def test_malformed_query(self, query):
        store = ReactiveStore()
        with pytest.raises(MalformedQueryError):
            _execute(_orchestrator(FakeSources(), store=store), query)
        assert store.get_state("data.queryHistory")[0]["success"] is False
        assert store.get_state("data.currentQuery") is None

    def test_transport_error_aborts_without_partial_layers(self):
        fake = FakeSources(wfs_features=[make_polygon_feature(PARIS_BBOX)], overpass_status=504)
        store = ReactiveStore()

        with pytest.raises(TransportError):
            _execute(_orchestrator(fake, store=store), {
                "zone": {"source": "ign", "layer": "communes"},
                "target": {"source": "osm", "type": "amenity", "value": "school"},
            })

        assert store.get_state("layers.system") == []
        [entry] = store.get_state("data.queryHistory")
        assert entry["success"] is False
        assert [step["type"] for step in entry["steps"]] == ["zone"]
