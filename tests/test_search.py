"""Tests for feature_query.search - raster policy, schema loading, search and suggestions."""

import asyncio

import httpx
import pytest

from feature_query.errors import SchemaError
from feature_query.models import Feature, QueryOutcome
from feature_query.search import (
    MSG_NO_RESULTS,
    MSG_SEARCH_FAILED,
    AttributeSearchResolver,
    SchemaStatus,
    SearchStatus,
    classify_raster,
    parse_schema,
)

from conftest import collection, feature, make_layer, prop, run, schema, square

BUILDINGS_SCHEMA = schema(
    prop("the_geom", "gml:MultiPolygon"),
    prop("name", "xsd:string"),
    prop("height", "xsd:double"),
    prop("floors", "xsd:int"),
)


@pytest.fixture
def resolver(client, state, engine_config, projections) -> AttributeSearchResolver:
    return AttributeSearchResolver(client, state, engine_config, projections)


@pytest.fixture
def ortho():
    return make_layer("ortho2020", workspace="imagery", keywords=("GeoTIFF", "Raster"), styles=("raster",))


class TestRasterPolicy:

    @pytest.mark.unit
    def test_keyword_and_style_evidence(self, ortho):
        classification = classify_raster(ortho)
        assert classification.is_raster
        assert classification.evidence == ["keyword:Raster", "style:raster"]

    @pytest.mark.unit
    def test_vector_layer_is_not_raster(self, buildings):
        classification = classify_raster(buildings)
        assert not classification.is_raster
        assert classification.evidence == []

    @pytest.mark.unit
    def test_style_substring_counts(self):
        layer = make_layer("dem", styles=("dem_raster_colors",))
        assert classify_raster(layer).evidence == ["style:dem_raster_colors"]


class TestParseSchema:

    @pytest.mark.unit
    def test_fields_and_geometry(self):
        parsed = parse_schema(BUILDINGS_SCHEMA, "city:buildings")
        assert [(f.name, f.type) for f in parsed.fields] == [
            ("name", "string"), ("height", "number"), ("floors", "number"),
        ]
        assert parsed.geometry_property == "the_geom"
        assert parsed.geometry_type == "MultiPolygon"
        assert not parsed.is_point_layer

    @pytest.mark.unit
    def test_geometry_named_properties_are_not_fields(self):
        parsed = parse_schema(schema(prop("geom", "xsd:string"), prop("code", "xsd:string")), "city:x")
        assert [f.name for f in parsed.fields] == ["code"]
        assert parsed.geometry_property == "geom"

    @pytest.mark.unit
    def test_point_layer(self):
        parsed = parse_schema(schema(prop("location", "gml:Point"), prop("kind", "xsd:string")), "city:trees")
        assert parsed.is_point_layer

    @pytest.mark.unit
    @pytest.mark.parametrize("payload", [
        [],
        {},
        {"featureTypes": []},
        {"featureTypes": [{"typeName": "x"}]},
        {"featureTypes": [{"properties": [{"type": "xsd:string"}]}]},
    ])
    def test_malformed_schema(self, payload):
        with pytest.raises(SchemaError):
            parse_schema(payload, "city:bad")


class TestLoadSchema:

    @pytest.mark.unit
    def test_schema_ready(self, resolver, server, buildings):
        server.on("DescribeFeatureType", "city:buildings", BUILDINGS_SCHEMA)

        loaded = run(lambda: resolver.load_schema(buildings))

        assert loaded.outcome is QueryOutcome.RESOLVED
        assert [f.name for f in loaded.fields] == ["name", "height", "floors"]
        assert resolver.schema_status is SchemaStatus.READY
        assert [f.name for f in resolver.fields] == ["name", "height", "floors"]
        assert server.params("DescribeFeatureType")[0]["typeName"] == "city:buildings"

    @pytest.mark.unit
    def test_schema_is_cached_per_layer(self, resolver, server, buildings):
        server.on("DescribeFeatureType", "city:buildings", BUILDINGS_SCHEMA)

        async def body():
            await resolver.load_schema(buildings)
            return await resolver.load_schema(buildings)

        loaded = run(body)
        assert loaded.outcome is QueryOutcome.RESOLVED
        assert len(server.params("DescribeFeatureType")) == 1

    @pytest.mark.unit
    def test_raster_layer_blocked_without_request(self, resolver, server, ortho):
        loaded = run(lambda: resolver.load_schema(ortho))

        assert loaded.outcome is QueryOutcome.RASTER_BLOCKED
        assert loaded.fields == []
        assert resolver.fields == []
        assert resolver.schema_status is SchemaStatus.RASTER_BLOCKED
        assert "raster" in resolver.message
        assert server.requests == []

    @pytest.mark.unit
    @pytest.mark.parametrize("answer", [
        httpx.Response(500, text="boom"),
        httpx.Response(200, text="<html>login</html>", headers={"content-type": "text/html"}),
        {"featureTypes": []},
    ])
    def test_schema_error_leaves_no_fields(self, resolver, server, buildings, answer):
        server.on("DescribeFeatureType", "city:buildings", answer)

        loaded = run(lambda: resolver.load_schema(buildings))

        assert loaded.outcome is QueryOutcome.SCHEMA_ERROR
        assert loaded.message == SchemaError.user_message
        assert resolver.fields == []
        assert resolver.schema_status is SchemaStatus.ERROR

    @pytest.mark.unit
    def test_newer_layer_choice_supersedes_slow_schema(self, resolver, server, parks, roads):
        async def slow(params):
            await asyncio.sleep(0.05)
            return schema(prop("park_name", "xsd:string"))

        server.on("DescribeFeatureType", "city:parks", slow)
        server.on("DescribeFeatureType", "city:roads", schema(prop("lanes", "xsd:int")))

        async def body():
            return await asyncio.gather(resolver.load_schema(parks), resolver.load_schema(roads))

        first, second = run(body)

        assert first.outcome is QueryOutcome.SUPERSEDED
        assert second.outcome is QueryOutcome.RESOLVED
        assert resolver.active_layer is roads
        assert [f.name for f in resolver.fields] == ["lanes"]
        # The late answer is still cached for a later choice of the same layer
        assert resolver.cached_schema(parks) is not None

    @pytest.mark.unit
    def test_reset(self, resolver, server, buildings):
        server.on("DescribeFeatureType", "city:buildings", BUILDINGS_SCHEMA)
        run(lambda: resolver.load_schema(buildings))
        resolver.reset()
        assert resolver.active_layer is None
        assert resolver.fields == []
        assert resolver.schema_status is SchemaStatus.IDLE


class TestSearch:

    @pytest.mark.unit
    def test_no_matches_clears_selection_and_reports_no_results(self, resolver, server, state, buildings):
        state.commit([Feature(id="old.1")])
        server.on("DescribeFeatureType", "city:buildings", BUILDINGS_SCHEMA)

        result = run(lambda: resolver.search(buildings, "height", ">", "50"))

        assert result.outcome is QueryOutcome.NO_RESULTS
        assert result.message == MSG_NO_RESULTS
        assert not result.is_error
        assert state.selection.is_empty
        assert resolver.search_status is SearchStatus.NO_RESULTS
        params = server.params("GetFeature")[0]
        assert params["CQL_FILTER"] == "height>50"
        assert params["srsName"] == "EPSG:3857"
        assert params["typeName"] == "city:buildings"

    @pytest.mark.unit
    def test_matches_are_committed_with_criteria(self, resolver, server, state, buildings):
        server.on("DescribeFeatureType", "city:buildings", BUILDINGS_SCHEMA)
        server.on("GetFeature", "city:buildings", collection(
            feature("buildings.1", square(0, 0, 10), height=60),
            feature("buildings.2", square(20, 20, 10), height=80),
        ))
        completed = []
        state.on_search_complete(completed.append)

        result = run(lambda: resolver.search(buildings, "height", ">", " 50 "))

        assert result.outcome is QueryOutcome.RESOLVED
        assert [f.id for f in state.selection.features] == ["buildings.1", "buildings.2"]
        criteria = state.selection.criteria
        assert (criteria.layer, criteria.field, criteria.operator, criteria.value) == ("Buildings", "height", ">", "50")
        assert criteria.layer_key == "city:buildings"
        assert len(completed) == 1 and completed[0].criteria == criteria
        assert result.fit.extent.as_bbox() == [0, 0, 30, 30]

    @pytest.mark.unit
    def test_string_field_uses_equality(self, resolver, server, state, buildings):
        server.on("DescribeFeatureType", "city:buildings", BUILDINGS_SCHEMA)
        server.on("GetFeature", "city:buildings", collection(feature("buildings.3", square(0, 0, 1), name="O'Neil Tower")))

        result = run(lambda: resolver.search(buildings, "name", ">", "O'Neil Tower"))

        assert result.outcome is QueryOutcome.RESOLVED
        assert server.params("GetFeature")[0]["CQL_FILTER"] == "name='O''Neil Tower'"
        assert state.selection.criteria.operator == "="

    @pytest.mark.unit
    def test_raster_search_is_blocked_without_request(self, resolver, server, ortho):
        result = run(lambda: resolver.search(ortho, "value", "=", "1"))
        assert result.outcome is QueryOutcome.RASTER_BLOCKED
        assert result.is_error
        assert server.requests == []

    @pytest.mark.unit
    def test_invalid_number_is_rejected_before_request(self, resolver, server, buildings):
        server.on("DescribeFeatureType", "city:buildings", BUILDINGS_SCHEMA)
        result = run(lambda: resolver.search(buildings, "height", ">", "tall"))
        assert result.outcome is QueryOutcome.INVALID_INPUT
        assert result.message == "Please enter a valid number."
        assert server.params("GetFeature") == []

    @pytest.mark.unit
    @pytest.mark.parametrize("field_name,value", [("unknown", "1"), ("name", ""), ("height", None)])
    def test_incomplete_form_is_invalid_input(self, resolver, server, buildings, field_name, value):
        server.on("DescribeFeatureType", "city:buildings", BUILDINGS_SCHEMA)
        result = run(lambda: resolver.search(buildings, field_name, "=", value))
        assert result.outcome is QueryOutcome.INVALID_INPUT
        assert server.params("GetFeature") == []

    @pytest.mark.unit
    def test_transport_failure_keeps_selection(self, resolver, server, state, buildings):
        state.commit([Feature(id="kept.1")])
        server.on("DescribeFeatureType", "city:buildings", BUILDINGS_SCHEMA)
        server.on("GetFeature", "city:buildings", httpx.Response(500, text="boom"))

        result = run(lambda: resolver.search(buildings, "height", ">", "50"))

        assert result.outcome is QueryOutcome.SEARCH_ERROR
        assert result.message == MSG_SEARCH_FAILED
        assert [f.id for f in state.selection.features] == ["kept.1"]
        assert resolver.search_status is SearchStatus.ERROR

    @pytest.mark.unit
    def test_schema_failure_during_search(self, resolver, server, buildings):
        server.on("DescribeFeatureType", "city:buildings", httpx.Response(404, text="no such type"))
        result = run(lambda: resolver.search(buildings, "height", ">", "50"))
        assert result.outcome is QueryOutcome.SCHEMA_ERROR
        assert server.params("GetFeature") == []

    @pytest.mark.unit
    @pytest.mark.parametrize("matches", [
        collection(feature("buildings.9", square(0, 0, 10), height=90)),
        collection(),
    ])
    def test_late_answer_after_newer_interaction_is_dropped(self, resolver, server, state, buildings, matches):
        state.commit([Feature(id="kept.1")])
        before = state.selection
        completed = []
        state.on_search_complete(completed.append)
        server.on("DescribeFeatureType", "city:buildings", BUILDINGS_SCHEMA)

        async def body():
            arrived = asyncio.Event()
            released = asyncio.Event()

            async def late(params):
                arrived.set()
                await released.wait()
                return matches

            server.on("GetFeature", "city:buildings", late)
            pending = asyncio.ensure_future(resolver.search(buildings, "height", ">", "50"))
            await arrived.wait()
            # A click or box starts while the search is in flight
            state.begin_interaction()
            released.set()
            return await pending

        result = run(body)

        assert result.outcome is QueryOutcome.SUPERSEDED
        assert state.selection is before
        assert [f.id for f in state.selection.features] == ["kept.1"]
        assert completed == []

    @pytest.mark.unit
    def test_clear_notifies_search_listeners(self, resolver, state):
        state.commit([Feature(id="a.1")])
        completed = []
        state.on_search_complete(completed.append)

        result = resolver.clear()

        assert result.outcome is QueryOutcome.CLEARED
        assert state.selection.is_empty
        assert len(completed) == 1


class TestSuggestions:

    @pytest.mark.unit
    def test_distinct_sorted_values(self, resolver, server, parks):
        server.on("GetFeature", "city:parks", collection(
            feature(None, None, name="Centro"),
            feature(None, None, name="Central"),
            feature(None, None, name="Central"),
            feature(None, None),
        ))

        values = run(lambda: resolver.suggest(parks, "name", "cen"))

        assert values == ["Central", "Centro"]
        params = server.params("GetFeature")[0]
        assert params["CQL_FILTER"] == "name ILIKE 'cen%'"
        assert params["propertyName"] == "name"
        assert params["maxFeatures"] == "100"

    @pytest.mark.unit
    def test_prefix_wildcards_are_escaped(self, resolver, server, parks):
        run(lambda: resolver.suggest(parks, "name", "100%_"))
        assert server.params("GetFeature")[0]["CQL_FILTER"] == "name ILIKE '100\\%\\_%'"

    @pytest.mark.unit
    def test_no_suggestions_for_number_fields(self, resolver, server, buildings):
        server.on("DescribeFeatureType", "city:buildings", BUILDINGS_SCHEMA)

        async def body():
            await resolver.load_schema(buildings)
            return await resolver.suggest(buildings, "height", "5")

        assert run(body) == []
        assert server.params("GetFeature") == []

    @pytest.mark.unit
    def test_no_suggestions_for_empty_prefix_or_raster(self, resolver, server, parks, ortho):
        assert run(lambda: resolver.suggest(parks, "name", "")) == []
        assert run(lambda: resolver.suggest(ortho, "name", "a")) == []
        assert server.requests == []

    @pytest.mark.unit
    def test_failure_yields_no_suggestions(self, resolver, server, parks):
        server.on("GetFeature", "city:parks", httpx.Response(500, text="boom"))
        assert run(lambda: resolver.suggest(parks, "name", "a")) == []

    @pytest.mark.unit
    def test_debounce_sends_only_latest_prefix(self, resolver, server, parks):
        server.on("GetFeature", "city:parks", collection(feature(None, None, name="Central")))
        received = []
        resolver.debouncer.on_suggestions = received.append

        async def body():
            resolver.schedule_suggestions(parks, "name", "c")
            resolver.schedule_suggestions(parks, "name", "ce")
            task = resolver.schedule_suggestions(parks, "name", "cen")
            return await task

        values = run(body)

        assert values == ["Central"]
        assert [p["CQL_FILTER"] for p in server.params("GetFeature")] == ["name ILIKE 'cen%'"]
        assert received == [["Central"]]
        assert resolver.debouncer.suggestions == ["Central"]
        assert resolver.search_status is SearchStatus.EDITING
