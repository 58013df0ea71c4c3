"""Tests for feature_query.box_query.BoxQueryResolver."""

import httpx
import pytest

from feature_query.box_query import BoxQueryResolver
from feature_query.models import Feature, QueryOutcome
from feature_query.projection import Extent

from conftest import collection, feature, run, square

HALF_WORLD = 20037508.342789244
WORLD = 2 * HALF_WORLD
VIEWPORT = (800, 600)

LOCAL_BOX = Extent(0, 0, 1000, 1000, crs="EPSG:3857")
SEAM_BOX = Extent(19_000_000, -500, 21_000_000, 500, crs="EPSG:3857")


@pytest.fixture
def resolver(client, state, engine_config, projections) -> BoxQueryResolver:
    return BoxQueryResolver(client, state, engine_config, projections)


def bbox_of(params):
    return [float(v) for v in params["BBOX"].split(",")]


class TestBeginBox:

    @pytest.mark.unit
    def test_begin_box_clears_selection(self, resolver, state):
        state.commit([Feature(id="old.1")])
        token = resolver.begin_box()
        assert state.selection.is_empty
        assert state.is_current(token)

    @pytest.mark.unit
    def test_resolve_without_token_starts_its_own_interaction(self, resolver, state, parks):
        state.commit([Feature(id="old.1")])
        result = run(lambda: resolver.resolve_box(LOCAL_BOX, [parks], VIEWPORT))
        assert result.outcome is QueryOutcome.NO_HIT
        assert state.selection.is_empty


class TestSingleWorld:

    @pytest.mark.unit
    def test_one_request_per_layer(self, resolver, server, parks, roads):
        token = resolver.begin_box()
        run(lambda: resolver.resolve_box(LOCAL_BOX, [parks, roads], VIEWPORT, token))

        assert server.layers_queried() == ["city:parks", "city:roads"]
        params = server.params("GetFeatureInfo")[0]
        assert bbox_of(params) == [0.0, 0.0, 1000.0, 1000.0]
        assert params["WIDTH"] == "800"
        assert params["HEIGHT"] == "600"
        assert params["X"] == "400"
        assert params["Y"] == "300"
        assert params["FEATURE_COUNT"] == "50"
        assert params["BUFFER"] == "0"
        assert params["SRS"] == "EPSG:3857"

    @pytest.mark.unit
    def test_bbox_list_is_accepted(self, resolver, server, parks):
        run(lambda: resolver.resolve_box([1000, 1000, 0, 0], [parks], VIEWPORT, view_crs="EPSG:3857"))
        assert bbox_of(server.params("GetFeatureInfo")[0]) == [0.0, 0.0, 1000.0, 1000.0]

    @pytest.mark.unit
    def test_features_outside_box_are_dropped(self, resolver, server, parks):
        server.on("GetFeatureInfo", "city:parks", collection(
            feature("parks.1", square(100, 100, 10)),
            feature("parks.2", square(5000, 5000, 10)),
            feature("parks.3", None),
        ))
        result = run(lambda: resolver.resolve_box(LOCAL_BOX, [parks], VIEWPORT))
        assert [f.id for f in result.features] == ["parks.1"]

    @pytest.mark.unit
    def test_features_touching_the_edge_are_kept(self, resolver, server, parks):
        server.on("GetFeatureInfo", "city:parks", collection(feature("parks.1", square(1000, 1000, 10))))
        result = run(lambda: resolver.resolve_box(LOCAL_BOX, [parks], VIEWPORT))
        assert [f.id for f in result.features] == ["parks.1"]

    @pytest.mark.unit
    def test_empty_area_is_not_an_error(self, resolver, parks, roads):
        result = run(lambda: resolver.resolve_box(LOCAL_BOX, [parks, roads], VIEWPORT))
        assert result.outcome is QueryOutcome.NO_HIT
        assert result.features == ()
        assert result.fit is None
        assert result.message is None
        assert not result.is_error

    @pytest.mark.unit
    def test_same_id_from_two_layers_is_not_merged(self, resolver, server, parks, roads):
        shared = collection(feature("shared.1", square(10, 10, 10)))
        server.on("GetFeatureInfo", "city:parks", shared)
        server.on("GetFeatureInfo", "city:roads", shared)

        result = run(lambda: resolver.resolve_box(LOCAL_BOX, [parks, roads], VIEWPORT))

        assert [(f.id, f.layer) for f in result.features] == [
            ("shared.1", "city:parks"),
            ("shared.1", "city:roads"),
        ]

    @pytest.mark.unit
    def test_failing_layer_is_skipped(self, resolver, server, parks, roads):
        server.on("GetFeatureInfo", "city:parks", httpx.Response(500, text="boom"))
        server.on("GetFeatureInfo", "city:roads", collection(feature("roads.1", square(10, 10, 10))))

        result = run(lambda: resolver.resolve_box(LOCAL_BOX, [parks, roads], VIEWPORT))

        assert result.outcome is QueryOutcome.RESOLVED
        assert [f.id for f in result.features] == ["roads.1"]

    @pytest.mark.unit
    def test_fit_covers_all_selected_features(self, resolver, server, parks, roads):
        server.on("GetFeatureInfo", "city:parks", collection(feature("parks.1", square(100, 100, 10))))
        server.on("GetFeatureInfo", "city:roads", collection(feature("roads.1", square(300, 300, 10))))

        result = run(lambda: resolver.resolve_box(LOCAL_BOX, [parks, roads], VIEWPORT))

        assert result.fit.extent.as_bbox() == [100, 100, 310, 310]
        assert result.fit.padding == (50, 50, 50, 50)
        assert result.fit.max_zoom == 19


class TestWorldCopies:

    @pytest.mark.unit
    def test_seam_box_is_queried_once_per_world_and_layer(self, resolver, server, parks, roads):
        run(lambda: resolver.resolve_box(SEAM_BOX, [parks, roads], VIEWPORT))

        assert server.layers_queried() == ["city:parks", "city:roads", "city:parks", "city:roads"]
        east, _, wrapped, _ = [bbox_of(p) for p in server.params("GetFeatureInfo")]
        assert east == pytest.approx([19_000_000, -500, HALF_WORLD, 500])
        assert wrapped == pytest.approx([-HALF_WORLD, -500, 21_000_000 - WORLD, 500])

    @pytest.mark.unit
    def test_wrapped_feature_is_selected_from_its_own_world(self, resolver, server, parks):
        server.on("GetFeatureInfo", "city:parks",
                  collection(feature("parks.9", square(-20_000_000, 0, 1000))))

        result = run(lambda: resolver.resolve_box(SEAM_BOX, [parks], VIEWPORT))

        # Answered for both copies, kept only where it lies inside the queried copy
        assert len(server.requests) == 2
        assert [f.id for f in result.features] == ["parks.9"]


class TestSupersession:

    @pytest.mark.unit
    def test_newer_interaction_stops_remaining_requests(self, resolver, server, state, parks, roads):
        def answer(params):
            state.begin_interaction()
            return collection(feature("parks.1", square(10, 10, 10)))

        server.on("GetFeatureInfo", "city:parks", answer)
        token = resolver.begin_box()

        result = run(lambda: resolver.resolve_box(LOCAL_BOX, [parks, roads], VIEWPORT, token))

        assert result.outcome is QueryOutcome.SUPERSEDED
        assert server.layers_queried() == ["city:parks"]
        assert state.selection.is_empty
