"""Tests for feature_query.decoder."""

import pytest

from feature_query.decoder import FeatureDecoder, detect_collection_crs
from feature_query.errors import DecodeError

from conftest import collection, feature, point, square


@pytest.fixture
def decoder(projections) -> FeatureDecoder:
    return FeatureDecoder(projections)


class TestDecode:

    @pytest.mark.unit
    def test_features_keep_order_ids_and_properties(self, decoder):
        payload = collection(
            feature("parks.1", square(0, 0, 10), name="Central", geometry="ignored"),
            feature("parks.2", point(5, 5), name="Corner"),
        )
        features = decoder.decode(payload, "city:parks", source_crs="EPSG:3857")

        assert [f.id for f in features] == ["parks.1", "parks.2"]
        assert all(f.layer == "city:parks" for f in features)
        assert features[0].properties["geometry"] == "ignored"
        assert features[0].display_properties == {"name": "Central"}
        assert features[0].extent.as_bbox() == [0, 0, 10, 10]

    @pytest.mark.unit
    def test_missing_ids_are_generated(self, decoder):
        payload = collection(feature(None, point(1, 1)), feature(None, point(2, 2)))
        features = decoder.decode(payload, "city:trees")
        assert [f.id for f in features] == ["city:trees.0", "city:trees.1"]

    @pytest.mark.unit
    def test_single_feature_payload(self, decoder):
        features = decoder.decode(feature("a.1", point(1, 2), kind="x"), "city:a")
        assert len(features) == 1
        assert features[0].geometry.coordinates == [1, 2]

    @pytest.mark.unit
    def test_null_features_member_is_empty(self, decoder):
        assert decoder.decode({"type": "FeatureCollection", "features": None}) == []

    @pytest.mark.unit
    def test_null_geometry_is_kept(self, decoder):
        features = decoder.decode(collection(feature("x.1", None, name="no shape")))
        assert features[0].geometry is None
        assert features[0].extent is None


class TestReprojection:

    @pytest.mark.unit
    def test_detect_collection_crs(self):
        assert detect_collection_crs(collection()) == "EPSG:3857"
        assert detect_collection_crs(collection(crs=None)) is None

    @pytest.mark.unit
    def test_crs_member_overrides_request_crs(self, decoder):
        payload = collection(feature("p.1", point(-51.0, 0.0)), crs="urn:ogc:def:crs:EPSG::4326")
        features = decoder.decode(payload, "city:p", source_crs="EPSG:3857", target_crs="EPSG:3857")

        geometry = features[0].geometry
        assert geometry.reference_system == "EPSG:3857"
        assert geometry.coordinates[0] == pytest.approx(-5677294.0, abs=1.0)
        assert geometry.coordinates[1] == pytest.approx(0.0, abs=1e-6)

    @pytest.mark.unit
    def test_same_crs_leaves_coordinates_untouched(self, decoder):
        payload = collection(feature("p.1", point(123.5, 456.25)))
        features = decoder.decode(payload, source_crs="EPSG:3857", target_crs="EPSG:3857")
        assert features[0].geometry.coordinates == [123.5, 456.25]


class TestMalformed:

    @pytest.mark.unit
    @pytest.mark.parametrize("payload", [
        [],
        "not json at all",
        {"type": "Topology"},
        {"type": "FeatureCollection", "features": {"a": 1}},
        {"type": "FeatureCollection", "features": ["oops"]},
        {"type": "FeatureCollection", "features": [{"type": "Feature", "properties": [1, 2]}]},
        {"type": "FeatureCollection", "features": [{"type": "Feature", "geometry": {"coordinates": [1, 2]}}]},
    ])
    def test_decode_error(self, decoder, payload):
        with pytest.raises(DecodeError):
            decoder.decode(payload, "city:bad")

    @pytest.mark.unit
    def test_decode_error_has_user_message(self, decoder):
        with pytest.raises(DecodeError) as exc_info:
            decoder.decode(["nope"])
        assert exc_info.value.user_message
