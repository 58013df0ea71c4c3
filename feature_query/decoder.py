# ============================================================================
# CLAUDE CONTEXT - FEATURE DECODER
# ============================================================================
# STATUS: Engine Module - GeoJSON to typed features
# PURPOSE: Convert feature collections from GetFeatureInfo / GetFeature into Feature records
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: FeatureDecoder, detect_collection_crs
# DEPENDENCIES: feature_query.projection (pyproj, shapely), feature_query.models
# VALIDATION: Raises DecodeError for anything that is not a feature collection
# ============================================================================

"""
Feature Decoder

GeoServer answers both GetFeatureInfo (INFO_FORMAT=application/json) and WFS
GetFeature (outputFormat=application/json) with a GeoJSON FeatureCollection.
The collection may name its reference system in a ``crs`` member::

    {"type": "FeatureCollection",
     "crs": {"type": "name", "properties": {"name": "urn:ogc:def:crs:EPSG::3857"}},
     "features": [...]}

That member wins over the reference system the request was made in. Geometry
is reprojected to the target system when the two differ.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from shapely.errors import ShapelyError

from .errors import DecodeError
from .models import Feature, Geometry
from .projection import (
    ProjectionRegistry,
    extent_of_geometry,
    get_projection_registry,
    normalize_crs_code,
    transform_geometry,
)

logger = logging.getLogger(__name__)


def detect_collection_crs(payload: Mapping[str, Any]) -> Optional[str]:
    """Reference system named by a GeoJSON ``crs`` member, if any."""
    crs = payload.get("crs")
    if not isinstance(crs, dict):
        return None
    name = (crs.get("properties") or {}).get("name")
    return normalize_crs_code(name) if name else None


class FeatureDecoder:
    """
    Decodes raw JSON feature collections into immutable Feature records.

    Usage:
        decoder = FeatureDecoder()
        features = decoder.decode(response.data, "city:parks",
                                  source_crs="EPSG:31982", target_crs="EPSG:3857")
    """

    def __init__(self, registry: Optional[ProjectionRegistry] = None):
        self._registry = registry

    @property
    def registry(self) -> ProjectionRegistry:
        if self._registry is None:
            self._registry = get_projection_registry()
        return self._registry

    def decode(
        self,
        payload: Any,
        layer_key: Optional[str] = None,
        source_crs: Optional[str] = None,
        target_crs: Optional[str] = None
    ) -> List[Feature]:
        """
        Decode a FeatureCollection (or a single Feature).

        Args:
            payload: Parsed JSON body
            layer_key: workspace:name stamped on every feature
            source_crs: CRS the request was made in (overridden by a crs member)
            target_crs: CRS the features are returned in (default: source)

        Returns:
            Features in response order

        Raises:
            DecodeError: If the payload is not a feature collection
        """
        if not isinstance(payload, dict):
            raise DecodeError(f"Expected a JSON object, got {type(payload).__name__}")

        kind = payload.get("type")
        if kind == "Feature":
            raw_features = [payload]
        elif kind == "FeatureCollection":
            raw_features = payload.get("features")
            if raw_features is None:
                raw_features = []
            if not isinstance(raw_features, list):
                raise DecodeError("FeatureCollection 'features' member is not a list")
        else:
            raise DecodeError(f"Unexpected GeoJSON type: {kind!r}")

        source = detect_collection_crs(payload) or source_crs or self.registry.default_crs
        source, _ = self.registry.resolve(source)
        target, _ = self.registry.resolve(target_crs or source)

        features = []
        for index, raw in enumerate(raw_features):
            features.append(self._decode_feature(raw, index, layer_key, source, target))

        logger.debug(f"Decoded {len(features)} features for {layer_key} ({source} -> {target})")
        return features

    def _decode_feature(
        self,
        raw: Any,
        index: int,
        layer_key: Optional[str],
        source: str,
        target: str
    ) -> Feature:
        if not isinstance(raw, dict):
            raise DecodeError(f"Feature {index} is not a JSON object")

        properties = raw.get("properties") or {}
        if not isinstance(properties, dict):
            raise DecodeError(f"Feature {index} properties are not an object")

        feature_id = raw.get("id")
        if feature_id is None:
            feature_id = f"{layer_key or 'feature'}.{index}"

        return Feature(
            id=str(feature_id),
            layer=layer_key,
            geometry=self._decode_geometry(raw.get("geometry"), index, source, target),
            properties=properties,
        )

    def _decode_geometry(
        self,
        raw: Any,
        index: int,
        source: str,
        target: str
    ) -> Optional[Geometry]:
        if raw is None:
            return None
        if not isinstance(raw, dict) or not raw.get("type"):
            raise DecodeError(f"Feature {index} geometry is malformed")

        geometry: Dict[str, Any] = raw
        try:
            if source != target:
                geometry = transform_geometry(raw, source, target, registry=self.registry)
            extent_of_geometry(geometry, target)
        except (ShapelyError, ValueError, TypeError, KeyError, IndexError) as e:
            raise DecodeError(f"Feature {index} geometry is invalid: {e}")

        return Geometry(
            type=geometry["type"],
            coordinates=geometry.get("coordinates"),
            geometries=geometry.get("geometries"),
            reference_system=target,
        )
