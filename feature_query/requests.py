# ============================================================================
# CLAUDE CONTEXT - OWS REQUEST BUILDER
# ============================================================================
# STATUS: Engine Module - per-layer WMS/WFS request parameters
# PURPOSE: Build GetFeatureInfo / GetFeature / DescribeFeatureType / GetMap parameters
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: LayerRequestBuilder, OWSRequest, FEATURE_INFO_WINDOW
# DEPENDENCIES: urllib.parse
# PATTERNS: Builder
# ============================================================================

"""
Request shapes for the only OGC operations the engine issues.

WMS requests use version 1.1.1 (SRS, X/Y); WFS requests use 1.0.0 with the
GeoServer vendor parameter CQL_FILTER. Builders return ``OWSRequest`` values
(endpoint + params); the transport client turns them into HTTP calls.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple
from urllib.parse import urlencode

WMS_VERSION = "1.1.1"
WFS_VERSION = "1.0.0"
JSON_FORMAT = "application/json"

# Size of the synthetic map window a point query is answered against; the
# click sits on its center pixel.
FEATURE_INFO_WINDOW = 101


@dataclass(frozen=True)
class OWSRequest:
    """A GET request against one of the server's OWS endpoints."""
    endpoint: str  # "/wms" or "/wfs"
    params: Dict[str, str]
    kind: str  # GetFeatureInfo, GetFeature, DescribeFeatureType, GetMap

    def url(self, server_url: str) -> str:
        return f"{server_url.rstrip('/')}{self.endpoint}?{urlencode(self.params)}"


class LayerRequestBuilder:
    """
    Builds request parameters for a single layer.

    Usage:
        builder = layer.request_builder
        request = builder.point_feature_info((x, y), resolution=4.77, crs="EPSG:3857")
        url = request.url(builder.server_url)
    """

    def __init__(self, server_url: str, type_name: str):
        self.server_url = server_url.rstrip("/")
        self.type_name = type_name

    def _wms_base(self, request: str) -> Dict[str, str]:
        return {
            "SERVICE": "WMS",
            "VERSION": WMS_VERSION,
            "REQUEST": request,
            "LAYERS": self.type_name,
            "STYLES": "",
        }

    def _wfs_base(self, request: str) -> Dict[str, str]:
        return {
            "SERVICE": "WFS",
            "VERSION": WFS_VERSION,
            "REQUEST": request,
            "typeName": self.type_name,
            "outputFormat": JSON_FORMAT,
        }

    # ========================================================================
    # WMS GetFeatureInfo
    # ========================================================================

    def point_feature_info(
        self,
        coordinate: Sequence[float],
        resolution: float,
        crs: str,
        feature_count: int = 1,
        buffer: int = 8
    ) -> OWSRequest:
        """
        Feature info for a click, answered against a 101x101 pixel window.

        Args:
            coordinate: Click position (x, y) in ``crs``
            resolution: Map units per pixel of the current view
            crs: Reference system of the view
            feature_count: FEATURE_COUNT
            buffer: Pixel tolerance around the click
        """
        half = (FEATURE_INFO_WINDOW / 2) * resolution
        x, y = float(coordinate[0]), float(coordinate[1])
        bbox = (x - half, y - half, x + half, y + half)
        center = FEATURE_INFO_WINDOW // 2
        params = self._wms_base("GetFeatureInfo")
        params.update({
            "QUERY_LAYERS": self.type_name,
            "SRS": crs,
            "BBOX": _join(bbox),
            "WIDTH": str(FEATURE_INFO_WINDOW),
            "HEIGHT": str(FEATURE_INFO_WINDOW),
            "X": str(center),
            "Y": str(center),
            "INFO_FORMAT": JSON_FORMAT,
            "FEATURE_COUNT": str(feature_count),
            "BUFFER": str(buffer),
        })
        return OWSRequest("/wms", params, "GetFeatureInfo")

    def box_feature_info(
        self,
        bbox: Sequence[float],
        size: Tuple[int, int],
        crs: str,
        feature_count: int = 50,
        buffer: int = 0
    ) -> OWSRequest:
        """
        Feature info for a box: BBOX is the box itself and WIDTH/HEIGHT the
        viewport size, so the server maps the box onto the real pixel grid.
        """
        width = max(1, int(round(size[0])))
        height = max(1, int(round(size[1])))
        params = self._wms_base("GetFeatureInfo")
        params.update({
            "QUERY_LAYERS": self.type_name,
            "SRS": crs,
            "BBOX": _join(bbox),
            "WIDTH": str(width),
            "HEIGHT": str(height),
            "X": str(width // 2),
            "Y": str(height // 2),
            "INFO_FORMAT": JSON_FORMAT,
            "FEATURE_COUNT": str(feature_count),
            "BUFFER": str(buffer),
        })
        return OWSRequest("/wms", params, "GetFeatureInfo")

    # ========================================================================
    # WMS GetMap (layer thumbnails)
    # ========================================================================

    def preview(self, bbox: Sequence[float], crs: str, size: int = 80) -> OWSRequest:
        params = self._wms_base("GetMap")
        params.update({
            "BBOX": _join(bbox),
            "WIDTH": str(size),
            "HEIGHT": str(size),
            "SRS": crs,
            "FORMAT": "image/png",
        })
        return OWSRequest("/wms", params, "GetMap")

    # ========================================================================
    # WFS
    # ========================================================================

    def describe_feature_type(self) -> OWSRequest:
        return OWSRequest("/wfs", self._wfs_base("DescribeFeatureType"), "DescribeFeatureType")

    def get_feature(
        self,
        cql_filter: Optional[str] = None,
        srs_name: Optional[str] = None,
        property_name: Optional[str] = None,
        max_features: Optional[int] = None
    ) -> OWSRequest:
        params = self._wfs_base("GetFeature")
        if cql_filter:
            params["CQL_FILTER"] = cql_filter
        if srs_name:
            params["srsName"] = srs_name
        if property_name:
            params["propertyName"] = property_name
        if max_features:
            params["maxFeatures"] = str(max_features)
        return OWSRequest("/wfs", params, "GetFeature")


def _join(values: Sequence[float]) -> str:
    return ",".join(repr(float(v)) for v in values)
