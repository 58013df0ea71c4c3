# ============================================================================
# CLAUDE CONTEXT - PROJECTION & EXTENT UTILITIES
# ============================================================================
# STATUS: Engine Leaf Module - coordinate systems and extent math
# PURPOSE: CRS resolution, coordinate/extent transforms, world-wrap splitting
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: Extent, ProjectionRegistry, get_projection_registry, to_map_crs,
#          transform_extent, transform_geometry, world_width, extents_intersect,
#          buffer_extent, union_extent, extent_of_geometry, split_world_copies
# DEPENDENCIES: pyproj, shapely
# PATTERNS: Registry with fallback, cached transformers
# ============================================================================

"""
Projection & Extent Utilities

All coordinates are handled in x/y (easting/northing, lon/lat) order;
transformers are created with ``always_xy=True``.

A code the registry cannot resolve falls back to the map's working
projection with a warning. Resolvers keep going with the fallback rather
than blocking the interaction.
"""

import logging
import math
import re
from dataclasses import dataclass, replace
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError
from shapely.geometry import mapping, shape
from shapely.ops import transform as shapely_transform

logger = logging.getLogger(__name__)

DEFAULT_MAP_CRS = "EPSG:3857"

# Half the circumference of the Web Mercator sphere
_MERCATOR_HALF_WORLD = 20037508.342789244

# Registered at startup in addition to the codes pyproj resolves by itself.
# SIRGAS 2000 / UTM zone 22S covers the municipal layers this engine was
# first deployed against.
BUILTIN_DEFINITIONS: Dict[str, str] = {
    "EPSG:31982": "+proj=utm +zone=22 +south +ellps=GRS80 +towgs84=0,0,0,0,0,0,0 +units=m +no_defs",
}

KNOWN_PROJECTION_EXTENTS: Dict[str, Tuple[float, float, float, float]] = {
    "EPSG:3857": (-_MERCATOR_HALF_WORLD, -_MERCATOR_HALF_WORLD, _MERCATOR_HALF_WORLD, _MERCATOR_HALF_WORLD),
    "EPSG:900913": (-_MERCATOR_HALF_WORLD, -_MERCATOR_HALF_WORLD, _MERCATOR_HALF_WORLD, _MERCATOR_HALF_WORLD),
    "EPSG:4326": (-180.0, -90.0, 180.0, 90.0),
    "CRS:84": (-180.0, -90.0, 180.0, 90.0),
}

_URN_PATTERN = re.compile(r"^urn:ogc:def:crs:(?P<auth>[A-Za-z]+):[^:]*:(?P<code>[\w.]+)$")
_URL_PATTERN = re.compile(r"^https?://www\.opengis\.net/def/crs/(?P<auth>[A-Za-z]+)/[^/]+/(?P<code>[\w.]+)$")


def normalize_crs_code(code: str) -> str:
    """
    Normalize URN / URL / lowercase CRS identifiers to "AUTH:CODE".

    Examples:
        "urn:ogc:def:crs:EPSG::3857" -> "EPSG:3857"
        "http://www.opengis.net/def/crs/EPSG/0/4326" -> "EPSG:4326"
        "epsg:31982" -> "EPSG:31982"
    """
    code = (code or "").strip()
    for pattern in (_URN_PATTERN, _URL_PATTERN):
        match = pattern.match(code)
        if match:
            auth = match.group("auth").upper()
            if auth == "OGC" and match.group("code").upper() == "CRS84":
                return "CRS:84"
            return f"{auth}:{match.group('code')}"
    return code.upper()


# ============================================================================
# EXTENT
# ============================================================================

@dataclass(frozen=True)
class Extent:
    """Axis-aligned bounding box in a stated reference system."""
    min_x: float
    min_y: float
    max_x: float
    max_y: float
    crs: str = DEFAULT_MAP_CRS

    @classmethod
    def from_bbox(cls, bbox: Sequence[float], crs: str = DEFAULT_MAP_CRS) -> "Extent":
        """Build from [minX, minY, maxX, maxY], normalizing swapped corners."""
        if len(bbox) != 4:
            raise ValueError(f"Extent needs 4 values, got {len(bbox)}")
        x1, y1, x2, y2 = (float(v) for v in bbox)
        return cls(min(x1, x2), min(y1, y2), max(x1, x2), max(y1, y2), normalize_crs_code(crs))

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2)

    def as_bbox(self) -> List[float]:
        return [self.min_x, self.min_y, self.max_x, self.max_y]


# ============================================================================
# PROJECTION REGISTRY
# ============================================================================

class ProjectionRegistry:
    """
    Known reference systems plus cached transformers between them.

    Codes registered explicitly take precedence over pyproj's database.
    """

    def __init__(self, default_crs: str = DEFAULT_MAP_CRS):
        self.default_crs = normalize_crs_code(default_crs)
        self._crs: Dict[str, CRS] = {}
        self._unknown: set = set()
        self._transformers: Dict[Tuple[str, str], Transformer] = {}
        self._lock = Lock()

    @classmethod
    def from_config(cls, config) -> "ProjectionRegistry":
        """
        Registry for one engine configuration.

        Registers the built-in definitions plus ``config.extra_projections``;
        unknown codes fall back to ``config.map_crs``. A definition that does
        not parse is logged and skipped.
        """
        registry = cls(default_crs=config.map_crs)
        definitions = {**BUILTIN_DEFINITIONS, **config.extra_projections}
        for code, definition in definitions.items():
            try:
                registry.register(code, definition)
            except CRSError as e:
                logger.error(f"Could not register projection {code}: {e}")
        return registry

    def register(self, code: str, definition: Any) -> CRS:
        """
        Register a reference system.

        Args:
            code: Identifier such as "EPSG:31982"
            definition: proj string, WKT, EPSG integer or pyproj CRS

        Raises:
            CRSError: If the definition cannot be parsed
        """
        code = normalize_crs_code(code)
        crs = CRS.from_user_input(definition)
        with self._lock:
            self._crs[code] = crs
            self._unknown.discard(code)
            self._transformers = {k: v for k, v in self._transformers.items() if code not in k}
        logger.info(f"Registered projection {code}")
        return crs

    def is_known(self, code: str) -> bool:
        return self._lookup(normalize_crs_code(code)) is not None

    def _lookup(self, code: str) -> Optional[CRS]:
        if code in self._crs:
            return self._crs[code]
        if code in self._unknown:
            return None
        try:
            crs = CRS.from_user_input(code)
        except CRSError:
            with self._lock:
                self._unknown.add(code)
            return None
        with self._lock:
            self._crs[code] = crs
        return crs

    def resolve(self, code: Optional[str]) -> Tuple[str, CRS]:
        """
        Resolve a code to (normalized code, CRS), falling back to the default.
        """
        normalized = normalize_crs_code(code) if code else self.default_crs
        crs = self._lookup(normalized)
        if crs is None:
            logger.warning(f"Unknown reference system '{code}', falling back to {self.default_crs}")
            normalized = self.default_crs
            crs = self._lookup(normalized)
            if crs is None:
                raise CRSError(f"Default reference system {self.default_crs} is not resolvable")
        return normalized, crs

    def transformer(self, src: str, dst: str) -> Transformer:
        src_code, src_crs = self.resolve(src)
        dst_code, dst_crs = self.resolve(dst)
        key = (src_code, dst_code)
        cached = self._transformers.get(key)
        if cached is None:
            cached = Transformer.from_crs(src_crs, dst_crs, always_xy=True)
            with self._lock:
                self._transformers[key] = cached
        return cached

    def same_crs(self, a: str, b: str) -> bool:
        return self.resolve(a)[0] == self.resolve(b)[0]

    def projection_extent(self, code: str) -> Optional[Extent]:
        """Valid extent of a projection in its own units, if it can be determined."""
        code, crs = self.resolve(code)
        if code in KNOWN_PROJECTION_EXTENTS:
            return Extent(*KNOWN_PROJECTION_EXTENTS[code], crs=code)
        area = crs.area_of_use
        if area is None:
            return None
        if crs.is_geographic:
            return Extent(area.west, area.south, area.east, area.north, crs=code)
        bounds = self.transformer("EPSG:4326", code).transform_bounds(area.west, area.south, area.east, area.north)
        return Extent(*bounds, crs=code)


_registry: Optional[ProjectionRegistry] = None


def get_projection_registry() -> ProjectionRegistry:
    """
    Process-wide registry with the built-in and configured definitions.
    """
    global _registry

    if _registry is None:
        from .config import get_engine_config

        _registry = ProjectionRegistry.from_config(get_engine_config())

    return _registry


# ============================================================================
# COORDINATE & EXTENT OPERATIONS
# ============================================================================

def to_map_crs(lon_lat: Sequence[float], map_crs: str = DEFAULT_MAP_CRS,
               registry: Optional[ProjectionRegistry] = None) -> Tuple[float, float]:
    """Convert a lon/lat pair to map coordinates."""
    registry = registry or get_projection_registry()
    x, y = registry.transformer("EPSG:4326", map_crs).transform(lon_lat[0], lon_lat[1])
    return (x, y)


def transform_extent(extent: Extent, src: str, dst: str,
                     registry: Optional[ProjectionRegistry] = None) -> Extent:
    """
    Reproject an extent, densifying edges so curved boundaries are enclosed.
    """
    registry = registry or get_projection_registry()
    dst_code, _ = registry.resolve(dst)
    if registry.same_crs(src, dst):
        return replace(extent, crs=dst_code)
    bounds = registry.transformer(src, dst).transform_bounds(
        extent.min_x, extent.min_y, extent.max_x, extent.max_y, densify_pts=21
    )
    return Extent.from_bbox(bounds, crs=dst_code)


def transform_geometry(geometry: Dict[str, Any], src: str, dst: str,
                       registry: Optional[ProjectionRegistry] = None) -> Dict[str, Any]:
    """Reproject a GeoJSON geometry mapping."""
    registry = registry or get_projection_registry()
    if registry.same_crs(src, dst):
        return geometry
    transformer = registry.transformer(src, dst)
    projected = shapely_transform(transformer.transform, shape(geometry))
    return _as_lists(mapping(projected))


def _as_lists(value: Any) -> Any:
    """shapely.mapping() returns tuples; GeoJSON consumers expect lists."""
    if isinstance(value, dict):
        return {k: _as_lists(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_as_lists(v) for v in value]
    return value


def world_width(projection_extent: Extent) -> float:
    return projection_extent.width


def extents_intersect(a: Extent, b: Extent) -> bool:
    """Inclusive intersection test (touching edges intersect)."""
    return (
        a.min_x <= b.max_x and a.max_x >= b.min_x and
        a.min_y <= b.max_y and a.max_y >= b.min_y
    )


def buffer_extent(extent: Extent, value: float) -> Extent:
    return replace(extent, min_x=extent.min_x - value, min_y=extent.min_y - value,
                   max_x=extent.max_x + value, max_y=extent.max_y + value)


def union_extent(extents: Iterable[Extent]) -> Optional[Extent]:
    """Smallest extent containing all inputs, or None for no inputs."""
    result: Optional[Extent] = None
    for extent in extents:
        if result is None:
            result = extent
        else:
            result = Extent(
                min(result.min_x, extent.min_x), min(result.min_y, extent.min_y),
                max(result.max_x, extent.max_x), max(result.max_y, extent.max_y),
                crs=result.crs
            )
    return result


def extent_of_geometry(geometry: Optional[Dict[str, Any]], crs: str = DEFAULT_MAP_CRS) -> Optional[Extent]:
    """Bounds of a GeoJSON geometry, or None if missing or empty."""
    if not geometry or not geometry.get("type"):
        return None
    geom = shape(geometry)
    if geom.is_empty:
        return None
    return Extent(*geom.bounds, crs=normalize_crs_code(crs))


def split_world_copies(box: Extent, projection_extent: Extent) -> List[Tuple[int, Extent]]:
    """
    Split a box that may span several world copies into per-copy sub-extents.

    Each copy is translated back into the projection's canonical world and
    clamped to its x range. A box within one world yields a single entry.

    Returns:
        List of (world index, sub-extent) in increasing world order
    """
    width = world_width(projection_extent)
    if width <= 0:
        return [(0, box)]

    start_world = math.floor((box.min_x - projection_extent.min_x) / width)
    end_world = math.floor((box.max_x - projection_extent.min_x) / width)

    copies = []
    for world in range(start_world, end_world + 1):
        left = max(box.min_x - world * width, projection_extent.min_x)
        right = min(box.max_x - world * width, projection_extent.max_x)
        if right < left:
            continue
        copies.append((world, Extent(left, box.min_y, right, box.max_y, crs=box.crs)))
    return copies
