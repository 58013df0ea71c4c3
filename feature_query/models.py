# ============================================================================
# CLAUDE CONTEXT - FEATURE QUERY MODELS
# ============================================================================
# STATUS: Engine Models - Pydantic models and result types
# PURPOSE: Typed layers, features, search criteria, selections and query results
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: Layer, Geometry, Feature, SearchCriteria, LayerFieldSchema, LayerSchema,
#          Selection, ViewFit, QueryOutcome, QueryResult, fit_to_features
# INTERFACES: Pydantic BaseModel, dataclasses
# DEPENDENCIES: pydantic, typing
# VALIDATION: Pydantic v2 validation
# PATTERNS: Data Transfer Objects (DTOs), immutable snapshots
# ENTRY_POINTS: from feature_query.models import Feature, Selection
# ============================================================================

"""
Feature Query Models

Features, selections and search criteria are frozen: once decoded or
committed they are never mutated, only replaced. ``Layer.visible`` is the one
mutable field in the data model and is toggled through the registry.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .projection import DEFAULT_MAP_CRS, Extent, extent_of_geometry, union_extent
from .requests import LayerRequestBuilder

# Property keys holding the raw geometry; hidden from displayed attributes
GEOMETRY_PROPERTY_NAMES = frozenset({"geometry", "geom"})

Operator = Literal["=", ">", "<", ">=", "<=", "<>"]
FieldType = Literal["string", "number"]


class Layer(BaseModel):
    """
    A queryable layer from the capabilities-derived catalog.

    Identity is (workspace, name); ``visible`` is toggled by the registry.
    """
    model_config = ConfigDict(validate_assignment=True)

    name: str = Field(description="Layer name without workspace prefix")
    workspace: str = Field(description="Workspace (namespace) prefix")
    title: str = Field(description="Human-readable title")
    server_url: str = Field(description="Server base URL the layer is served from")
    reference_system: str = Field(default=DEFAULT_MAP_CRS, description="CRS chosen for the layer")
    advertised_crs: Tuple[str, ...] = Field(default=(), description="All CRS codes the layer advertises")
    keywords: Tuple[str, ...] = Field(default=(), description="Capability keywords")
    styles: Tuple[str, ...] = Field(default=(), description="Capability style names")
    visible: bool = False

    @property
    def key(self) -> Tuple[str, str]:
        return (self.workspace, self.name)

    @property
    def type_name(self) -> str:
        """Qualified name used in LAYERS / typeName parameters."""
        return f"{self.workspace}:{self.name}"

    @property
    def display_name(self) -> str:
        return self.title or self.name

    @property
    def request_builder(self) -> LayerRequestBuilder:
        return LayerRequestBuilder(self.server_url, self.type_name)


class Geometry(BaseModel):
    """GeoJSON geometry tagged with the reference system of its coordinates."""
    model_config = ConfigDict(frozen=True)

    type: str
    coordinates: Any = None
    geometries: Optional[List[Dict[str, Any]]] = None
    reference_system: str = DEFAULT_MAP_CRS

    def to_geojson(self) -> Dict[str, Any]:
        if self.type == "GeometryCollection":
            return {"type": self.type, "geometries": self.geometries or []}
        return {"type": self.type, "coordinates": self.coordinates}

    @property
    def extent(self) -> Optional[Extent]:
        return extent_of_geometry(self.to_geojson(), self.reference_system)


class Feature(BaseModel):
    """
    A decoded feature. Immutable once decoded.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    layer: Optional[str] = Field(default=None, description="workspace:name of the source layer")
    geometry: Optional[Geometry] = None
    properties: Dict[str, Any] = Field(default_factory=dict)

    @property
    def display_properties(self) -> Dict[str, Any]:
        """Attributes for detail panels, without the raw geometry keys."""
        return {k: v for k, v in self.properties.items() if k not in GEOMETRY_PROPERTY_NAMES}

    @property
    def extent(self) -> Optional[Extent]:
        return self.geometry.extent if self.geometry else None


class SearchCriteria(BaseModel):
    """The single predicate behind an attribute search selection."""
    model_config = ConfigDict(frozen=True)

    layer: str = Field(description="Layer title (or name) shown in summaries")
    field: str
    operator: Operator = "="
    value: str
    layer_key: Optional[str] = Field(default=None, description="workspace:name of the searched layer")


class LayerFieldSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: FieldType


class LayerSchema(BaseModel):
    """Searchable fields of a layer plus what was learned about its geometry."""
    model_config = ConfigDict(frozen=True)

    layer_key: str
    fields: Tuple[LayerFieldSchema, ...] = ()
    geometry_property: Optional[str] = None
    geometry_type: Optional[str] = None

    @property
    def is_point_layer(self) -> bool:
        return bool(self.geometry_type and "Point" in self.geometry_type)

    def get_field(self, name: str) -> Optional[LayerFieldSchema]:
        for f in self.fields:
            if f.name == name:
                return f
        return None


class Selection(BaseModel):
    """
    Consistent snapshot of the selected features and the criteria behind them.
    """
    model_config = ConfigDict(frozen=True)

    features: Tuple[Feature, ...] = ()
    criteria: Optional[SearchCriteria] = None
    revision: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.features

    @property
    def extent(self) -> Optional[Extent]:
        return union_extent(e for e in (f.extent for f in self.features) if e is not None)


class ViewFit(BaseModel):
    """Request for the presentation layer to fit the view to an extent."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    extent: Extent
    padding: Tuple[int, int, int, int] = (50, 50, 50, 50)
    duration_ms: int = 1000
    max_zoom: Optional[int] = 19


def fit_to_features(features: Sequence[Feature], padding: int = 50,
                    duration_ms: int = 1000, max_zoom: Optional[int] = 19) -> Optional[ViewFit]:
    """ViewFit covering the features, or None when none has a geometry."""
    extent = union_extent(e for e in (f.extent for f in features) if e is not None)
    if extent is None:
        return None
    return ViewFit(extent=extent, padding=(padding,) * 4, duration_ms=duration_ms, max_zoom=max_zoom)


class QueryOutcome(str, Enum):
    RESOLVED = "resolved"              # One or more features selected
    NO_HIT = "no_hit"                  # Point/box query found nothing
    NO_RESULTS = "no_results"          # Attribute search matched nothing
    ABORTED = "aborted"                # Interaction could not start (no resolution)
    SUPERSEDED = "superseded"          # A newer interaction committed first
    RASTER_BLOCKED = "raster_blocked"
    SCHEMA_ERROR = "schema_error"
    SEARCH_ERROR = "search_error"
    INVALID_INPUT = "invalid_input"
    CLEARED = "cleared"


def _no_zoom(feature: Feature) -> Optional[ViewFit]:
    return None


@dataclass(frozen=True)
class QueryResult:
    """
    What a resolver hands back to the caller.

    ``zoom_to`` is an explicit function the caller invokes to obtain the view
    fit for a single feature of the selection.
    """
    selection: Selection
    outcome: QueryOutcome
    message: Optional[str] = None
    highlight: Optional[Feature] = None
    fit: Optional[ViewFit] = None
    zoom_to: Callable[[Feature], Optional[ViewFit]] = field(default=_no_zoom, compare=False)

    @property
    def features(self) -> Tuple[Feature, ...]:
        return self.selection.features

    @property
    def is_error(self) -> bool:
        return self.outcome in (
            QueryOutcome.RASTER_BLOCKED,
            QueryOutcome.SCHEMA_ERROR,
            QueryOutcome.SEARCH_ERROR,
            QueryOutcome.INVALID_INPUT,
        )
