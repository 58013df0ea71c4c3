# ============================================================================
# CLAUDE CONTEXT - FEATURE QUERY ENGINE MODULE
# ============================================================================
# STATUS: Standalone Module - spatial feature query & selection engine
# PURPOSE: Turn clicks, drag boxes and attribute searches into WMS/WFS requests and selections
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: QueryEngine, LayerRegistry, SelectionState, resolvers, models, errors
# DEPENDENCIES: httpx, pydantic, pyproj, shapely
# SOURCE: Environment variables for server URL, credentials and tunables
# PATTERNS: Facade, Resolver per interaction, immutable selection snapshots
# ENTRY_POINTS: from feature_query import QueryEngine
# ============================================================================

"""
Spatial Feature Query & Selection Engine

Architecture:
    feature_query/
    ├── config.py       # Engine tunables (env-backed)
    ├── errors.py       # Error taxonomy with user messages
    ├── projection.py   # CRS registry, extent math, world-copy splitting
    ├── requests.py     # WMS/WFS request parameters per layer
    ├── models.py       # Layer, Feature, Selection, QueryResult
    ├── registry.py     # Capabilities-derived layer catalog
    ├── decoder.py      # GeoJSON -> Feature
    ├── selection.py    # SelectionState (tokens, snapshots, listeners)
    ├── base.py         # Shared per-layer fetch for resolvers
    ├── point_query.py  # Click identification (first hit wins)
    ├── box_query.py    # Drag-box selection across world copies
    ├── filters.py      # CQL predicate grammar and escaping
    ├── search.py       # Attribute search, schema, suggestions
    └── service.py      # QueryEngine facade
"""

from .box_query import BoxQueryResolver
from .config import QueryEngineConfig, get_engine_config
from .decoder import FeatureDecoder
from .errors import (
    DecodeError,
    FeatureQueryError,
    InvalidSearchInput,
    RasterUnsupported,
    SchemaError,
    TransportError,
)
from .models import (
    Feature,
    Geometry,
    Layer,
    LayerFieldSchema,
    LayerSchema,
    QueryOutcome,
    QueryResult,
    SearchCriteria,
    Selection,
    ViewFit,
)
from .point_query import PointQueryResolver
from .projection import Extent, ProjectionRegistry, get_projection_registry
from .registry import LayerRegistry
from .search import AttributeSearchResolver, RasterClassification, classify_raster
from .selection import SelectionState
from .service import QueryEngine

__version__ = "1.0.0"
__all__ = [
    "QueryEngine",
    "QueryEngineConfig",
    "get_engine_config",
    "LayerRegistry",
    "SelectionState",
    "FeatureDecoder",
    "PointQueryResolver",
    "BoxQueryResolver",
    "AttributeSearchResolver",
    "RasterClassification",
    "classify_raster",
    "Extent",
    "ProjectionRegistry",
    "get_projection_registry",
    "Feature",
    "Geometry",
    "Layer",
    "LayerFieldSchema",
    "LayerSchema",
    "QueryOutcome",
    "QueryResult",
    "SearchCriteria",
    "Selection",
    "ViewFit",
    "FeatureQueryError",
    "TransportError",
    "DecodeError",
    "SchemaError",
    "RasterUnsupported",
    "InvalidSearchInput",
]
