# ============================================================================
# CLAUDE CONTEXT - FEATURE QUERY CONFIGURATION
# ============================================================================
# STATUS: Engine Configuration - query tunables
# PURPOSE: Self-contained configuration for the feature query engine
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: QueryEngineConfig, get_engine_config, reset_engine_config
# INTERFACES: Pydantic BaseModel
# DEPENDENCIES: pydantic, os
# SOURCE: Environment variables (independent of the server credentials config)
# PATTERNS: Settings Pattern, Singleton via cached function
# ENTRY_POINTS: from feature_query.config import get_engine_config
# ============================================================================

"""
Feature Query Engine Configuration

Environment Variables (all optional):
    - MAP_CRS: Working projection of the map view (default: EPSG:3857)
    - OWS_REQUEST_TIMEOUT: Per-request timeout in seconds (default: 15)
    - POINT_FEATURE_COUNT: Features requested per layer on click (default: 1)
    - POINT_PIXEL_BUFFER: Pixel tolerance around a click (default: 8)
    - BOX_FEATURE_COUNT: Features requested per layer per box copy (default: 50)
    - HIGHLIGHT_BUFFER_FACTOR: Click buffer for highlight, in resolutions (default: 10)
    - FIT_PADDING_PX: Padding when fitting the view to a selection (default: 50)
    - FIT_DURATION_MS: Fit animation duration (default: 1000)
    - FIT_MAX_ZOOM: Zoom cap when fitting (default: 19)
    - SUGGEST_DEBOUNCE_MS: Quiet time before a suggestion request (default: 300)
    - SUGGEST_MAX_FEATURES: Features scanned for suggestions (default: 100)
    - PREFERRED_LAYER_CRS: CRS picked for a layer when it advertises it (default: unset)
    - EXTRA_PROJECTIONS: "CODE=proj string;CODE=proj string" registered at startup
"""

import os
from typing import Dict, Optional
from pydantic import BaseModel, Field, field_validator


def _parse_projection_definitions(raw: str) -> Dict[str, str]:
    """Parse "EPSG:1=+proj=...;EPSG:2=+proj=..." into a dict."""
    definitions: Dict[str, str] = {}
    for chunk in raw.split(";"):
        if "=" not in chunk:
            continue
        code, definition = chunk.split("=", 1)
        if code.strip() and definition.strip():
            definitions[code.strip().upper()] = definition.strip()
    return definitions


class QueryEngineConfig(BaseModel):
    """
    Tunables for the point, box and attribute search resolvers.
    """

    # Map view
    map_crs: str = Field(
        default_factory=lambda: os.getenv("MAP_CRS", "EPSG:3857"),
        description="Working projection of the map view"
    )

    # Transport
    request_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("OWS_REQUEST_TIMEOUT", "15")),
        gt=0,
        le=300,
        description="Per-request timeout; expiry counts as a per-layer failure"
    )

    # Point query
    point_feature_count: int = Field(
        default_factory=lambda: int(os.getenv("POINT_FEATURE_COUNT", "1")),
        ge=1,
        description="FEATURE_COUNT for click identification"
    )
    point_pixel_buffer: int = Field(
        default_factory=lambda: int(os.getenv("POINT_PIXEL_BUFFER", "8")),
        ge=0,
        description="BUFFER (pixels) tolerated around a click"
    )
    highlight_buffer_factor: float = Field(
        default_factory=lambda: float(os.getenv("HIGHLIGHT_BUFFER_FACTOR", "10")),
        ge=0,
        description="Click buffer for the highlight copy, in view resolutions"
    )

    # Box query
    box_feature_count: int = Field(
        default_factory=lambda: int(os.getenv("BOX_FEATURE_COUNT", "50")),
        ge=1,
        description="FEATURE_COUNT for each box sub-extent request"
    )
    box_pixel_buffer: int = Field(
        default_factory=lambda: int(os.getenv("BOX_PIXEL_BUFFER", "0")),
        ge=0,
        description="BUFFER (pixels) for box requests"
    )

    # View fitting
    fit_padding_px: int = Field(
        default_factory=lambda: int(os.getenv("FIT_PADDING_PX", "50")),
        ge=0
    )
    fit_duration_ms: int = Field(
        default_factory=lambda: int(os.getenv("FIT_DURATION_MS", "1000")),
        ge=0
    )
    fit_max_zoom: int = Field(
        default_factory=lambda: int(os.getenv("FIT_MAX_ZOOM", "19")),
        ge=0,
        le=30
    )

    # Attribute search
    search_output_crs: Optional[str] = Field(
        default_factory=lambda: os.getenv("SEARCH_OUTPUT_CRS"),
        description="srsName for search results (defaults to map_crs)"
    )
    suggest_debounce_ms: int = Field(
        default_factory=lambda: int(os.getenv("SUGGEST_DEBOUNCE_MS", "300")),
        ge=0
    )
    suggest_max_features: int = Field(
        default_factory=lambda: int(os.getenv("SUGGEST_MAX_FEATURES", "100")),
        ge=1
    )

    # Layer registry
    preferred_layer_crs: Optional[str] = Field(
        default_factory=lambda: os.getenv("PREFERRED_LAYER_CRS") or None,
        description="CRS chosen for a layer when it is among the advertised codes"
    )
    extra_projections: Dict[str, str] = Field(
        default_factory=lambda: _parse_projection_definitions(os.getenv("EXTRA_PROJECTIONS", "")),
        description="Additional projection definitions registered at startup"
    )

    @field_validator("map_crs", "preferred_layer_crs", "search_output_crs")
    @classmethod
    def normalize_code(cls, v: Optional[str]) -> Optional[str]:
        """CRS codes are compared case-insensitively; store them upper-cased."""
        return v.strip().upper() if v else v

    @property
    def output_crs(self) -> str:
        """srsName used for attribute search results."""
        return self.search_output_crs or self.map_crs


# Singleton instance cache
_config_cache: Optional[QueryEngineConfig] = None


def get_engine_config() -> QueryEngineConfig:
    """
    Get singleton engine configuration instance.

    Returns:
        Cached configuration instance
    """
    global _config_cache

    if _config_cache is None:
        _config_cache = QueryEngineConfig()

    return _config_cache


def reset_engine_config() -> None:
    """Drop the cached configuration (environment changed, tests)."""
    global _config_cache
    _config_cache = None
