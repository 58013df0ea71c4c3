# ============================================================================
# CLAUDE CONTEXT - ERROR TAXONOMY
# ============================================================================
# STATUS: Engine Leaf Module - exception types
# PURPOSE: Typed failures raised by the client, decoder and search resolver
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: FeatureQueryError, TransportError, DecodeError, SchemaError,
#          RasterUnsupported, InvalidSearchInput
# DEPENDENCIES: None
# ============================================================================

"""
Error taxonomy for the feature query engine.

Every error carries a short ``user_message`` suitable for display. The
exception text itself (``str(error)``) is diagnostic and goes to logs only.
"""

from typing import List, Optional


class FeatureQueryError(Exception):
    """Base class for engine errors."""

    user_message = "Something went wrong while querying the map server."

    def __init__(self, detail: str, user_message: Optional[str] = None):
        super().__init__(detail)
        if user_message:
            self.user_message = user_message


class TransportError(FeatureQueryError):
    """Network failure, timeout or HTTP error status."""

    user_message = "The map server could not be reached."

    def __init__(self, detail: str, status_code: Optional[int] = None, user_message: Optional[str] = None):
        super().__init__(detail, user_message)
        self.status_code = status_code


class DecodeError(FeatureQueryError):
    """Response body is not the expected JSON document."""

    user_message = "The map server returned an unreadable response."


class SchemaError(FeatureQueryError):
    """Schema-description response is missing or invalid."""

    user_message = "Could not load the fields of this layer."


class RasterUnsupported(FeatureQueryError):
    """Attribute search was attempted on a layer classified as raster."""

    user_message = "This layer is a raster layer and cannot be searched by attribute."

    def __init__(self, layer_key: str, evidence: List[str]):
        super().__init__(f"Layer {layer_key} classified as raster: {', '.join(evidence)}")
        self.layer_key = layer_key
        self.evidence = evidence


class InvalidSearchInput(FeatureQueryError):
    """Search form is incomplete or a value is not a valid literal."""

    user_message = "Please fill in all search fields."
