# ============================================================================
# CLAUDE CONTEXT - RESOLVER BASE
# ============================================================================
# STATUS: Engine Module - shared plumbing for the layer query resolvers
# PURPOSE: Issue one OWS request for one layer and decode it, logging failures
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: LayerQueryResolver
# DEPENDENCIES: services.ows_client, feature_query.decoder, util_logger
# ============================================================================

"""
Shared plumbing for the point, box and attribute search resolvers.

``_fetch_features`` is the per-layer unit of work: a transport or decode
failure is logged with the interaction context and reported as ``None`` so
multi-layer queries can carry on with the next layer.
"""

import logging
from typing import List, Optional

from util_logger import LogContext
from services.ows_client import OWSClient
from .config import QueryEngineConfig, get_engine_config
from .decoder import FeatureDecoder
from .errors import FeatureQueryError
from .models import Feature, ViewFit, fit_to_features
from .projection import ProjectionRegistry, get_projection_registry
from .requests import OWSRequest
from .selection import SelectionState


class LayerQueryResolver:
    """Base class holding the collaborators every resolver needs."""

    logger: logging.Logger = logging.getLogger(__name__)

    def __init__(
        self,
        client: OWSClient,
        state: SelectionState,
        config: Optional[QueryEngineConfig] = None,
        projections: Optional[ProjectionRegistry] = None,
        decoder: Optional[FeatureDecoder] = None
    ):
        if projections is None:
            projections = ProjectionRegistry.from_config(config) if config is not None else get_projection_registry()
        self.client = client
        self.state = state
        self.config = config or get_engine_config()
        self.projections = projections
        self.decoder = decoder or FeatureDecoder(self.projections)

    async def _fetch_features(
        self,
        request: OWSRequest,
        layer_key: str,
        source_crs: str,
        target_crs: str,
        context: LogContext
    ) -> Optional[List[Feature]]:
        """
        Request and decode one layer's answer.

        Returns:
            Decoded features, or None if the request or decoding failed
        """
        dims = {'custom_dimensions': context.to_dict()}
        try:
            response = await self.client.request(request)
            response.raise_for_error()
            return self.decoder.decode(response.data, layer_key, source_crs, target_crs)
        except FeatureQueryError as e:
            self.logger.warning(f"❌ {request.kind} failed for {layer_key}: {e}", extra=dims)
            return None

    def zoom_to(self, feature: Feature) -> Optional[ViewFit]:
        """View fit for a single feature, using the configured padding and zoom cap."""
        return fit_to_features(
            [feature],
            padding=self.config.fit_padding_px,
            duration_ms=self.config.fit_duration_ms,
            max_zoom=self.config.fit_max_zoom
        )
