# ============================================================================
# CLAUDE CONTEXT - POINT QUERY RESOLVER
# ============================================================================
# STATUS: Engine Module - click identification
# PURPOSE: Resolve a map click to the first feature found across visible layers
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: PointQueryResolver
# DEPENDENCIES: feature_query.base, feature_query.projection, util_logger
# PATTERNS: Sequential first-hit loop, interaction tokens
# ENTRY_POINTS: await resolver.resolve_point((x, y), registry.visible_layers(), resolution)
# ============================================================================

"""
Point Query Resolver

Idle -> Querying -> Resolved(feature) | Resolved(none)

Visible layers are asked one at a time, in visibility order, with a
GetFeatureInfo request for a single feature. The first layer that answers
with a feature wins and the remaining layers are not queried. Layers that
fail (transport or decode) are logged and skipped.
"""

from typing import Optional, Sequence

from util_logger import LoggerFactory, ComponentType, LogContext
from .base import LayerQueryResolver
from .models import Feature, Layer, QueryOutcome, QueryResult
from .projection import Extent, buffer_extent, extents_intersect

MSG_NO_RESOLUTION = "The map is not ready yet. Please try again."


class PointQueryResolver(LayerQueryResolver):
    """
    Resolves clicks with first-hit semantics.

    Usage:
        resolver = PointQueryResolver(client, state)
        result = await resolver.resolve_point((x, y), visible_layers, resolution=4.77)
        if result.outcome is QueryOutcome.RESOLVED:
            feature = result.features[0]
    """

    logger = LoggerFactory.create_logger(ComponentType.RESOLVER, "PointQueryResolver")

    async def resolve_point(
        self,
        coordinate: Sequence[float],
        visible_layers: Sequence[Layer],
        resolution: Optional[float],
        view_crs: Optional[str] = None
    ) -> QueryResult:
        """
        Resolve a click.

        Args:
            coordinate: Click position (x, y) in ``view_crs``
            visible_layers: Layers in visibility order
            resolution: Map units per pixel of the current view
            view_crs: Reference system of the view (default: configured map CRS)

        Returns:
            QueryResult with the selected feature (if any), a highlight
            candidate and the ``zoom_to`` function
        """
        if resolution is None or resolution <= 0:
            self.logger.info("Point query aborted: view resolution unavailable")
            return QueryResult(
                selection=self.state.snapshot,
                outcome=QueryOutcome.ABORTED,
                message=MSG_NO_RESOLUTION
            )

        crs, _ = self.projections.resolve(view_crs or self.config.map_crs)
        token = self.state.begin_interaction()
        context = LogContext(interaction_id=token, interaction_kind="point", request_kind="GetFeatureInfo")

        hit: Optional[Sequence[Feature]] = None
        for layer in visible_layers:
            if not self.state.is_current(token):
                self.logger.info(
                    "Point query superseded, stopping",
                    extra={'custom_dimensions': context.to_dict()}
                )
                return QueryResult(selection=self.state.snapshot, outcome=QueryOutcome.SUPERSEDED)
            context.layer = layer.type_name
            request = layer.request_builder.point_feature_info(
                coordinate,
                resolution,
                crs,
                feature_count=self.config.point_feature_count,
                buffer=self.config.point_pixel_buffer
            )
            features = await self._fetch_features(request, layer.type_name, crs, crs, context)
            if features:
                self.logger.info(
                    f"✅ Point query hit on {layer.type_name} ({len(features)} features)",
                    extra={'custom_dimensions': context.to_dict()}
                )
                hit = features
                break

        context.layer = None
        if not hit:
            self.logger.debug(
                f"Point query found nothing in {len(visible_layers)} layers",
                extra={'custom_dimensions': context.to_dict()}
            )
            return self._finish((), None, token, QueryOutcome.NO_HIT)

        highlight = self._pick_highlight(hit, coordinate, resolution, crs)
        return self._finish((hit[0],), highlight, token, QueryOutcome.RESOLVED)

    def _pick_highlight(
        self,
        features: Sequence[Feature],
        coordinate: Sequence[float],
        resolution: float,
        crs: str
    ) -> Optional[Feature]:
        """First returned feature whose extent touches the buffered click."""
        click = Extent(coordinate[0], coordinate[1], coordinate[0], coordinate[1], crs=crs)
        area = buffer_extent(click, resolution * self.config.highlight_buffer_factor)
        for feature in features:
            extent = feature.extent
            if extent is not None and extents_intersect(extent, area):
                return feature
        return None

    def _finish(self, features, highlight, token: int, outcome: QueryOutcome) -> QueryResult:
        if not self.state.commit(features, criteria=None, token=token):
            return QueryResult(selection=self.state.snapshot, outcome=QueryOutcome.SUPERSEDED)
        return QueryResult(
            selection=self.state.snapshot,
            outcome=outcome,
            highlight=highlight,
            zoom_to=self.zoom_to
        )
