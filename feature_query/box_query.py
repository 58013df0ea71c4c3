# ============================================================================
# CLAUDE CONTEXT - BOX QUERY RESOLVER
# ============================================================================
# STATUS: Engine Module - drag-box selection
# PURPOSE: Select every feature inside a box across visible layers and world copies
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: BoxQueryResolver
# DEPENDENCIES: feature_query.base, feature_query.projection, util_logger
# PATTERNS: World-copy splitting, geometry post-filter, interaction tokens
# ENTRY_POINTS: token = resolver.begin_box(); await resolver.resolve_box(extent, layers, (w, h), token)
# ============================================================================

"""
Box Query Resolver

A box drawn across the projection seam covers more than one copy of the
world. The box is split into one sub-extent per world copy, each translated
back into the canonical world and clamped to it, and every sub-extent is
queried on every visible layer.

Servers answer box GetFeatureInfo on the rendered pixel grid, so features
just outside the box can come back. Each decoded feature is kept only if its
own geometry extent intersects the sub-extent that was queried.

Results are concatenated in (world copy, layer) order. Features from
different layers are never merged, even when their ids match.
"""

from typing import List, Optional, Sequence, Tuple, Union

from util_logger import LoggerFactory, ComponentType, LogContext
from .base import LayerQueryResolver
from .models import Feature, Layer, QueryOutcome, QueryResult, fit_to_features
from .projection import Extent, extents_intersect, split_world_copies


class BoxQueryResolver(LayerQueryResolver):
    """
    Resolves drag-box selections.

    Usage:
        token = resolver.begin_box()           # on drag start, clears the selection
        result = await resolver.resolve_box(extent, visible_layers, (1280, 720), token)
        if result.fit:
            view.fit(result.fit.extent, padding=result.fit.padding)
    """

    logger = LoggerFactory.create_logger(ComponentType.RESOLVER, "BoxQueryResolver")

    def begin_box(self) -> int:
        """
        Start a box interaction: clear the selection now and supersede every
        pending point/box query.
        """
        token = self.state.begin_interaction(clear=True)
        self.logger.debug(
            "Box selection started, selection cleared",
            extra={'custom_dimensions': LogContext(interaction_id=token, interaction_kind="box").to_dict()}
        )
        return token

    def sub_extents(self, box: Extent) -> List[Tuple[int, Extent]]:
        """Per-world-copy sub-extents of ``box`` (single entry if it does not wrap)."""
        projection_extent = self.projections.projection_extent(box.crs)
        if projection_extent is None:
            return [(0, box)]
        return split_world_copies(box, projection_extent)

    async def resolve_box(
        self,
        extent: Union[Extent, Sequence[float]],
        visible_layers: Sequence[Layer],
        viewport_size: Tuple[int, int],
        token: Optional[int] = None,
        view_crs: Optional[str] = None
    ) -> QueryResult:
        """
        Resolve a completed drag box.

        Args:
            extent: Box in the view's reference system (Extent or [minX, minY, maxX, maxY])
            visible_layers: Layers in visibility order
            viewport_size: (width, height) of the map viewport in pixels
            token: Token from ``begin_box()``; a new one is issued when omitted
            view_crs: Reference system of the view (default: configured map CRS)

        Returns:
            QueryResult with the merged features and a ViewFit over them
        """
        if token is None:
            token = self.begin_box()

        crs, _ = self.projections.resolve(
            view_crs or (extent.crs if isinstance(extent, Extent) else None) or self.config.map_crs
        )
        bbox = extent.as_bbox() if isinstance(extent, Extent) else extent
        box = Extent.from_bbox(bbox, crs=crs)

        copies = self.sub_extents(box)
        context = LogContext(interaction_id=token, interaction_kind="box", request_kind="GetFeatureInfo")
        self.logger.debug(
            f"Box {box.as_bbox()} split into {len(copies)} world copies: {[w for w, _ in copies]}",
            extra={'custom_dimensions': context.to_dict()}
        )

        merged: List[Feature] = []
        for world, sub_extent in copies:
            for layer in visible_layers:
                if not self.state.is_current(token):
                    self.logger.info(
                        "Box query superseded, stopping",
                        extra={'custom_dimensions': context.to_dict()}
                    )
                    return QueryResult(selection=self.state.snapshot, outcome=QueryOutcome.SUPERSEDED)

                context.layer = layer.type_name
                request = layer.request_builder.box_feature_info(
                    sub_extent.as_bbox(),
                    viewport_size,
                    crs,
                    feature_count=self.config.box_feature_count,
                    buffer=self.config.box_pixel_buffer
                )
                features = await self._fetch_features(request, layer.type_name, crs, crs, context)
                if not features:
                    continue

                kept = [f for f in features if self._inside(f, sub_extent)]
                if len(kept) != len(features):
                    self.logger.debug(
                        f"Post-filter dropped {len(features) - len(kept)} of {len(features)} "
                        f"features from {layer.type_name} in world {world}",
                        extra={'custom_dimensions': context.to_dict()}
                    )
                merged.extend(kept)

        context.layer = None
        if not self.state.commit(merged, criteria=None, token=token):
            return QueryResult(selection=self.state.snapshot, outcome=QueryOutcome.SUPERSEDED)

        self.logger.info(
            f"Box query selected {len(merged)} features from {len(visible_layers)} layers",
            extra={'custom_dimensions': context.to_dict()}
        )
        fit = fit_to_features(
            merged,
            padding=self.config.fit_padding_px,
            duration_ms=self.config.fit_duration_ms,
            max_zoom=self.config.fit_max_zoom
        )
        return QueryResult(
            selection=self.state.snapshot,
            outcome=QueryOutcome.RESOLVED if merged else QueryOutcome.NO_HIT,
            fit=fit,
            zoom_to=self.zoom_to
        )

    @staticmethod
    def _inside(feature: Feature, sub_extent: Extent) -> bool:
        extent = feature.extent
        return extent is not None and extents_intersect(extent, sub_extent)
