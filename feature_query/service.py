# ============================================================================
# CLAUDE CONTEXT - QUERY ENGINE SERVICE
# ============================================================================
# STATUS: Service Layer - engine facade
# PURPOSE: Wire registry, resolvers and selection state behind one object
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: QueryEngine
# DEPENDENCIES: services.ows_client, feature_query resolvers, util_logger
# PATTERNS: Facade, dependency injection
# ENTRY_POINTS: engine = QueryEngine.from_config(capability_entries)
# ============================================================================

"""
Query Engine Service

The single object presentation code talks to:

    engine = QueryEngine.from_config(capability_entries)
    engine.registry.set_visible("city:parks", True)

    result = await engine.resolve_point((x, y), resolution=4.77)
    token = engine.begin_box()
    result = await engine.resolve_box(extent, (1280, 720), token)
    result = await engine.search(SearchCriteria(layer="Buildings", layer_key="city:buildings",
                                                field="height", operator=">", value="50"))

    engine.subscribe(on_selection_changed)
    await engine.close()

The engine owns exactly one SelectionState; resolvers receive it explicitly.
"""

import asyncio
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

import httpx

from util_logger import LoggerFactory, ComponentType
from services.ows_client import OWSClient
from .box_query import BoxQueryResolver
from .config import QueryEngineConfig, get_engine_config
from .decoder import FeatureDecoder
from .filters import describe_criteria
from .models import Feature, Layer, QueryResult, SearchCriteria, Selection, ViewFit
from .point_query import PointQueryResolver
from .projection import Extent, ProjectionRegistry, get_projection_registry
from .registry import LayerRegistry
from .search import AttributeSearchResolver, SchemaLoadResult
from .selection import SelectionState

logger = LoggerFactory.create_logger(ComponentType.SERVICE, "QueryEngine")


class QueryEngine:
    """
    Facade over the point, box and attribute search resolvers.
    """

    def __init__(
        self,
        client: OWSClient,
        registry: LayerRegistry,
        config: Optional[QueryEngineConfig] = None,
        projections: Optional[ProjectionRegistry] = None,
        state: Optional[SelectionState] = None
    ):
        if projections is None:
            projections = ProjectionRegistry.from_config(config) if config is not None else get_projection_registry()
        self.client = client
        self.registry = registry
        self.config = config or get_engine_config()
        self.projections = projections
        self.state = state or SelectionState()

        decoder = FeatureDecoder(self.projections)
        shared = dict(config=self.config, projections=self.projections, decoder=decoder)
        self.points = PointQueryResolver(client, self.state, **shared)
        self.boxes = BoxQueryResolver(client, self.state, **shared)
        self.searches = AttributeSearchResolver(client, self.state, **shared)

        logger.info(f"Query engine ready: {len(registry)} layers, map CRS {self.config.map_crs}")

    @classmethod
    def from_config(
        cls,
        capability_entries: Iterable[Mapping[str, Any]],
        app_config=None,
        engine_config: Optional[QueryEngineConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "QueryEngine":
        """
        Build client, registry and engine.

        Without ``engine_config`` the environment configuration and the
        process-wide projection registry are used. An explicit config gets a
        projection registry of its own.
        """
        config = engine_config or get_engine_config()
        client = OWSClient.from_config(app_config, config, transport=transport)
        registry = LayerRegistry.from_capabilities(
            capability_entries,
            client.base_url,
            preferred_crs=config.preferred_layer_crs
        )
        return cls(client, registry, config=engine_config)

    async def close(self) -> None:
        self.searches.debouncer.cancel()
        await self.client.close()

    async def __aenter__(self) -> "QueryEngine":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ========================================================================
    # SELECTION
    # ========================================================================

    @property
    def selection(self) -> Selection:
        return self.state.snapshot

    def subscribe(self, listener: Callable[[Selection], None]) -> Callable[[], None]:
        return self.state.subscribe(listener)

    def on_search_complete(self, listener: Callable[[Selection], None]) -> Callable[[], None]:
        return self.state.on_search_complete(listener)

    def clear(self) -> QueryResult:
        """Explicit user clear."""
        return self.searches.clear()

    def zoom_to(self, feature: Feature) -> Optional[ViewFit]:
        return self.points.zoom_to(feature)

    def criteria_summary(self) -> Optional[str]:
        criteria = self.state.snapshot.criteria
        return describe_criteria(criteria) if criteria else None

    # ========================================================================
    # POINT / BOX
    # ========================================================================

    async def resolve_point(
        self,
        coordinate: Sequence[float],
        resolution: Optional[float],
        visible_layers: Optional[Sequence[Layer]] = None,
        view_crs: Optional[str] = None
    ) -> QueryResult:
        layers = self.registry.visible_layers() if visible_layers is None else visible_layers
        return await self.points.resolve_point(coordinate, layers, resolution, view_crs=view_crs)

    def begin_box(self) -> int:
        return self.boxes.begin_box()

    async def resolve_box(
        self,
        extent,
        viewport_size: Tuple[int, int],
        token: Optional[int] = None,
        visible_layers: Optional[Sequence[Layer]] = None,
        view_crs: Optional[str] = None
    ) -> QueryResult:
        layers = self.registry.visible_layers() if visible_layers is None else visible_layers
        return await self.boxes.resolve_box(extent, layers, viewport_size, token=token, view_crs=view_crs)

    # ========================================================================
    # ATTRIBUTE SEARCH
    # ========================================================================

    def _layer(self, layer_ref) -> Layer:
        layer = layer_ref if isinstance(layer_ref, Layer) else self.registry.get(layer_ref)
        if layer is None:
            raise KeyError(f"Unknown layer {layer_ref}")
        return layer

    async def load_schema(self, layer_ref) -> SchemaLoadResult:
        return await self.searches.load_schema(self._layer(layer_ref))

    async def search(self, criteria: SearchCriteria) -> QueryResult:
        """Run the search described by ``criteria`` (``layer_key`` names the layer)."""
        layer = self._layer(criteria.layer_key or criteria.layer)
        return await self.searches.search(layer, criteria.field, criteria.operator, criteria.value)

    async def suggest(self, layer_ref, field_name: str, prefix: str) -> List[str]:
        return await self.searches.suggest(self._layer(layer_ref), field_name, prefix)

    def schedule_suggestions(self, layer_ref, field_name: str, prefix: str) -> asyncio.Task:
        return self.searches.schedule_suggestions(self._layer(layer_ref), field_name, prefix)

    # ========================================================================
    # PREVIEWS
    # ========================================================================

    async def fetch_preview(self, layer_ref, extent: Extent, size: int = 80) -> Optional[bytes]:
        """PNG thumbnail of a layer, or None if the server could not render it."""
        request = self.registry.preview_request(layer_ref, extent, size=size)
        response = await self.client.request(request, return_binary=True)
        if not response.success:
            logger.warning(f"Preview failed for {layer_ref}: {response.error}")
            return None
        return response.data
