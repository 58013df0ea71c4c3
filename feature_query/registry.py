# ============================================================================
# CLAUDE CONTEXT - LAYER REGISTRY
# ============================================================================
# STATUS: Engine Module - capabilities-derived layer catalog
# PURPOSE: Hold the session's queryable layers, their visibility order and workspace filter
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: LayerRegistry, choose_layer_crs
# INTERFACES: Consumes an already-parsed capabilities layer list
# DEPENDENCIES: feature_query.models, feature_query.requests
# PATTERNS: Repository (in-memory), ordered visibility list
# ENTRY_POINTS: LayerRegistry.from_capabilities(entries, server_url)
# ============================================================================

"""
Capabilities-Derived Layer Registry

The registry is built once per session from a layer list that an external
collaborator has already extracted from the WMS capabilities document. Each
entry is a mapping such as::

    {
        "name": "city:parks",          # qualified workspace:name
        "title": "City Parks",
        "crs": ["EPSG:31982", "EPSG:3857"],
        "keywords": ["features", "parks"],
        "styles": ["polygon"]
    }

Entries without a workspace prefix are skipped. The layer list itself is
fixed for the session; only ``Layer.visible`` changes. Visible layers are
kept in the order they were switched on, which is the priority order of
point queries (first hit wins).
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .models import Layer
from .projection import DEFAULT_MAP_CRS, Extent, normalize_crs_code
from .requests import OWSRequest

logger = logging.getLogger(__name__)


def choose_layer_crs(advertised: Sequence[str], preferred: Optional[str] = None) -> str:
    """
    Pick the reference system a layer is requested in.

    The preferred code wins when the layer advertises it; otherwise the first
    advertised code; otherwise the web mercator default.
    """
    codes = [normalize_crs_code(c) for c in advertised if c]
    if preferred and normalize_crs_code(preferred) in codes:
        return normalize_crs_code(preferred)
    if codes:
        return codes[0]
    return DEFAULT_MAP_CRS


class LayerRegistry:
    """
    In-memory catalog of queryable layers.

    Usage:
        registry = LayerRegistry.from_capabilities(entries, "https://maps.example.org/geoserver")
        registry.set_visible("city:parks", True)
        registry.set_visible("city:roads", True)
        registry.visible_layers()   # [parks, roads] - toggle order
    """

    def __init__(self, layers: Iterable[Layer]):
        self._layers: Dict[Tuple[str, str], Layer] = {}
        for layer in layers:
            if layer.key in self._layers:
                logger.warning(f"Duplicate layer {layer.type_name} ignored")
                continue
            self._layers[layer.key] = layer
        self._visible_order: List[Tuple[str, str]] = [
            layer.key for layer in self._layers.values() if layer.visible
        ]
        # No workspace starts selected; layers() stays empty until one is picked
        self._selected_workspaces: Set[str] = set()
        logger.info(f"Layer registry built with {len(self._layers)} layers in {len(self.workspaces)} workspaces")

    @classmethod
    def from_capabilities(
        cls,
        entries: Iterable[Mapping[str, Any]],
        server_url: str,
        preferred_crs: Optional[str] = None
    ) -> "LayerRegistry":
        """
        Build the registry from parsed capability entries.

        Args:
            entries: Mappings with name, title, crs, keywords, styles
            server_url: Base URL of the server the layers are requested from
            preferred_crs: Code chosen for a layer whenever it advertises it
        """
        if preferred_crs is None:
            from .config import get_engine_config
            preferred_crs = get_engine_config().preferred_layer_crs

        layers = []
        for entry in entries:
            qualified = (entry.get("name") or "").strip()
            workspace, _, name = qualified.partition(":")
            if not workspace or not name:
                logger.debug(f"Skipping layer without workspace prefix: '{qualified}'")
                continue
            advertised = tuple(normalize_crs_code(c) for c in entry.get("crs") or () if c)
            layers.append(Layer(
                name=name,
                workspace=workspace,
                title=entry.get("title") or name,
                server_url=server_url,
                reference_system=choose_layer_crs(advertised, preferred_crs),
                advertised_crs=advertised,
                keywords=tuple(entry.get("keywords") or ()),
                styles=tuple(entry.get("styles") or ()),
            ))
        return cls(layers)

    # ========================================================================
    # LOOKUP
    # ========================================================================

    @staticmethod
    def _key(layer_ref) -> Tuple[str, str]:
        if isinstance(layer_ref, Layer):
            return layer_ref.key
        if isinstance(layer_ref, tuple):
            return layer_ref
        workspace, _, name = str(layer_ref).partition(":")
        return (workspace, name)

    def get(self, layer_ref) -> Optional[Layer]:
        """Look up by Layer, (workspace, name) or "workspace:name"."""
        return self._layers.get(self._key(layer_ref))

    def __len__(self) -> int:
        return len(self._layers)

    def __iter__(self):
        return iter(self._layers.values())

    def __contains__(self, layer_ref) -> bool:
        return self._key(layer_ref) in self._layers

    # ========================================================================
    # VISIBILITY
    # ========================================================================

    def set_visible(self, layer_ref, visible: bool) -> Layer:
        """
        Toggle a layer. Switching a layer on appends it to the visibility
        order; switching it off removes it.

        Raises:
            KeyError: If the layer is not in the registry
        """
        key = self._key(layer_ref)
        layer = self._layers.get(key)
        if layer is None:
            raise KeyError(f"Unknown layer {key[0]}:{key[1]}")

        layer.visible = visible
        if visible and key not in self._visible_order:
            self._visible_order.append(key)
        elif not visible and key in self._visible_order:
            self._visible_order.remove(key)

        logger.debug(f"Layer {layer.type_name} visible={visible}")
        return layer

    def toggle(self, layer_ref) -> Layer:
        layer = self.get(layer_ref)
        if layer is None:
            raise KeyError(f"Unknown layer {layer_ref}")
        return self.set_visible(layer, not layer.visible)

    def hide_all(self) -> None:
        """Switch every layer off."""
        for key in list(self._visible_order):
            self._layers[key].visible = False
        self._visible_order.clear()
        logger.debug("All layers hidden")

    def visible_layers(self) -> List[Layer]:
        """Visible layers in toggle order."""
        return [self._layers[key] for key in self._visible_order]

    # ========================================================================
    # WORKSPACES
    # ========================================================================

    @property
    def workspaces(self) -> List[str]:
        return sorted({layer.workspace for layer in self._layers.values()})

    @property
    def selected_workspaces(self) -> List[str]:
        return sorted(self._selected_workspaces)

    def select_workspace(self, workspace: str, selected: bool = True) -> None:
        if workspace not in self.workspaces:
            raise KeyError(f"Unknown workspace {workspace}")
        if selected:
            self._selected_workspaces.add(workspace)
        else:
            self._selected_workspaces.discard(workspace)

    def layers(self, workspaces: Optional[Iterable[str]] = None) -> List[Layer]:
        """Layers of the given (default: selected) workspaces, in catalog order."""
        wanted = set(workspaces) if workspaces is not None else self._selected_workspaces
        return [layer for layer in self._layers.values() if layer.workspace in wanted]

    # ========================================================================
    # PREVIEWS
    # ========================================================================

    def preview_request(self, layer_ref, extent: Extent, size: int = 80) -> OWSRequest:
        """GetMap request for a layer thumbnail over ``extent``."""
        layer = self.get(layer_ref)
        if layer is None:
            raise KeyError(f"Unknown layer {layer_ref}")
        return layer.request_builder.preview(extent.as_bbox(), extent.crs, size=size)
