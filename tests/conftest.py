"""Shared fixtures for feature query engine tests.

The map server is faked with ``httpx.MockTransport``: ``FakeServer`` routes
requests by REQUEST and layer name, records every request it sees, and
answers with canned GeoJSON.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from feature_query.config import QueryEngineConfig
from feature_query.models import Layer
from feature_query.projection import get_projection_registry
from feature_query.selection import SelectionState
from services.ows_client import OWSClient

SERVER_URL = "http://geo.test/geoserver"
AUTH_HEADER = "Basic dGVzdGVyOnNlY3JldA=="

WEB_MERCATOR_URN = "urn:ogc:def:crs:EPSG::3857"


# ============================================================================
# GeoJSON builders
# ============================================================================

def square(min_x: float, min_y: float, size: float) -> Dict[str, Any]:
    return {
        "type": "Polygon",
        "coordinates": [[
            [min_x, min_y], [min_x + size, min_y], [min_x + size, min_y + size],
            [min_x, min_y + size], [min_x, min_y],
        ]],
    }


def point(x: float, y: float) -> Dict[str, Any]:
    return {"type": "Point", "coordinates": [x, y]}


def feature(fid: Optional[str], geometry: Optional[Dict[str, Any]], /, **properties) -> Dict[str, Any]:
    raw = {"type": "Feature", "geometry": geometry, "properties": properties}
    if fid is not None:
        raw["id"] = fid
    return raw


def collection(*features, crs: Optional[str] = WEB_MERCATOR_URN) -> Dict[str, Any]:
    payload = {"type": "FeatureCollection", "features": list(features)}
    if crs:
        payload["crs"] = {"type": "name", "properties": {"name": crs}}
    return payload


def schema(*properties) -> Dict[str, Any]:
    return {
        "elementFormDefault": "qualified",
        "targetNamespace": "http://city.test",
        "targetPrefix": "city",
        "featureTypes": [{"typeName": "layer", "properties": list(properties)}],
    }


def prop(name: str, type_token: str) -> Dict[str, Any]:
    local = type_token.split(":", 1)[-1]
    return {"name": name, "maxOccurs": 1, "minOccurs": 0, "nillable": True,
            "type": type_token, "localType": local}


# ============================================================================
# Fake server
# ============================================================================

Answer = Any  # dict (JSON 200), httpx.Response, Exception, or callable(params) -> one of those (or an awaitable of one)


class FakeServer:
    """
    Canned OWS server.

    Answers are registered per (REQUEST, layer) and looked up on every call.
    Unregistered GetFeatureInfo / GetFeature requests get an empty collection.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.answers: Dict[tuple, Answer] = {}
        self.rest: Dict[str, Answer] = {}

    def on(self, request_kind: str, layer: str, answer: Answer) -> None:
        self.answers[(request_kind, layer)] = answer

    def on_path(self, path: str, answer: Answer) -> None:
        self.rest[path] = answer

    # ------------------------------------------------------------------------

    def params(self, request_kind: Optional[str] = None) -> List[Dict[str, str]]:
        out = []
        for request in self.requests:
            params = dict(request.url.params)
            if request_kind is None or params.get("REQUEST") == request_kind:
                out.append(params)
        return out

    def layers_queried(self, request_kind: str = "GetFeatureInfo") -> List[str]:
        return [p.get("LAYERS") or p.get("typeName") for p in self.params(request_kind)]

    # ------------------------------------------------------------------------

    def _resolve(self, answer: Answer, request: httpx.Request, params: Dict[str, str]):
        if callable(answer):
            answer = answer(params)
        if inspect.isawaitable(answer):
            pending = answer

            async def later():
                return self._resolve(await pending, request, params)

            return later()
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, httpx.Response):
            return answer
        return httpx.Response(200, json=answer)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        params = dict(request.url.params)
        kind = params.get("REQUEST")
        if kind is None:
            path = request.url.path.replace("/geoserver", "", 1)
            answer = self.rest.get(path, httpx.Response(404, text="Not found"))
            return self._resolve(answer, request, params)

        layer = params.get("LAYERS") or params.get("typeName")
        answer = self.answers.get((kind, layer))
        if answer is None:
            if kind in ("GetFeatureInfo", "GetFeature"):
                answer = collection()
            else:
                answer = httpx.Response(404, text="Not found")
        return self._resolve(answer, request, params)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def client(server: FakeServer) -> OWSClient:
    return OWSClient(SERVER_URL, auth_header=AUTH_HEADER, timeout=5.0, transport=server.transport())


@pytest.fixture
def engine_config() -> QueryEngineConfig:
    return QueryEngineConfig(
        map_crs="EPSG:3857",
        request_timeout_seconds=5,
        suggest_debounce_ms=20,
        preferred_layer_crs=None,
        search_output_crs=None,
        extra_projections={},
    )


@pytest.fixture
def projections():
    return get_projection_registry()


@pytest.fixture
def state() -> SelectionState:
    return SelectionState()


def make_layer(name: str, workspace: str = "city", title: Optional[str] = None,
               keywords=(), styles=(), visible: bool = True) -> Layer:
    return Layer(
        name=name,
        workspace=workspace,
        title=title or name.title(),
        server_url=SERVER_URL,
        reference_system="EPSG:3857",
        advertised_crs=("EPSG:3857",),
        keywords=tuple(keywords),
        styles=tuple(styles),
        visible=visible,
    )


@pytest.fixture
def parks() -> Layer:
    return make_layer("parks")


@pytest.fixture
def roads() -> Layer:
    return make_layer("roads")


@pytest.fixture
def buildings() -> Layer:
    return make_layer("buildings")


def run(coro_factory: Callable[[], Any]):
    """Run an async test body on a fresh event loop."""
    return asyncio.run(coro_factory())
