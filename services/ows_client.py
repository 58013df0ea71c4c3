# ============================================================================
# CLAUDE CONTEXT - OWS HTTP CLIENT
# ============================================================================
# STATUS: Service Layer - GeoServer WMS/WFS client
# PURPOSE: Async HTTP client issuing the engine's OWS requests with basic auth
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: OWSClient, OWSResponse
# DEPENDENCIES: httpx (async)
# PORTABLE: Yes - engine modules are imported lazily; base_url and credentials are constructor params
# ============================================================================
"""
OWS HTTP Client Service (ASYNC VERSION).

Issues the WMS/WFS GET requests built by ``feature_query.requests`` against
one server:
- GetFeatureInfo (point identification, box selection)
- GetFeature (attribute search, value suggestions)
- DescribeFeatureType (search form schema)

The event loop is suspended only while awaiting responses. Several requests
may be in flight on one client; ordering between them is the caller's job.

Failures never raise out of ``request()``: they come back as an
``OWSResponse`` with ``success=False`` and an ``error_kind`` of
``"transport"`` or ``"decode"``. ``raise_for_error()`` converts that into the
engine's exception taxonomy for callers that prefer exceptions.
"""

import httpx
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional, Union
from dataclasses import dataclass

if TYPE_CHECKING:
    from feature_query.requests import OWSRequest

logger = logging.getLogger(__name__)


@dataclass
class OWSResponse:
    """Response wrapper for OWS calls."""
    success: bool
    status_code: int
    data: Optional[Union[Dict[str, Any], bytes]] = None
    content_type: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None  # "transport" or "decode"

    def raise_for_error(self) -> "OWSResponse":
        """
        Raise TransportError / DecodeError for a failed response.

        Returns:
            self, for chaining on success
        """
        from feature_query.errors import DecodeError, TransportError

        if self.success:
            return self
        if self.error_kind == "decode":
            raise DecodeError(self.error or "Undecodable response")
        raise TransportError(self.error or "Request failed", status_code=self.status_code)


class OWSClient:
    """
    Async HTTP client for a GeoServer-style OWS endpoint pair.

    Usage:
        client = OWSClient(base_url="https://maps.example.org/geoserver",
                           auth_header="Basic dXNlcjpwYXNz")

        request = layer.request_builder.describe_feature_type()
        response = await client.request(request)
        if response.success:
            properties = response.data["featureTypes"][0]["properties"]

        # Always close when done
        await client.close()
    """

    def __init__(
        self,
        base_url: str,
        auth_header: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize OWS client.

        Args:
            base_url: Server base URL (without /wms or /wfs)
            auth_header: Value of the Authorization header, if any
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests inject httpx.MockTransport)

        Raises:
            ValueError: If base_url is empty
        """
        self.base_url = (base_url or "").rstrip('/')
        if not self.base_url:
            raise ValueError("OWSClient requires base_url")
        self.auth_header = auth_header
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_config(cls, app_config=None, engine_config=None,
                    transport: Optional[httpx.AsyncBaseTransport] = None) -> "OWSClient":
        """Build a client from the application and engine configuration."""
        from config import get_app_config, get_auth_header
        from feature_query.config import get_engine_config

        app_config = app_config or get_app_config()
        engine_config = engine_config or get_engine_config()
        return cls(
            base_url=app_config.geoserver_url,
            auth_header=get_auth_header(app_config),
            timeout=engine_config.request_timeout_seconds,
            transport=transport
        )

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Authorization": self.auth_header} if self.auth_header else {}
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                headers=headers,
                transport=self._transport
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "OWSClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def request(self, ows_request: "OWSRequest", return_binary: bool = False) -> OWSResponse:
        """
        Issue one OWS request.

        Args:
            ows_request: Endpoint + params from a LayerRequestBuilder
            return_binary: If True, return raw bytes instead of JSON

        Returns:
            OWSResponse with decoded JSON (or bytes) or error
        """
        return await self.get(ows_request.endpoint, ows_request.params, return_binary=return_binary)

    async def get(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        return_binary: bool = False
    ) -> OWSResponse:
        """
        GET ``{base_url}{endpoint}`` and decode the body.

        GeoServer reports some failures as HTTP 200 with an XML
        ServiceExceptionReport; those are treated as decode failures.
        """
        url = f"{self.base_url}{endpoint}"
        client = self._get_client()
        logger.debug(f"OWS GET {url} {(params or {}).get('REQUEST', '')}")

        try:
            response = await client.get(url, params=params)

            if response.status_code >= 400:
                error_text = response.text[:500] if response.text else "Unknown error"
                return OWSResponse(
                    success=False,
                    status_code=response.status_code,
                    error=f"OWS error {response.status_code}: {error_text}",
                    error_kind="transport"
                )

            content_type = response.headers.get("content-type", "")

            if return_binary:
                return OWSResponse(
                    success=True,
                    status_code=response.status_code,
                    data=response.content,
                    content_type=content_type
                )

            try:
                data = response.json()
            except ValueError:
                return OWSResponse(
                    success=False,
                    status_code=response.status_code,
                    content_type=content_type,
                    error=f"Expected JSON, got '{content_type}': {response.text[:200]}",
                    error_kind="decode"
                )

            if not isinstance(data, dict):
                return OWSResponse(
                    success=False,
                    status_code=response.status_code,
                    content_type=content_type,
                    error=f"Expected a JSON object, got {type(data).__name__}",
                    error_kind="decode"
                )

            return OWSResponse(
                success=True,
                status_code=response.status_code,
                data=data,
                content_type=content_type
            )

        except httpx.TimeoutException:
            logger.warning(f"OWS request to {url} timed out after {self.timeout}s")
            return OWSResponse(
                success=False,
                status_code=504,
                error=f"OWS request timeout after {self.timeout}s",
                error_kind="transport"
            )
        except httpx.RequestError as e:
            return OWSResponse(
                success=False,
                status_code=503,
                error=f"OWS request error: {str(e)}",
                error_kind="transport"
            )
