# ============================================================================
# CLAUDE CONTEXT - HEALTH CHECK MODULE
# ============================================================================
# STATUS: Core Infrastructure - Health Monitoring
# PURPOSE: Map server reachability and login checks before a session starts
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: get_public_health, get_detailed_health, check_server_connectivity,
#          check_wms_capabilities, verify_login, HealthStatus, CheckResult
# DEPENDENCIES: services.ows_client, util_logger
# PATTERNS: Two-tier health checks (public/detailed)
# ============================================================================

"""
Health Check Module for the feature query engine

1. Public Health:
   - Status and timestamp only
   - One critical check: the server answers the REST workspace listing with
     the configured credentials

2. Detailed Health:
   - Server connectivity with latency and workspace sample
   - WMS GetCapabilities reachability (non-critical)

The same connectivity check doubles as the login check: a 401 means the
credentials were rejected, which is reported as such rather than as an
unreachable server.

Usage:
    from health import verify_login, get_detailed_health

    result = await verify_login(client)
    if result.status == "fail":
        show(result.message)           # "Invalid username or password"

    report = await get_detailed_health(client)
"""

import time
import uuid
from enum import Enum
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Optional, Dict, Any, List

from services.ows_client import OWSClient
from util_logger import LoggerFactory, ComponentType

# Create module logger
logger = LoggerFactory.create_logger(ComponentType.SERVICE, "HealthService")

MSG_INVALID_CREDENTIALS = "Invalid username or password"
MSG_UNREACHABLE = "Could not connect to the map server"
MSG_NOT_GEOSERVER = "The server did not answer like a GeoServer instance"


# ============================================================================
# Health Status Enum
# ============================================================================

class HealthStatus(str, Enum):
    """Health status values."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"      # Non-critical components failing
    UNHEALTHY = "unhealthy"    # Critical components failing


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class CheckResult:
    """Result of a single health check."""
    status: str              # "pass" or "fail"
    latency_ms: float        # Time taken for check
    message: str             # Human-readable status message
    details: Optional[Dict[str, Any]] = None  # Additional details

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        result = {
            "status": self.status,
            "latency_ms": round(self.latency_ms, 2),
            "message": self.message
        }
        if self.details:
            result["details"] = self.details
        return result


def _workspace_names(data: Dict[str, Any]) -> Optional[List[str]]:
    """
    Workspace names from a /rest/workspaces listing, or None if the body
    is not such a listing. An empty server answers {"workspaces": ""}.
    """
    if not isinstance(data, dict) or "workspaces" not in data:
        return None
    listing = data["workspaces"]
    if not listing:
        return []
    if not isinstance(listing, dict):
        return None
    entries = listing.get("workspace") or []
    if isinstance(entries, dict):
        entries = [entries]
    return [e.get("name") for e in entries if isinstance(e, dict) and e.get("name")]


# ============================================================================
# Health Check Functions
# ============================================================================

async def check_server_connectivity(client: OWSClient) -> CheckResult:
    """
    Check that the server is reachable and accepts the configured credentials.

    Lists workspaces over the REST API. This is a critical check - failure
    means UNHEALTHY status.

    Args:
        client: OWS client carrying the session's authorization header

    Returns:
        CheckResult with status, latency and a workspace sample
    """
    start_time = time.perf_counter()
    response = await client.get("/rest/workspaces")
    latency_ms = (time.perf_counter() - start_time) * 1000

    if response.status_code == 401:
        logger.warning(f"Server rejected credentials: {client.base_url}")
        return CheckResult(
            status="fail",
            latency_ms=latency_ms,
            message=MSG_INVALID_CREDENTIALS,
            details={"status_code": 401}
        )

    if not response.success:
        logger.error(f"Server connectivity check failed: {response.error}")
        message = MSG_NOT_GEOSERVER if response.error_kind == "decode" else MSG_UNREACHABLE
        return CheckResult(
            status="fail",
            latency_ms=latency_ms,
            message=message,
            details={"status_code": response.status_code, "error": response.error}
        )

    workspaces = _workspace_names(response.data)
    if workspaces is None:
        logger.error(f"Unexpected workspace listing from {client.base_url}")
        return CheckResult(
            status="fail",
            latency_ms=latency_ms,
            message=MSG_NOT_GEOSERVER,
            details={"status_code": response.status_code}
        )

    return CheckResult(
        status="pass",
        latency_ms=latency_ms,
        message=f"{len(workspaces)} workspaces available",
        details={
            "server": client.base_url,
            "workspace_count": len(workspaces),
            "sample_workspaces": workspaces[:5]  # First 5 only
        }
    )


async def check_wms_capabilities(client: OWSClient) -> CheckResult:
    """
    Check that the WMS endpoint serves a capabilities document.

    This is a non-critical check - failure means DEGRADED status.
    """
    start_time = time.perf_counter()
    response = await client.get(
        "/wms",
        {"SERVICE": "WMS", "VERSION": "1.1.1", "REQUEST": "GetCapabilities"},
        return_binary=True
    )
    latency_ms = (time.perf_counter() - start_time) * 1000

    body = response.data if isinstance(response.data, bytes) else b""
    if response.success and (b"WMT_MS_Capabilities" in body or b"WMS_Capabilities" in body):
        return CheckResult(
            status="pass",
            latency_ms=latency_ms,
            message="WMS capabilities available",
            details={"content_type": response.content_type, "bytes": len(body)}
        )

    logger.error(f"WMS capabilities check failed: {response.error or response.content_type}")
    return CheckResult(
        status="fail",
        latency_ms=latency_ms,
        message="WMS capabilities unavailable",
        details={"status_code": response.status_code, "error": response.error}
    )


async def verify_login(client: OWSClient) -> CheckResult:
    """Login check run before building a session's layer registry."""
    result = await check_server_connectivity(client)
    if result.status == "pass":
        logger.info(f"✅ Login accepted by {client.base_url}")
    return result


# ============================================================================
# Main Entry Points
# ============================================================================

async def get_public_health(client: OWSClient) -> Dict[str, Any]:
    """
    Get minimal health status.

    Returns:
        Dict with status and timestamp only
    """
    start_time = time.perf_counter()

    server_result = await check_server_connectivity(client)

    if server_result.status == "pass":
        status = HealthStatus.HEALTHY
    else:
        status = HealthStatus.UNHEALTHY

    total_duration = (time.perf_counter() - start_time) * 1000

    logger.info("Public health check completed", extra={
        'custom_dimensions': {
            'status': status.value,
            'duration_ms': round(total_duration, 2),
            'check_type': 'public'
        }
    })

    return {
        "status": status.value,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


async def get_detailed_health(client: OWSClient) -> Dict[str, Any]:
    """
    Get detailed health status with per-check latency and details.

    Returns:
        Dict with full health metrics
    """
    start_time = time.perf_counter()
    request_id = str(uuid.uuid4())[:8]

    checks = {}
    critical_failures = []
    non_critical_failures = []

    # Critical: server + credentials
    server_result = await check_server_connectivity(client)
    checks["server"] = server_result.to_dict()
    if server_result.status == "fail":
        critical_failures.append("server")

    # Non-critical: WMS capabilities
    wms_result = await check_wms_capabilities(client)
    checks["wms_capabilities"] = wms_result.to_dict()
    if wms_result.status == "fail":
        non_critical_failures.append("wms_capabilities")

    if critical_failures:
        status = HealthStatus.UNHEALTHY
    elif non_critical_failures:
        status = HealthStatus.DEGRADED
    else:
        status = HealthStatus.HEALTHY

    total_duration = (time.perf_counter() - start_time) * 1000

    logger.info("Detailed health check completed", extra={
        'custom_dimensions': {
            'status': status.value,
            'duration_ms': round(total_duration, 2),
            'check_type': 'detailed',
            'request_id': request_id,
            'critical_failures': critical_failures,
            'non_critical_failures': non_critical_failures,
            'server_latency_ms': server_result.latency_ms
        }
    })

    return {
        "status": status.value,
        "app": "feature-query-engine",
        "description": "Spatial Feature Query & Selection Engine",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request_id,
        "checks": checks,
        "total_duration_ms": round(total_duration, 2)
    }
