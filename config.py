# ============================================================================
# CLAUDE CONTEXT - APPLICATION CONFIGURATION
# ============================================================================
# STATUS: Core Infrastructure - Configuration Management
# PURPOSE: Centralized configuration for the GeoServer connection and credentials
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: AppConfig, get_app_config, get_auth_header, validate_configuration
# DEPENDENCIES: pydantic-settings, util_logger
# SOURCE: Environment variables, .env file
# PATTERNS: Singleton pattern for config
# ============================================================================

"""
Application Configuration Module

Provides centralized configuration for the geospatial server the engine
queries:
- GeoServer base URL (the engine appends /wms and /wfs)
- Basic authentication credentials
- Environment-based configuration with validation

Environment Variables:
    Required:
    - GEOSERVER_URL: Base URL, e.g. https://maps.example.org/geoserver

    Optional:
    - GEOSERVER_USER: Username for basic authentication
    - GEOSERVER_PASSWORD: Password (required when GEOSERVER_USER is set)

Usage:
    from config import get_app_config, get_auth_header

    config = get_app_config()
    headers = {"Authorization": get_auth_header()}
"""

import base64
import logging
from typing import Optional
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator, ValidationInfo

from util_logger import ComponentType, log_exceptions

logger = logging.getLogger(__name__)

# ============================================================================
# Application Configuration
# ============================================================================

class AppConfig(BaseSettings):
    """
    Application-wide configuration loaded from environment variables.

    Attributes:
        geoserver_url: GeoServer base URL
        geoserver_user: Username for basic authentication
        geoserver_password: Password for basic authentication
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    geoserver_url: str = Field(..., description="GeoServer base URL")
    geoserver_user: Optional[str] = Field(default=None, description="GeoServer username")
    geoserver_password: Optional[str] = Field(default=None, validate_default=True, description="GeoServer password")

    @field_validator('geoserver_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URL so endpoint joins are predictable."""
        v = v.strip().rstrip('/')
        if not v.startswith(("http://", "https://")):
            raise ValueError("GEOSERVER_URL must start with http:// or https://")
        return v

    @field_validator('geoserver_password')
    @classmethod
    def validate_password(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        """Ensure password is provided when a user is configured."""
        if info.data.get('geoserver_user') and not v:
            raise ValueError("GEOSERVER_PASSWORD is required when GEOSERVER_USER is set")
        return v


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """
    Get singleton application configuration instance.

    Returns:
        AppConfig: Validated configuration object

    Raises:
        ValidationError: If required environment variables are missing
    """
    return AppConfig()


# ============================================================================
# Authorization Header
# ============================================================================

def build_basic_auth_header(username: str, password: str) -> str:
    """
    Build a Basic authorization header value.

    Args:
        username: Account name
        password: Account password

    Returns:
        str: "Basic <base64(username:password)>"
    """
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def get_auth_header(config: Optional[AppConfig] = None) -> Optional[str]:
    """
    Authorization header for the configured account.

    Returns:
        Header value, or None when no user is configured (anonymous access)
    """
    config = config or get_app_config()
    if not config.geoserver_user:
        return None
    return build_basic_auth_header(config.geoserver_user, config.geoserver_password or "")


# ============================================================================
# Configuration Validation
# ============================================================================

@log_exceptions(ComponentType.VALIDATOR, "AppConfig")
def validate_configuration() -> bool:
    """
    Validate configuration on application startup.

    Returns:
        bool: True if configuration is valid

    Raises:
        ValidationError: If configuration validation fails (logged with traceback)
    """
    config = get_app_config()
    logger.info("Configuration validation:")
    logger.info(f"  GeoServer URL: {config.geoserver_url}")
    logger.info(f"  User: {config.geoserver_user or '(anonymous)'}")
    return True


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    validate_configuration()
