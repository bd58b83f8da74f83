# -*- coding: utf-8 -*-
"""Location: ./mcpunified/config.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

MCP Unified Gateway Configuration.
This module defines configuration settings for the unified gateway using Pydantic.
It loads configuration from environment variables (or a ``.env`` file) with sensible defaults.

Environment variables:
- APP_NAME: Gateway name (default: "MCP_Unified_Gateway")
- HOST: Host to bind both listeners to (default: "0.0.0.0")
- PRIMARY_PORT: Primary listener port (default: 7777)
- FALLBACK_PORT: Fallback listener port (default: 7778)
- ENABLE_PRIMARY / ENABLE_FALLBACK: Toggle each listener (default: True)
- MASTER_API_KEY: Key accepted by the admin endpoints (default: unset)
- API_KEYS: Additional accepted keys, CSV or JSON list (default: [])
- AUTH_REQUIRED: Require X-API-Key on /mcp and /ws (default: False)
- HEALTH_CHECK_INTERVAL: Seconds between probe rounds (default: 30)
- HEALTH_CHECK_TIMEOUT: Bound on a single probe in seconds (default: 5)
- UNHEALTHY_THRESHOLD: Consecutive failures before a source is unreachable (default: 3)
- TOOL_TIMEOUT: Bound on an upstream list/call in seconds (default: 30)
- SHUTDOWN_TIMEOUT: Drain window on termination in seconds (default: 5)
- TOOL_COLLISION_POLICY: first_wins or namespaced (default: first_wins)
- SOURCES_FILE: YAML/JSON source catalog (default: unset)
- USE_DEFAULT_SOURCES: Register the built-in catalog when no file is given (default: True)
- LOG_LEVEL: Logging level (default: "INFO")

Examples:
    >>> from mcpunified.config import Settings
    >>> s = Settings(_env_file=None)
    >>> s.primary_port, s.fallback_port
    (7777, 7778)
    >>> s.listener_ports()
    {'primary': 7777, 'fallback': 7778}
    >>> Settings(_env_file=None, api_keys="a, b").api_keys
    ['a', 'b']
"""

# Standard
from functools import lru_cache
import json
import logging
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional

# Third-Party
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    MCP Unified Gateway configuration settings.

    Examples:
        >>> s = Settings(_env_file=None)
        >>> s.app_name
        'MCP_Unified_Gateway'
        >>> s.collision_policy
        'first_wins'
        >>> s.accepted_api_keys()
        set()
        >>> Settings(_env_file=None, master_api_key="m", api_keys=["x"]).accepted_api_keys() == {"m", "x"}
        True
        >>> try:
        ...     Settings(_env_file=None, primary_port=7000, fallback_port=7000)
        ... except ValueError:
        ...     print("error")
        error
    """

    app_name: str = "MCP_Unified_Gateway"
    host: str = "0.0.0.0"  # nosec B104 - gateway is meant to be reachable from local clients and containers

    # Listeners
    primary_port: int = Field(default=7777, ge=1, le=65535)
    fallback_port: int = Field(default=7778, ge=1, le=65535)
    enable_primary: bool = True
    enable_fallback: bool = True
    shutdown_timeout: float = 5.0
    listener_restart_attempts: int = Field(default=3, ge=0)  # consecutive restarts before a listener is given up
    listener_restart_delay: float = 1.0  # seconds, doubled on each consecutive restart

    # Auth
    master_api_key: Optional[str] = None
    api_keys: Annotated[List[str], NoDecode] = Field(default_factory=list)
    auth_required: bool = False

    # Health and routing
    health_check_interval: float = 30.0
    health_check_timeout: float = 5.0
    unhealthy_threshold: int = Field(default=3, ge=1)
    tool_timeout: float = 30.0
    collision_policy: Literal["first_wins", "namespaced"] = Field(default="first_wins", alias="TOOL_COLLISION_POLICY")
    namespace_separator: str = Field(default="_", alias="TOOL_NAMESPACE_SEPARATOR")
    protocol_version: str = "2024-11-05"

    # Source catalog
    sources_file: Optional[Path] = None
    use_default_sources: bool = True
    core_url: str = "http://localhost:3001"
    core_command: Optional[str] = None
    onasis_core_ws_url: str = "ws://localhost:3003/mcp"
    quick_auth_url: str = "http://localhost:3005"
    context7_url: str = "http://localhost:3007"

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Outbound HTTP retries (stdio bridge)
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0  # seconds
    retry_max_delay: int = 60  # seconds
    retry_jitter_max: float = 0.5  # fraction of base delay

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore", populate_by_name=True)

    @field_validator("api_keys", mode="before")
    @classmethod
    def _parse_api_keys(cls, value: Any) -> Any:
        """Accept CSV strings as well as JSON arrays for API_KEYS.

        Args:
            value: Raw value from the environment or constructor

        Returns:
            List of keys, or the value untouched when it is already a list
        """
        if isinstance(value, str):
            raw = value.strip()
            if not raw:
                return []
            if raw.startswith("["):
                return json.loads(raw)
            return [item.strip() for item in raw.split(",") if item.strip()]
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: Any) -> Any:
        """Normalise the log level name.

        Args:
            value: Raw level

        Returns:
            Upper-cased level name
        """
        return value.upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _validate_listeners(self) -> "Settings":
        """Reject listener combinations that can never serve a request.

        Returns:
            The validated settings

        Raises:
            ValueError: If no listener is enabled, or both share a port
        """
        if not self.enable_primary and not self.enable_fallback:
            raise ValueError("At least one of ENABLE_PRIMARY / ENABLE_FALLBACK must be true")
        if self.enable_primary and self.enable_fallback and self.primary_port == self.fallback_port:
            raise ValueError(f"PRIMARY_PORT and FALLBACK_PORT must differ (both {self.primary_port})")
        return self

    def listener_ports(self) -> Dict[str, int]:
        """Return the enabled listeners keyed by name, primary first.

        Returns:
            Mapping of listener name to port
        """
        ports: Dict[str, int] = {}
        if self.enable_primary:
            ports["primary"] = self.primary_port
        if self.enable_fallback:
            ports["fallback"] = self.fallback_port
        return ports

    def accepted_api_keys(self) -> set:
        """Every key accepted on authenticated routes.

        Returns:
            Set of keys (empty when none configured)
        """
        keys = set(self.api_keys)
        if self.master_api_key:
            keys.add(self.master_api_key)
        return keys


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: A cached instance of the Settings class.

    Examples:
        >>> settings = get_settings()
        >>> isinstance(settings, Settings)
        True
        >>> settings is get_settings()
        True
    """
    # Load from env vars or .env exactly once.
    return Settings()


# Create settings instance
settings = get_settings()
