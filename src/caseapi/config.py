"""
Case engine endpoint configuration.

Provides thread-local storage for per-endpoint service configuration.
A deployment can talk to several case engines at once, so configurations
are keyed by their normalized base URL.

ENDPOINT PATTERN:
- ServiceConfig: immutable description of one endpoint (URL, timeout, token)
- _service_configs: base_url -> threading.local holding the active ServiceConfig

Default behavior: callers build a ServiceConfig explicitly or from the
environment and register it with set_service_config().
"""

import os
import threading
from dataclasses import dataclass, replace
from typing import Dict, Optional


_TRUE_VALUES = {"1", "true", "yes", "on"}


def normalize_base_url(base_url: str) -> str:
    """Strip whitespace and guarantee a single trailing slash."""
    base_url = base_url.strip()
    if not base_url.endswith("/"):
        base_url += "/"
    return base_url


@dataclass(frozen=True)
class ServiceConfig:
    """Immutable configuration of one case engine endpoint.

    base_url is the API root, e.g. ``https://host/prweb/api/v1/``.
    access_token is an optional static bearer token; token bootstrap and
    refresh happen outside this library.
    """
    base_url: str
    timeout: float = 30.0
    access_token: Optional[str] = None
    verify_ssl: bool = True

    def __post_init__(self):
        if not self.base_url:
            raise ValueError("ServiceConfig requires a base_url")
        object.__setattr__(self, "base_url", normalize_base_url(self.base_url))

    @classmethod
    def from_env(cls, prefix: str = "CASEAPI_") -> "ServiceConfig":
        """Build a config from ``<prefix>BASE_URL`` and friends.

        Raises:
            ValueError: if ``<prefix>BASE_URL`` is not set.
        """
        base_url = os.environ.get(f"{prefix}BASE_URL")
        if not base_url:
            raise ValueError(f"Environment variable {prefix}BASE_URL is not set")
        timeout = float(os.environ.get(f"{prefix}TIMEOUT", "30"))
        access_token = os.environ.get(f"{prefix}ACCESS_TOKEN") or None
        verify_ssl = os.environ.get(f"{prefix}VERIFY_SSL", "true").strip().lower() in _TRUE_VALUES
        return cls(
            base_url=base_url,
            timeout=timeout,
            access_token=access_token,
            verify_ssl=verify_ssl,
        )

    def with_token(self, access_token: Optional[str]) -> "ServiceConfig":
        """Return a copy carrying a different bearer token."""
        return replace(self, access_token=access_token)

    @property
    def auth_header(self) -> Optional[str]:
        return f"Bearer {self.access_token}" if self.access_token else None


# Per-endpoint thread-local storage
_service_configs: Dict[str, threading.local] = {}


def set_service_config(config: ServiceConfig) -> None:
    """Register the active config for its endpoint.

    Called when:
    - App startup reads endpoint settings
    - A new access token has been obtained for an endpoint
    """
    if config.base_url not in _service_configs:
        _service_configs[config.base_url] = threading.local()
    _service_configs[config.base_url].value = config


def get_service_config(base_url: str) -> Optional[ServiceConfig]:
    """Get the active config for an endpoint, or None if not registered."""
    context = _service_configs.get(normalize_base_url(base_url))
    return getattr(context, "value", None) if context else None


def is_initialized(base_url: str) -> bool:
    """True when an endpoint is registered and carries an access token."""
    config = get_service_config(base_url)
    return bool(config and config.access_token)


def clear_service_configs() -> None:
    """Forget every registered endpoint. For testing only."""
    _service_configs.clear()
