"""
Case engine client.

Async HTTP access to the case engine REST API plus the endpoint
configuration it runs with.

Modules:
    - config: ServiceConfig and per-endpoint thread-local registration
    - service: CaseService, the httpx based client
    - errors: CaseApiError hierarchy
"""

from caseapi.config import (
    ServiceConfig,
    set_service_config,
    get_service_config,
    is_initialized,
    clear_service_configs,
)
from caseapi.errors import CaseApiError, CaseServiceError, CaseTransportError
from caseapi.service import CaseService, Endpoints

__all__ = [
    'ServiceConfig',
    'set_service_config',
    'get_service_config',
    'is_initialized',
    'clear_service_configs',
    'CaseApiError',
    'CaseServiceError',
    'CaseTransportError',
    'CaseService',
    'Endpoints',
]
