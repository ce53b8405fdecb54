"""
Async client for the case engine REST API.

Every collaborator call the case container depends on lives here:
assignments, cases, views, pages, data pages and case types.

Responses:
- 204 → None
- 2xx JSON → decoded dict (an ``etag`` response header is copied into it)
- 2xx text → str
- 2xx with a body that is not the JSON it claims → CaseServiceError
- any other status → CaseServiceError carrying the decoded payload
- transport failure → CaseTransportError
"""

import logging
from typing import Any, Dict, Optional

import httpx

from caseapi.config import ServiceConfig, get_service_config
from caseapi.errors import CaseServiceError, CaseTransportError

logger = logging.getLogger(__name__)


class Endpoints:
    """Path segments of the case engine API."""
    CASES = "cases"
    CASETYPES = "casetypes"
    VIEWS = "views"
    ASSIGNMENTS = "assignments"
    ACTIONS = "actions"
    PAGES = "pages"
    DATA = "data"
    REFRESH = "refresh"


class CaseService:
    """Thin async wrapper over httpx for one case engine endpoint.

    Example:
        async with CaseService(ServiceConfig(base_url="https://host/api/v1/")) as service:
            assignment = await service.fetch_assignment("ASSIGN-WORKLIST C-1!FLOW")

    Args:
        config: Endpoint configuration
        transport: Optional httpx transport (tests pass httpx.MockTransport)
    """

    def __init__(self, config: ServiceConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    @classmethod
    def for_endpoint(cls, base_url: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> "CaseService":
        """Client for an endpoint registered with set_service_config.

        Raises:
            ValueError: no config is registered for base_url
        """
        config = get_service_config(base_url)
        if config is None:
            raise ValueError(f"No service config registered for {base_url!r}")
        return cls(config, transport=transport)

    @property
    def base_url(self) -> str:
        return self.config.base_url

    @property
    def active_config(self) -> ServiceConfig:
        """Config registered for this endpoint, else the one given at construction.

        A token registered after the client was built applies to its next request.
        """
        return get_service_config(self.config.base_url) or self.config

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.timeout),
                verify=self.config.verify_ssl,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "CaseService":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _build_headers(self, etag: Optional[str] = None) -> Dict[str, str]:
        headers = {}
        auth_header = self.active_config.auth_header
        if auth_header:
            headers["Authorization"] = auth_header
        if etag:
            headers["If-Match"] = etag
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        etag: Optional[str] = None,
    ) -> Any:
        client = self._get_http_client()
        logger.debug(f"{method} {path} params={params}")
        try:
            response = await client.request(
                method,
                path,
                json=json,
                params=params,
                headers=self._build_headers(etag),
            )
        except httpx.HTTPError as e:
            logger.warning(f"Transport failure on {method} {path}: {e}")
            raise CaseTransportError(f"{method} {path} failed: {e}") from e

        if response.status_code == 204:
            return None

        content_type = response.headers.get("content-type", "").lower()
        if 200 <= response.status_code < 300:
            if "application/json" in content_type:
                try:
                    data = response.json()
                except ValueError as e:
                    logger.error(f"{method} {path} returned undecodable JSON: {e}")
                    raise CaseServiceError(response.status_code, response.text or None) from e
                etag_header = response.headers.get("etag")
                if etag_header and isinstance(data, dict):
                    data["etag"] = etag_header
                return data
            if "text" in content_type:
                return response.text
            return None

        try:
            payload = response.json()
        except ValueError:
            payload = response.text or None
        logger.debug(f"{method} {path} returned {response.status_code}: {payload!r}")
        raise CaseServiceError(response.status_code, payload)

    # ========== ASSIGNMENTS ==========

    async def fetch_assignment(self, assignment_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"{Endpoints.ASSIGNMENTS}/{assignment_id}")

    async def fetch_next_assignment(self) -> Dict[str, Any]:
        return await self._request("GET", f"{Endpoints.ASSIGNMENTS}/next")

    async def fetch_view_for_action(self, assignment_id: str, action_id: str) -> Dict[str, Any]:
        """Fetch the view tree rendered for one assignment action."""
        return await self._request(
            "GET", f"{Endpoints.ASSIGNMENTS}/{assignment_id}/{Endpoints.ACTIONS}/{action_id}"
        )

    async def refresh_assignment(
        self, assignment_id: str, action_id: str, body: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Post the current content and get the recomputed view back.

        A ``refreshFor`` entry in ``body`` is moved to the query string.
        """
        body = dict(body or {})
        params = None
        refresh_for = body.pop("refreshFor", None)
        if refresh_for:
            params = {"refreshFor": refresh_for}
        return await self._request(
            "PUT",
            f"{Endpoints.ASSIGNMENTS}/{assignment_id}/{Endpoints.ACTIONS}/{action_id}/{Endpoints.REFRESH}",
            json=body,
            params=params,
        )

    async def perform_action(
        self, assignment_id: str, action_id: str, body: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Submit an assignment action; returns nextAssignmentID and/or nextPageID."""
        return await self._request(
            "POST",
            f"{Endpoints.ASSIGNMENTS}/{assignment_id}",
            json=body,
            params={"actionID": action_id},
        )

    # ========== CASES ==========

    async def fetch_case(self, case_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"{Endpoints.CASES}/{case_id}")

    async def create_case(self, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", Endpoints.CASES, json=body)

    async def update_case(self, case_id: str, body: Dict[str, Any], etag: Optional[str] = None) -> Any:
        return await self._request("PUT", f"{Endpoints.CASES}/{case_id}", json=body, etag=etag)

    async def fetch_case_types(self) -> Dict[str, Any]:
        return await self._request("GET", Endpoints.CASETYPES)

    async def fetch_view(self, case_id: str, view_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"{Endpoints.CASES}/{case_id}/{Endpoints.VIEWS}/{view_id}")

    async def fetch_page(self, case_id: str, page_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"{Endpoints.CASES}/{case_id}/{Endpoints.PAGES}/{page_id}")

    # ========== DATA PAGES ==========

    async def fetch_options(self, data_page_id: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Fetch a data page; option rows live under ``pxResults``."""
        return await self._request("GET", f"{Endpoints.DATA}/{data_page_id}", params=params or None)
