"""HTTP client for the crawl control interface."""
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..exceptions import NetworkError
from ..models import (
    CrawlConfig,
    CrawlStatusResponse,
    ExportRequest,
    ExportResponse,
    StartResponse,
)
from ..utils.logger import logger


class ControlClient:
    """Async request/response client for lifecycle commands and snapshots.

    Every transport or HTTP failure is raised as :class:`NetworkError`; no call is
    retried here, the caller decides.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the control client.

        Args:
            base_url: API root, e.g. ``http://localhost:8080/api``. Defaults to settings.api_base_url
            timeout: Request timeout in seconds. Defaults to settings.request_timeout
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout or settings.request_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Async context manager entry."""
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self, method: str, path: str, json: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Issue one request and decode the JSON body.

        Returns:
            Decoded JSON body, or None for an empty body

        Raises:
            NetworkError: On connection failure, timeout, non-2xx status or bad JSON
        """
        client = self._ensure_client()
        logger.debug(f"{method} {self.base_url}{path}")

        try:
            response = await client.request(method, path, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NetworkError(
                f"HTTP {e.response.status_code}: {e.response.reason_phrase} ({method} {path})",
                status_code=e.response.status_code,
            ) from e
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Request timed out after {self.timeout} seconds ({method} {path})"
            ) from e
        except httpx.RequestError as e:
            raise NetworkError(f"Request failed: {e} ({method} {path})") from e

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(f"Invalid JSON in response to {method} {path}") from e

    async def _command(self, session_id: str, action: str) -> Optional[CrawlStatusResponse]:
        data = await self._request("POST", f"/crawler/{session_id}/{action}")
        if isinstance(data, dict) and data.get("sessionId") is not None:
            return CrawlStatusResponse.model_validate(data)
        return None

    async def _collection(self, session_id: str, name: str) -> List[Dict[str, Any]]:
        data = await self._request("GET", f"/crawler/{session_id}/{name}")
        if data is None:
            return []
        if not isinstance(data, list):
            raise NetworkError(f"Expected a list from /crawler/{session_id}/{name}")
        return data

    async def start(self, config: CrawlConfig) -> StartResponse:
        """Start a crawl and return the new session snapshot."""
        data = await self._request("POST", "/crawler/start", json=config.to_wire())
        if not isinstance(data, dict) or data.get("sessionId") is None:
            raise NetworkError("Start response did not include a sessionId")
        return StartResponse.model_validate(data)

    async def pause(self, session_id: str) -> Optional[CrawlStatusResponse]:
        return await self._command(session_id, "pause")

    async def resume(self, session_id: str) -> Optional[CrawlStatusResponse]:
        return await self._command(session_id, "resume")

    async def stop(self, session_id: str) -> Optional[CrawlStatusResponse]:
        return await self._command(session_id, "stop")

    async def status(self, session_id: str) -> CrawlStatusResponse:
        """Fetch the server's snapshot of a session."""
        data = await self._request("GET", f"/crawler/{session_id}/status")
        if not isinstance(data, dict):
            raise NetworkError(f"Unexpected status response for session {session_id}")
        return CrawlStatusResponse.model_validate(data)

    async def pages(self, session_id: str) -> List[Dict[str, Any]]:
        return await self._collection(session_id, "pages")

    async def flows(self, session_id: str) -> List[Dict[str, Any]]:
        return await self._collection(session_id, "flows")

    async def extracted_data(self, session_id: str) -> List[Dict[str, Any]]:
        return await self._collection(session_id, "extracted")

    async def downloads(self, session_id: str) -> List[Dict[str, Any]]:
        return await self._collection(session_id, "downloads")

    async def external_urls(self, session_id: str) -> List[Dict[str, Any]]:
        return await self._collection(session_id, "external-urls")

    async def export(self, session_id: str, request: ExportRequest) -> ExportResponse:
        """Ask the server to export a session's results.

        The server may answer ``{"files": {...}}`` or the bare format-to-path map.
        """
        body = {"sessionId": session_id, **request.to_wire()}
        data = await self._request("POST", f"/crawler/{session_id}/export", json=body)
        if data is None:
            return ExportResponse()
        if not isinstance(data, dict):
            raise NetworkError(f"Unexpected export response for session {session_id}")
        files = data.get("files") if isinstance(data.get("files"), dict) else data
        return ExportResponse(files={str(k): str(v) for k, v in files.items()})
