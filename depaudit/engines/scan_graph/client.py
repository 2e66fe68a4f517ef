"""Async client for the dependency graph scanning service."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from depaudit import __version__
from depaudit.core.config import ServerDetails
from depaudit.engines.scan_graph.models import GraphNode, ScanResponse
from depaudit.exceptions import ScanServiceError

log = structlog.get_logger("depaudit.scan_graph")

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds
_POLL_INTERVAL = 5.0  # seconds
_DEFAULT_MAX_POLLS = 360


class XrayGraphClient:
    """Thin async wrapper around the ``scan/graph`` REST endpoints."""

    def __init__(
        self,
        server_details: ServerDetails,
        *,
        timeout: float = 120.0,
        poll_interval: float = _POLL_INTERVAL,
        max_polls: int = _DEFAULT_MAX_POLLS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        base_url = server_details.get_xray_url()
        if not base_url:
            raise ScanServiceError("no scanning service URL configured (set --url or DEPAUDIT_URL)")
        headers = {
            "Accept": "application/json",
            "User-Agent": f"depaudit/{__version__}",
            **server_details.auth_headers(),
        }
        self._poll_interval = poll_interval
        self._max_polls = max_polls
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            auth=server_details.basic_auth(),
            timeout=timeout,
            transport=transport,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> XrayGraphClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    async def get_version(self) -> str:
        resp = await self._request_with_retry("GET", "api/v1/system/version")
        return resp.json().get("xray_version", "")

    async def scan_graph(self, graph: GraphNode, query: dict[str, Any] | None = None) -> str:
        """Submit a dependency graph, returning the scan id."""
        resp = await self._request_with_retry(
            "POST", "api/v1/scan/graph", params=query, json=graph.payload()
        )
        scan_id = resp.json().get("scan_id")
        if not scan_id:
            raise ScanServiceError("scan graph response did not contain a scan_id")
        log.debug("scan_graph.submitted", scan_id=scan_id, nodes=len(graph.nodes))
        return scan_id

    async def get_scan_graph_results(
        self,
        scan_id: str,
        query: dict[str, Any] | None = None,
    ) -> ScanResponse:
        """Poll until the scan completes (HTTP 200); 202 means still in progress."""
        for attempt in range(self._max_polls):
            resp = await self._request_with_retry(
                "GET", f"api/v1/scan/graph/{scan_id}", params=query
            )
            if resp.status_code == 200:
                return ScanResponse.model_validate(resp.json())
            log.debug("scan_graph.in_progress", scan_id=scan_id, attempt=attempt + 1)
            await asyncio.sleep(self._poll_interval)
        raise ScanServiceError(f"scan {scan_id} did not complete after {self._max_polls} polls")

    # ── internal ───────────────────────────────────────────────────────────

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send with exponential backoff on 5xx and transport errors.

        4xx responses and other HTTP errors (redirect loops, undecodable
        bodies) are fatal and raised as ScanServiceError.
        """
        last_exc: Exception | None = None
        for attempt in range(_MAX_RETRIES):
            try:
                resp = await self._client.request(method, url, **kwargs)
                if resp.status_code < 400:
                    return resp
                if resp.status_code < 500:
                    raise ScanServiceError(
                        f"scanning service rejected {method} {url} "
                        f"({resp.status_code}): {resp.text.strip()[:500]}",
                        status_code=resp.status_code,
                    )
                log.warning(
                    "scan_graph.server_error",
                    url=url,
                    status=resp.status_code,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = ScanServiceError(
                    f"scanning service error ({resp.status_code}) on {method} {url}",
                    status_code=resp.status_code,
                )
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                log.warning(
                    "scan_graph.transport_error",
                    url=url,
                    error=str(exc) or type(exc).__name__,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = exc
            except httpx.HTTPError as exc:
                detail = str(exc) or type(exc).__name__
                raise ScanServiceError(
                    f"scanning service request {method} {url} failed: {detail}"
                ) from exc

            if attempt < _MAX_RETRIES - 1:
                await asyncio.sleep(_RETRY_BASE_DELAY * (2**attempt))

        if isinstance(last_exc, ScanServiceError):
            raise last_exc
        raise ScanServiceError(f"scanning service unreachable: {last_exc}") from last_exc
