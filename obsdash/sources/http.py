"""Shared HTTP plumbing for backend data sources."""

import logging
from typing import Any, Optional

import httpx

from obsdash.engine.effects import Fetch
from obsdash.sources.base import DataSource

logger = logging.getLogger(__name__)

USER_AGENT = "obsdash/0.1"


class HttpSource(DataSource):
    """
    Data source backed by a JSON HTTP API.

    The endpoint, bearer token and timeout come from the Fetch effect, so one
    instance serves any endpoint the config points it at. Errors are raised
    as-is (httpx / pydantic exceptions) for the classifier to sort out.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(headers={"User-Agent": USER_AGENT})
        return self._client

    @staticmethod
    def _headers(request: Fetch) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        token = request.auth_token.get_secret_value()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _get_json(self, request: Fetch, path: str, params: Any = None) -> Any:
        """GET endpoint+path and decode the JSON body."""
        url = request.endpoint.rstrip("/") + path
        response = await self._get_client().get(
            url,
            params=params,
            headers=self._headers(request),
            timeout=request.timeout,
        )
        response.raise_for_status()
        return response.json()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
