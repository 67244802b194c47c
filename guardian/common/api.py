"""
Control API Client

Thin httpx wrapper around the Cloud Guardian REST API.
Every request authenticates with the ``x-api-key`` header and opens a
short-lived AsyncClient, the same way heartbeats are sent.

Status handling:
- 200 -> success
- 401 -> ClientConfigError (API key is wrong, fatal)
- 404 -> ClientConfigError on reporting endpoints (API URL is wrong, fatal),
         callers may opt out for lookups where 404 means "nothing found"
- anything else / transport failure -> ApiError (recoverable)
"""

import json
from typing import Any

import httpx

from .config import AgentConfig
from .exceptions import ApiError, ClientConfigError
from .logging_setup import get_service_logger

logger = get_service_logger("api")


def parse_error_response(body: str) -> str:
    """Extract ``message`` from a JSON error body, else return the body"""
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return body
    if isinstance(data, dict) and isinstance(data.get("message"), str):
        return data["message"]
    return body


class ApiClient:
    """Authenticated JSON client for the control API"""

    def __init__(
        self,
        config: AgentConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = config.api_url
        self.api_key = config.api_key
        self.timeout = config.request_timeout_s
        self._transport = transport

    def url(self, path: str) -> str:
        return f"{self.base_url}{path.lstrip('/')}"

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
        }

    async def get(
        self,
        path: str,
        params: dict[str, str] | None = None,
        not_found_ok: bool = False,
    ) -> Any | None:
        """
        GET a JSON document.

        Returns:
            Decoded JSON body, or None on 404 when ``not_found_ok``
        """
        response = await self._request("GET", path, params=params)
        if response.status_code == 404 and not_found_ok:
            return None
        self._check(response, path)
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(f"invalid JSON from {path}: {e}", response.status_code, self.url(path)) from e

    async def post(self, path: str, payload: dict[str, Any], params: dict[str, str] | None = None) -> None:
        """POST a JSON payload"""
        response = await self._request("POST", path, params=params, json=payload)
        self._check(response, path)

    async def put(self, path: str, payload: dict[str, Any], not_found_fatal: bool = True) -> None:
        """PUT a JSON payload"""
        response = await self._request("PUT", path, json=payload)
        self._check(response, path, not_found_fatal=not_found_fatal)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = self.url(path)
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                return await client.request(method, url, headers=self._headers, **kwargs)
        except httpx.HTTPError as e:
            raise ApiError(f"{method} {url} failed: {e}", url=url) from e

    def _check(self, response: httpx.Response, path: str, not_found_fatal: bool = True) -> None:
        status = response.status_code
        if status == 200:
            return

        url = self.url(path)
        if status == 401:
            raise ClientConfigError(
                "Invalid API key. Please check your API key in the configuration file "
                "or command line arguments.",
                status,
                url,
            )
        if status == 404 and not_found_fatal:
            raise ClientConfigError(f"API URL is incorrect: {self.base_url}", status, url)

        message = parse_error_response(response.text)
        kind = "client error" if 400 <= status < 500 else "server error"
        raise ApiError(f"{kind} {status} from {path}: {message}", status, url)
