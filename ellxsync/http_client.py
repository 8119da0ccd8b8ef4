from __future__ import annotations

import logging
from typing import Any

import httpx

from ellxsync.errors import RemoteError


logger = logging.getLogger(__name__)


def _error_payload(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class JsonClient:
    """JSON-over-HTTP client bound to one base URL and a fixed header set.

    Each verb takes a path relative to the base URL and an optional body that
    is sent as JSON. A 2xx answer returns the decoded JSON (``None`` for an
    empty body); anything else raises :class:`RemoteError` carrying the status
    text and, when the body decodes, the error payload.
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json", **(headers or {})},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "JsonClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(self, method: str, path: str, body: Any = None) -> Any:
        kwargs: dict[str, Any] = {}
        if body is not None:
            kwargs["json"] = body
        logger.debug("%s %s%s", method, self.base_url, path)
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteError(f"{type(exc).__name__}: {exc}", url=f"{method} {path}") from exc

        if not response.is_success:
            payload = _error_payload(response)
            logger.error(
                "%s %s%s failed with %s %s: %s",
                method,
                self.base_url,
                path,
                response.status_code,
                response.reason_phrase,
                payload,
            )
            raise RemoteError(
                response.reason_phrase or "HTTP error",
                status_code=response.status_code,
                url=f"{method} {path}",
                payload=payload,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteError(
                "Invalid JSON response",
                status_code=response.status_code,
                url=f"{method} {path}",
            ) from exc

    async def get(self, path: str, body: Any = None) -> Any:
        return await self.request("GET", path, body)

    async def put(self, path: str, body: Any = None) -> Any:
        return await self.request("PUT", path, body)

    async def post(self, path: str, body: Any = None) -> Any:
        return await self.request("POST", path, body)

    async def patch(self, path: str, body: Any = None) -> Any:
        return await self.request("PATCH", path, body)

    async def delete(self, path: str, body: Any = None) -> Any:
        return await self.request("DELETE", path, body)
