from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx


class BackendError(RuntimeError):
    """Raised when a call to the AI backend fails."""

    def __init__(
        self,
        code: str,
        message: str,
        retryable: bool = False,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = retryable
        self.status_code = status_code


def build_status_error(response: httpx.Response) -> BackendError:
    """Build a normalized backend error from an HTTP response."""

    status = response.status_code
    message = _extract_response_message(response)
    formatted = f"Backend returned {status} {response.reason_phrase}: {message}"
    if status in {408, 429}:
        code = "BACKEND_TIMEOUT" if status == 408 else "BACKEND_RATE_LIMIT"
        return BackendError(code, formatted, retryable=True, status_code=status)
    if status >= 500:
        return BackendError(
            "BACKEND_UPSTREAM",
            formatted,
            retryable=True,
            status_code=status,
        )
    return BackendError("BACKEND_BAD_STATUS", formatted, status_code=status)


def _extract_response_message(response: httpx.Response) -> str:
    """Extract a concise error message from backend JSON/text payloads."""

    try:
        payload: Any = response.json()
    except ValueError:
        return (response.text or "Unknown error from backend.").strip()

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            detail = error.get("message") or error.get("code")
            if isinstance(detail, str) and detail.strip():
                return detail.strip()
        if isinstance(error, str) and error.strip():
            return error.strip()
        for key in ("message", "detail", "msg"):
            message = payload.get(key)
            if isinstance(message, str) and message.strip():
                return message.strip()
    return (response.text or "Unknown error from backend.").strip()


class HTTPBackendClient:
    """Shared HTTP behavior for backend calls."""

    def __init__(
        self, timeout_sec: float = 30, http_client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self._timeout = timeout_sec
        self._client = http_client

    async def _request_json(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        params: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        response = await self._request(method, url, headers=headers, params=params, json=json)
        try:
            payload = response.json()
        except ValueError as exc:
            raise BackendError("BACKEND_PARSE_ERROR", "Invalid JSON from backend.") from exc
        if not isinstance(payload, dict):
            raise BackendError("BACKEND_PARSE_ERROR", "Backend returned invalid JSON payload.")
        return payload

    async def _request(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        params: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        try:
            if self._client:
                response = await self._client.request(
                    method, url, headers=headers, params=params, json=json, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(
                        method, url, headers=headers, params=params, json=json
                    )
        except httpx.TimeoutException as exc:
            raise BackendError(
                "BACKEND_TIMEOUT", "Backend request timed out.", retryable=True
            ) from exc
        except httpx.RequestError as exc:
            raise BackendError(
                "BACKEND_CONNECTION_ERROR",
                f"Backend connection failed: {exc}",
                retryable=True,
            ) from exc
        if response.status_code >= 400:
            raise build_status_error(response)
        return response

    @asynccontextmanager
    async def _stream(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> AsyncIterator[httpx.Response]:
        """Open a streaming request; non-2xx responses raise before yielding."""

        if self._client:
            async with self._open_stream(self._client, method, url, headers, json) as response:
                yield response
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                async with self._open_stream(client, method, url, headers, json) as response:
                    yield response

    @asynccontextmanager
    async def _open_stream(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        headers: Optional[dict[str, str]],
        json: Optional[dict[str, Any]],
    ) -> AsyncIterator[httpx.Response]:
        try:
            # Reads are unbounded here; the caller enforces the stream budget.
            timeout = httpx.Timeout(self._timeout, read=None)
            async with client.stream(
                method, url, headers=headers, json=json, timeout=timeout
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise build_status_error(response)
                yield response
        except httpx.TimeoutException as exc:
            raise BackendError(
                "BACKEND_TIMEOUT", "Backend stream timed out.", retryable=True
            ) from exc
        except httpx.RequestError as exc:
            raise BackendError(
                "BACKEND_CONNECTION_ERROR",
                f"Backend stream failed: {exc}",
                retryable=True,
            ) from exc
