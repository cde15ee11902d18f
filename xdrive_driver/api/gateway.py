"""
API Gateway
===========

Single chokepoint for every HTTP call the client makes.

* JSON content type on every request, ``Authorization: Bearer <token>``
  whenever the token provider returns a token.
* Responses are decoded by declared content type (JSON or text).
* Non-2xx responses become typed ``DriverClientError`` subclasses carrying
  the server message when there is one, else ``"HTTP <code>"``.
* 401 on an authenticated call raises ``AuthError`` *and* fires the
  auth-failure hook so the session is torn down.
* Timeouts are enforced by the ``httpx`` transport.  Retries are opt-in
  (``retry_attempts > 1``), apply to GET only, and only on network errors
  or 5xx -- the backoff follows the usual exponential-with-jitter shape.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional

import httpx

from xdrive_driver.domain.errors import (
    AuthError,
    DriverClientError,
    MalformedResponse,
    NetworkError,
    ServerError,
)

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[Optional[str]]]
AuthFailureHook = Callable[[AuthError], Awaitable[None]]

_BODY_METHODS = {"POST", "PUT", "PATCH"}


def _is_retryable(error: DriverClientError) -> bool:
    if isinstance(error, NetworkError):
        return True
    if isinstance(error, ServerError) and error.status_code is not None:
        return 500 <= error.status_code < 600
    return False


class ApiGateway:
    def __init__(
        self,
        base_url: str,
        *,
        token_provider: TokenProvider | None = None,
        on_auth_failure: AuthFailureHook | None = None,
        timeout: float = 10.0,
        retry_attempts: int = 1,
        retry_backoff: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token_provider = token_provider
        self.on_auth_failure = on_auth_failure
        self.retry_attempts = max(1, retry_attempts)
        self.retry_backoff = retry_backoff
        self._client = httpx.AsyncClient(
            base_url=base_url, timeout=timeout, transport=transport
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Public API ────────────────────────────────────────────────────

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        body: Any = None,
        *,
        params: dict[str, Any] | None = None,
        authenticated: bool = True,
    ) -> Any:
        """Send one request and return decoded JSON (or text)."""
        method = method.upper()
        attempts = self.retry_attempts if method == "GET" else 1

        attempt = 1
        while True:
            try:
                return await self._send(endpoint, method, body, params, authenticated)
            except DriverClientError as exc:
                if attempt >= attempts or not _is_retryable(exc):
                    raise
                delay = self.retry_backoff * (2 ** (attempt - 1))
                delay += delay * 0.1 * random.random()
                logger.info(
                    "%s %s failed (attempt %d/%d): %s. Retrying in %.2fs",
                    method, endpoint, attempt, attempts, exc.message, delay,
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def download(self, url: str) -> bytes:
        """Fetch a binary document (absolute or base-relative URL)."""
        headers = await self._auth_headers(True)
        try:
            response = await self._client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            raise NetworkError() from exc
        if response.is_error:
            raise await self._error_for(response, True)
        return response.content

    # ── Internals ─────────────────────────────────────────────────────

    async def _auth_headers(self, authenticated: bool) -> dict[str, str]:
        headers: dict[str, str] = {}
        if authenticated and self.token_provider is not None:
            token = await self.token_provider()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _send(
        self,
        endpoint: str,
        method: str,
        body: Any,
        params: dict[str, Any] | None,
        authenticated: bool,
    ) -> Any:
        headers = {"Content-Type": "application/json"}
        headers.update(await self._auth_headers(authenticated))
        kwargs: dict[str, Any] = {"headers": headers, "params": params}
        if body is not None and method in _BODY_METHODS:
            kwargs["json"] = body

        try:
            response = await self._client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s: transport error %r", method, endpoint, exc)
            raise NetworkError() from exc

        if response.is_error:
            raise await self._error_for(response, authenticated)
        return self._decode(response)

    @staticmethod
    def _is_json(response: httpx.Response) -> bool:
        return "application/json" in response.headers.get("content-type", "")

    def _decode(self, response: httpx.Response) -> Any:
        if self._is_json(response):
            try:
                return response.json()
            except ValueError as exc:
                raise MalformedResponse() from exc
        return response.text

    async def _error_for(
        self, response: httpx.Response, authenticated: bool
    ) -> DriverClientError:
        message = None
        if self._is_json(response):
            try:
                payload = response.json()
            except ValueError:
                payload = None
            if isinstance(payload, dict):
                message = payload.get("message") or payload.get("detail")
                if not isinstance(message, str):
                    message = None

        code = response.status_code
        logger.warning(
            "%s %s -> HTTP %d", response.request.method, response.request.url.path, code
        )
        if code == 401:
            error = AuthError(message)
            if authenticated and self.on_auth_failure is not None:
                await self.on_auth_failure(error)
            return error
        return ServerError(message or f"HTTP {code}", status_code=code)
