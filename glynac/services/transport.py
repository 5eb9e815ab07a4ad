"""
Transport - the single place that talks to the network.

Wraps httpx.AsyncClient:
- serializes JSON / form / multipart bodies
- enforces a total deadline and a caller cancellation token
- classifies failed responses into the ApiError taxonomy, including 2xx
  envelopes that report success: false

The transport never retries and never touches the cache.
"""

import asyncio
import time
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

import httpx
from loguru import logger

from glynac.services.errors import (
    ApiError,
    AuthExpiredError,
    ClientError,
    NetworkError,
    RateLimitError,
    RejectedError,
    RequestCancelledError,
    RequestTimeoutError,
    ServerError,
)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "X-Requested-With": "XMLHttpRequest",
}

FileSpec = tuple[str, bytes, str]  # (filename, content, content_type)


class CancellationToken:
    """
    Lets a caller abandon an in-flight request.

    Usage:
        token = CancellationToken()
        task = asyncio.create_task(client.request(..., cancel_token=token))
        token.cancel("user navigated away")
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(frozen=True)
class RequestDescriptor:
    """Everything needed to perform one logical call."""

    method: str
    path: str
    params: Mapping[str, Any] | None = None
    json: Any = None
    data: Mapping[str, Any] | None = None
    files: Mapping[str, FileSpec] | None = None
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0
    retry_on_timeout: bool = False
    cancel_token: CancellationToken | None = None

    def with_headers(self, headers: Mapping[str, str]) -> "RequestDescriptor":
        """Return a copy with extra headers merged in."""
        return replace(self, headers={**self.headers, **headers})

    def without_header(self, name: str) -> "RequestDescriptor":
        lowered = name.lower()
        return replace(
            self,
            headers={k: v for k, v in self.headers.items() if k.lower() != lowered},
        )


class Transport:
    """
    Sends RequestDescriptors over HTTP.

    Usage:
        transport = Transport(base_url="http://localhost:3000/api")
        body = await transport.send(RequestDescriptor("GET", "/employees"))
    """

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        debug: bool = False,
    ):
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client
        self._debug = debug

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=DEFAULT_HEADERS,
                follow_redirects=True,
            )
        return self._http_client

    async def send(self, descriptor: RequestDescriptor) -> Any:
        """
        Perform the request and return the parsed JSON body.

        Raises:
            RequestTimeoutError: deadline exceeded (socket is closed)
            RequestCancelledError: cancellation token fired
            NetworkError: no response received
            ClientError / ServerError: failed status, classified
        """
        token = descriptor.cancel_token
        if token is not None and token.cancelled:
            raise RequestCancelledError(descriptor.path)

        client = await self._get_http_client()
        started = time.monotonic()

        request_task = asyncio.ensure_future(
            client.request(
                method=descriptor.method,
                url=self._url(descriptor.path),
                params=descriptor.params,
                headers={**DEFAULT_HEADERS, **descriptor.headers},
                json=descriptor.json,
                data=descriptor.data,
                files=descriptor.files,
                timeout=descriptor.timeout,
            )
        )
        waiters: set[asyncio.Future[Any]] = {request_task}
        cancel_task = None
        if token is not None:
            cancel_task = asyncio.ensure_future(token.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=descriptor.timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in waiters:
                if not task.done():
                    task.cancel()

        if request_task not in done:
            # Let the cancelled request unwind so its connection is released
            await asyncio.gather(request_task, return_exceptions=True)
            if cancel_task is not None and cancel_task in done:
                self._log(f"CANCEL: {descriptor.method} {descriptor.path}")
                raise RequestCancelledError(descriptor.path)
            logger.warning(
                f"{descriptor.method} {descriptor.path} exceeded {descriptor.timeout}s"
            )
            raise RequestTimeoutError(descriptor.path, descriptor.timeout)

        try:
            response = request_task.result()
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(descriptor.path, descriptor.timeout) from e
        except httpx.RequestError as e:
            raise NetworkError(
                str(e) or f"Network error: {type(e).__name__}"
            ) from e

        duration_ms = (time.monotonic() - started) * 1000
        self._log(
            f"{descriptor.method} {descriptor.path} -> "
            f"{response.status_code} ({duration_ms:.0f}ms)"
        )

        if response.is_error:
            raise self.classify(response)

        body = self._parse_body(response)
        if isinstance(body, dict) and body.get("success") is False:
            raise RejectedError(
                body.get("error") or body.get("message") or "Request was rejected",
                status=response.status_code,
                code=body.get("code"),
                details=body.get("details"),
            )
        return body

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(
                f"Invalid JSON response ({response.status_code})",
                status=response.status_code,
                code="invalid_response",
            ) from e

    @staticmethod
    def classify(response: httpx.Response) -> ApiError:
        """Turn a failed response into the matching ApiError subclass."""
        status = response.status_code
        fallback = f"{status} {response.reason_phrase}".strip()

        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            message = body.get("message") or body.get("error") or fallback
            code = body.get("code")
            details = body.get("details")
        else:
            message = fallback
            code = "unknown_error"
            details = None

        if status == 401:
            return AuthExpiredError(message, status=status, code=code, details=details)
        if status == 429:
            return RateLimitError(
                message,
                code=code,
                details=details,
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
            )
        if 400 <= status < 500:
            return ClientError(message, status=status, code=code, details=details)
        if status >= 500:
            return ServerError(message, status=status, code=code, details=details)
        return ApiError(message, status=status, code=code, details=details)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[Transport] {message}")


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None
