"""
ApiClient - resilient async client for the Glynac API.

Combines:
- Transport for HTTP calls (httpx)
- RetryPolicy for backoff (queries vs mutations)
- AuthTokenManager for bearer tokens and session lifecycle
- QueryCache for cached, de-duplicated queries
- the declarative mutation -> invalidation map in glynac.keys
"""

import asyncio
from typing import Any, Iterable, Mapping

import httpx
from loguru import logger

from glynac.keys import INVALIDATIONS, Operation, QueryKey
from glynac.services.auth import AuthSession, AuthTokenManager, SessionEvent
from glynac.services.cache import QueryCache
from glynac.services.errors import AuthExpiredError
from glynac.services.retry import (
    MUTATION_RETRY_POLICY,
    QUERY_RETRY_POLICY,
    RetryPolicy,
    Sleep,
)
from glynac.services.storage import FileSessionStore, MemorySessionStore, SessionStore
from glynac.services.transport import CancellationToken, RequestDescriptor, Transport
from glynac.settings import global_settings


def default_session_store() -> SessionStore:
    """File-backed store when GLYNAC_SESSION_FILE is set, in-memory otherwise."""
    if global_settings.session_file:
        return FileSessionStore(global_settings.session_file)
    return MemorySessionStore()


class ApiClient:
    """
    Unified API client with retries, auth and query caching.

    Usage:
        async with ApiClient() as client:
            employees = await client.query(("employees", "list"), "/employees")
            await client.mutate(
                Operation.CREATE_EMPLOYEE, "POST", "/employees", json=payload
            )
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        stale_time: float | None = None,
        gc_time: float | None = None,
        cache_max_size: int | None = None,
        store: SessionStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        invalidations: Mapping[Operation, Iterable[QueryKey]] | None = None,
        sleep: Sleep = asyncio.sleep,
        debug: bool | None = None,
    ):
        settings = global_settings
        self._debug = settings.debug if debug is None else debug
        self._timeout = timeout if timeout is not None else settings.api_timeout
        self._max_retries = (
            max_retries if max_retries is not None else settings.max_retries
        )
        self._retry_delay = (
            retry_delay if retry_delay is not None else settings.retry_delay
        )
        self._sleep = sleep
        self._invalidations = INVALIDATIONS if invalidations is None else invalidations

        self.transport = Transport(
            base_url or settings.api_base_url,
            http_client=http_client,
            debug=self._debug,
        )
        self.cache = QueryCache(
            default_stale_time=(
                stale_time if stale_time is not None else settings.query_stale_time
            ),
            gc_time=gc_time if gc_time is not None else settings.query_gc_time,
            max_size=(
                cache_max_size
                if cache_max_size is not None
                else settings.cache_max_size
            ),
            debug=self._debug,
        )
        self.auth = AuthTokenManager(
            store or default_session_store(),
            refresher=self._exchange_token,
        )
        self.auth.restore()
        self.auth.subscribe(self._on_session_event)

    def build(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        data: Mapping[str, Any] | None = None,
        files: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        retry_on_timeout: bool = False,
        cancel_token: CancellationToken | None = None,
    ) -> RequestDescriptor:
        """Create a RequestDescriptor with client defaults filled in."""
        return RequestDescriptor(
            method=method.upper(),
            path=path,
            params=params,
            json=json,
            data=data,
            files=files,
            headers=dict(headers or {}),
            timeout=timeout if timeout is not None else self._timeout,
            max_retries=max_retries if max_retries is not None else self._max_retries,
            retry_delay=retry_delay if retry_delay is not None else self._retry_delay,
            retry_on_timeout=retry_on_timeout,
            cancel_token=cancel_token,
        )

    async def send(
        self,
        descriptor: RequestDescriptor,
        policy: RetryPolicy = QUERY_RETRY_POLICY,
    ) -> Any:
        """
        Send a descriptor with auth and retries applied.

        A 401 on an authenticated request tears the session down.

        Raises:
            ApiError: final, classified failure after retries
        """
        sent_with_token = False

        async def attempt() -> Any:
            nonlocal sent_with_token
            attached = self.auth.attach(descriptor)
            sent_with_token = "Authorization" in attached.headers
            return await self.transport.send(attached)

        try:
            return await policy.execute(
                attempt,
                max_retries=descriptor.max_retries,
                base_delay=descriptor.retry_delay,
                retry_on_timeout=descriptor.retry_on_timeout,
                label=f"{descriptor.method} {descriptor.path}",
                sleep=self._sleep,
            )
        except AuthExpiredError:
            if sent_with_token:
                self.auth.on_unauthorized()
            raise

    async def query(
        self,
        key: Iterable[Any],
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        stale_time: float | None = None,
        **options: Any,
    ) -> Any:
        """Cached GET. Concurrent calls for the same key share one request."""
        descriptor = self.build("GET", path, params=params, **options)
        return await self.cache.fetch(
            key,
            lambda: self.send(descriptor, QUERY_RETRY_POLICY),
            stale_time=stale_time,
        )

    async def prefetch(
        self,
        key: Iterable[Any],
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        stale_time: float | None = None,
        **options: Any,
    ) -> None:
        """Warm a query; failures are logged and swallowed."""
        descriptor = self.build("GET", path, params=params, **options)
        await self.cache.prefetch(
            key,
            lambda: self.send(descriptor, QUERY_RETRY_POLICY),
            stale_time=stale_time,
        )

    async def mutate(
        self,
        operation: Operation,
        method: str,
        path: str,
        **options: Any,
    ) -> Any:
        """Uncached write; on success applies the operation's invalidations."""
        descriptor = self.build(method, path, **options)
        result = await self.send(descriptor, MUTATION_RETRY_POLICY)
        self.apply_side_effects(operation)
        return result

    def apply_side_effects(self, operation: Operation) -> int:
        """Invalidate every key prefix declared for `operation`."""
        total = 0
        for prefix in self._invalidations.get(operation, ()):
            total += self.cache.invalidate(prefix)
        if total:
            logger.debug(f"{operation.value}: invalidated {total} cached queries")
        return total

    def _on_session_event(
        self, event: SessionEvent, session: AuthSession | None
    ) -> None:
        # cached queries belong to the user who fetched them
        if event in (SessionEvent.EXPIRED, SessionEvent.LOGGED_OUT):
            self.cache.clear()

    async def _exchange_token(self, token: str) -> str:
        """POST /auth/refresh with the current token; returns the new one."""
        descriptor = self.build("POST", "/auth/refresh").with_headers(
            {"Authorization": f"Bearer {token}"}
        )
        body = await MUTATION_RETRY_POLICY.execute(
            lambda: self.transport.send(descriptor),
            max_retries=descriptor.max_retries,
            base_delay=descriptor.retry_delay,
            label="POST /auth/refresh",
            sleep=self._sleep,
        )
        data = body.get("data") if isinstance(body, dict) else None
        new_token = data.get("token") if isinstance(data, dict) else None
        if not new_token:
            raise AuthExpiredError("Token refresh was rejected", status=401)
        return new_token

    async def close(self) -> None:
        """Cancel background work and close the HTTP client."""
        await self.cache.close()
        await self.transport.close()
        logger.debug("ApiClient closed")

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def get_health_status(self) -> dict[str, Any]:
        """Snapshot of cache and session state."""
        return {
            "base_url": self.transport.base_url,
            "authenticated": self.auth.is_authenticated,
            "cache": self.cache.get_stats().to_dict(),
        }


# Global client instance
_global_client: ApiClient | None = None


def get_api_client() -> ApiClient:
    """Get the global API client instance."""
    global _global_client
    if _global_client is None:
        _global_client = ApiClient()
    return _global_client


async def close_api_client() -> None:
    """Close the global API client."""
    global _global_client
    if _global_client:
        await _global_client.close()
        _global_client = None
