"""
Client infrastructure - resilience patterns for calls to the Glynac API.

Provides:
- Transport: httpx wrapper with deadlines, cancellation and error classification
- RetryPolicy: exponential backoff for queries and mutations
- AuthTokenManager: bearer-token session with cross-context signaling
- QueryCache: stale-while-revalidate cache with prefix invalidation
- RequestDeduplicator: one in-flight call per key
- ApiClient: unified client combining all of the above
"""

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
    ValidationError,
)
from glynac.services.transport import CancellationToken, RequestDescriptor, Transport
from glynac.services.retry import (
    MUTATION_RETRY_POLICY,
    QUERY_RETRY_POLICY,
    RetryDecision,
    RetryPolicy,
)
from glynac.services.storage import FileSessionStore, MemorySessionStore, SessionStore
from glynac.services.auth import AuthSession, AuthTokenManager, SessionEvent
from glynac.services.cache import QueryCache, QueryEntry
from glynac.services.deduplicator import RequestDeduplicator
from glynac.services.client import ApiClient, get_api_client, close_api_client

__all__ = [
    # Errors
    "ApiError",
    "AuthExpiredError",
    "ClientError",
    "NetworkError",
    "RateLimitError",
    "RejectedError",
    "RequestCancelledError",
    "RequestTimeoutError",
    "ServerError",
    "ValidationError",
    # Transport
    "CancellationToken",
    "RequestDescriptor",
    "Transport",
    # Retry
    "MUTATION_RETRY_POLICY",
    "QUERY_RETRY_POLICY",
    "RetryDecision",
    "RetryPolicy",
    # Session
    "FileSessionStore",
    "MemorySessionStore",
    "SessionStore",
    "AuthSession",
    "AuthTokenManager",
    "SessionEvent",
    # Cache
    "QueryCache",
    "QueryEntry",
    "RequestDeduplicator",
    # Client
    "ApiClient",
    "get_api_client",
    "close_api_client",
]
