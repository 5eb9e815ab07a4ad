"""
Base service for the Glynac API facade.
"""

from abc import ABC
from typing import Any, Awaitable, Callable, TypeVar

import pydantic
from loguru import logger
from pydantic import BaseModel, TypeAdapter

from glynac.api.models import ApiResponse
from glynac.services.client import ApiClient
from glynac.services.errors import ApiError, ValidationError

M = TypeVar("M", bound=BaseModel)


def validate_input(model: type[M], payload: Any, message: str) -> M:
    """
    Validate caller input before any network call.

    Raises:
        ValidationError: with a field -> message map in details
    """
    if isinstance(payload, model):
        payload = payload.model_dump(by_alias=True)
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as e:
        details = {}
        for err in e.errors():
            field = ".".join(str(part) for part in err["loc"]) or "__root__"
            details.setdefault(field, err["msg"])
        raise ValidationError(message, details=details) from e


def failure(error: ApiError) -> ApiResponse[Any]:
    """Convert an ApiError into the failure envelope."""
    return ApiResponse(
        success=False,
        error=error.message,
        code=error.code,
        status=error.status,
        details=error.details,
    )


class BaseService(ABC):
    """
    Abstract base class for all facade services.

    All services should:
    - Use ApiClient for HTTP requests (caching, retries, auth)
    - Validate input shape before calling the network
    - Return ApiResponse envelopes, never raise ApiError
    """

    def __init__(self, client: ApiClient | None = None):
        from glynac.services.client import get_api_client

        self.client = client or get_api_client()

    async def _call(
        self,
        request: Callable[[], Awaitable[Any]],
        parse: Any = None,
        action: str = "request",
    ) -> ApiResponse[Any]:
        """Run `request` and normalize its outcome into an ApiResponse."""
        try:
            body = await request()
        except ApiError as e:
            logger.error(f"{action} failed: {e.message}")
            return failure(e)
        return self._unwrap(body, parse, action)

    def _unwrap(self, body: Any, parse: Any, action: str) -> ApiResponse[Any]:
        if isinstance(body, dict) and "success" in body:
            if not body["success"]:
                message = body.get("error") or body.get("message") or f"{action} failed"
                logger.error(f"{action} rejected: {message}")
                return ApiResponse(
                    success=False,
                    error=message,
                    message=body.get("message"),
                    code=body.get("code"),
                    details=body.get("details"),
                )
            data = body.get("data")
            message = body.get("message")
        else:
            data = body
            message = None

        if parse is not None and data is not None:
            try:
                data = TypeAdapter(parse).validate_python(data)
            except pydantic.ValidationError as e:
                logger.error(f"{action} returned an unexpected payload: {e}")
                return ApiResponse(
                    success=False,
                    error=f"Unexpected response payload for {action}",
                    code="invalid_response",
                )

        return ApiResponse(success=True, data=data, message=message)
