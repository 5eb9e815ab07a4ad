import functools
import inspect
from typing import Any

from loguru import logger

SECRET_FIELDS = frozenset(
    {"password", "token", "client_secret", "api_key", "api_token", "app_key"}
)
MASK = "***********"


def mask_secrets(params: dict[str, Any]) -> dict[str, Any]:
    """Copy of `params` with secret values (and nested dict values) masked."""
    masked = {}
    for key, value in params.items():
        if key in SECRET_FIELDS and value:
            masked[key] = MASK
        elif isinstance(value, dict):
            masked[key] = mask_secrets(value)
        else:
            masked[key] = value
    return masked


def safe_func_wrapper(func):
    """
    A decorator that logs function entry, exit, and exceptions.

    Features:
    - Logs function name and parameters before execution, secrets masked
    - Works for both plain functions and coroutine functions
    - Logs exceptions and re-raises them unchanged
    - Preserves function metadata and return values
    """

    def _enter(args, kwargs) -> str:
        sig = inspect.signature(func)
        bound_args = sig.bind(*args, **kwargs)
        bound_args.apply_defaults()
        params = {k: v for k, v in bound_args.arguments.items() if k != "self"}
        logger.info(f"Entering {func.__name__} with params: {mask_secrets(params)}")
        return func.__name__

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            name = _enter(args, kwargs)
            try:
                result = await func(*args, **kwargs)
                logger.info(f"{name}: success")
                return result
            except Exception as e:
                logger.error(f"{name}: {type(e).__name__}: {e}")
                raise

        return async_wrapper

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        name = _enter(args, kwargs)
        try:
            result = func(*args, **kwargs)
            logger.info(f"{name}: success")
            return result
        except Exception as e:
            logger.error(f"{name}: {type(e).__name__}: {e}")
            raise

    return wrapper
