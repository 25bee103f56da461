import inspect
import functools
from typing import TypeVar, Callable, Any, Optional
from loguru import logger
from ..exceptions import (
    ArchiveException,
    ArchiveTimeoutException,
    RequestException,
    ResourceNotFoundException,
)

T = TypeVar('T')

# Location markers FastAPI prepends to a validation error's ``loc``
_LOCATION_MARKERS = ("body", "query", "path", "form", "header")


def log_exceptions(
    log_level: str = "ERROR",
    include_traceback: bool = True,
    custom_message: Optional[str] = None
):
    """
    Decorator to log exceptions.

    Args:
        log_level: Log level for exception logging
        include_traceback: Whether to include traceback in log
        custom_message: Custom message to include in log
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                message = custom_message or f"Exception in {func.__name__}"
                if include_traceback:
                    logger.opt(exception=True).log(log_level, f"{message}: {e}")
                else:
                    logger.log(log_level, f"{message}: {e}")
                raise

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                message = custom_message or f"Exception in {func.__name__}"
                if include_traceback:
                    logger.opt(exception=True).log(log_level, f"{message}: {e}")
                else:
                    logger.log(log_level, f"{message}: {e}")
                raise

        # Return appropriate wrapper based on function type
        if inspect.iscoroutinefunction(func):
            return async_wrapper
        else:
            return sync_wrapper

    return decorator


def convert_exceptions(exception_map: dict):
    """
    Decorator to convert third-party exceptions to archive exceptions.

    Exceptions that already derive from ArchiveException pass through untouched.

    Args:
        exception_map: Dictionary mapping exception types to archive exception types
    """
    def _convert(e: Exception):
        if isinstance(e, ArchiveException):
            raise e
        for source_exc, target_exc in exception_map.items():
            if isinstance(e, source_exc):
                raise target_exc(str(e) or type(e).__name__, details={"original_exception": type(e).__name__}) from e
        raise e

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                _convert(e)

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                _convert(e)

        # Return appropriate wrapper based on function type
        if inspect.iscoroutinefunction(func):
            return async_wrapper
        else:
            return sync_wrapper

    return decorator


def flatten_detail(detail: Any, status: int = 0) -> str:
    """
    Render a backend error ``detail`` payload as one human readable line.

    A list of field-level validation items ``{"loc": [...], "msg": ...}``
    becomes ``"field: message"`` pairs joined with ``"; "``.

    Args:
        detail: The ``detail`` value of the error body, if any
        status: HTTP status used for the fallback message

    Returns:
        str: Flattened message
    """
    if detail is None or detail == "" or detail == []:
        return f"Request failed with status {status}"
    if isinstance(detail, str):
        return detail
    if isinstance(detail, dict):
        message = detail.get("msg") or detail.get("message")
        if message:
            return str(message)
        return str(detail)
    if isinstance(detail, (list, tuple)):
        parts = []
        for item in detail:
            if isinstance(item, dict):
                msg = item.get("msg") or item.get("message") or ""
                loc = [str(segment) for segment in (item.get("loc") or [])]
                if len(loc) > 1 and loc[0] in _LOCATION_MARKERS:
                    loc = loc[1:]
                field = ".".join(loc)
                parts.append(f"{field}: {msg}" if field else str(msg))
            else:
                parts.append(str(item))
        return "; ".join(part for part in parts if part)
    return str(detail)


class ErrorHandler:
    """Centralized error handling utilities."""

    @staticmethod
    def user_message(e: BaseException) -> str:
        """Render any exception raised by the client stack as a single line for the user."""
        if isinstance(e, ArchiveTimeoutException):
            return "The request timed out. Please try again."
        if isinstance(e, ResourceNotFoundException):
            return e.message
        if isinstance(e, RequestException):
            if e.status == 0:
                return f"Could not reach the archive backend: {e.message}"
            return e.message
        if isinstance(e, ArchiveException):
            return e.message
        return str(e) or type(e).__name__
