"""Uniform result shape returned by every public service method."""

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Generic, ParamSpec, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict

from pipeline_crm.core.exceptions import (
    CRMException,
    NetworkError,
    ValidationError,
    sanitize_error,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
P = ParamSpec("P")

TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    httpx.HTTPError,
    ConnectionError,
    TimeoutError,
)


class ServiceResult(BaseModel, Generic[T]):
    """Outcome of a service call.

    Callers check ``success`` (or ``error``) instead of catching exceptions.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    field: str | None = None
    count: int | None = None

    @classmethod
    def ok(cls, data: Any = None, count: int | None = None) -> "ServiceResult[Any]":
        """Build a successful result.

        Args:
            data: Payload.
            count: Total rows behind the payload, or None when unknown.
        """
        return cls(success=True, data=data, count=count)

    @classmethod
    def fail(
        cls,
        error: str,
        code: str | None = None,
        field: str | None = None,
        data: Any = None,
    ) -> "ServiceResult[Any]":
        """Build a failed result."""
        return cls(success=False, data=data, error=error, error_code=code, field=field)

    @classmethod
    def from_exception(cls, e: CRMException) -> "ServiceResult[Any]":
        """Build a failed result from a CRM exception."""
        field = e.field if isinstance(e, ValidationError) else None
        return cls.fail(sanitize_error(e), code=e.code, field=field)


def service_result(
    default_message: str,
) -> Callable[[Callable[P, Awaitable[Any]]], Callable[P, Awaitable[ServiceResult[Any]]]]:
    """Wrap an async service method so it never raises.

    The wrapped method raises CRM exceptions for expected failures and
    returns its payload (or a ready-made ServiceResult) on success.

    Args:
        default_message: Message shown when an unexpected exception escapes.

    Returns:
        Decorator producing a method that returns ServiceResult.
    """

    def decorator(
        func: Callable[P, Awaitable[Any]],
    ) -> Callable[P, Awaitable[ServiceResult[Any]]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> ServiceResult[Any]:
            try:
                value = await func(*args, **kwargs)
            except CRMException as e:
                logger.warning(
                    "%s failed: %s",
                    func.__qualname__,
                    e.message,
                    extra={"error_code": e.code, "error_details": e.details},
                )
                return ServiceResult.from_exception(e)
            except TRANSPORT_ERRORS as e:
                logger.warning("%s transport error: %s", func.__qualname__, e)
                return ServiceResult.from_exception(NetworkError())
            except Exception:
                logger.exception("%s raised unexpectedly", func.__qualname__)
                return ServiceResult.fail(default_message, code="UNEXPECTED_ERROR")

            if isinstance(value, ServiceResult):
                return value
            return ServiceResult.ok(value)

        return wrapper

    return decorator
