"""
Operation results returned across the service boundary.

Services raise AppException subclasses internally; callers (request
handlers, report jobs) get an OperationResult instead of an exception.
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from haulage.core.exceptions import AppException, PersistenceException
from haulage.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class OperationResult(Generic[T]):
    """Outcome of a service operation: ``{success, data?, error?}``"""
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    status_code: int = 200

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "OperationResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, exc: AppException) -> "OperationResult[T]":
        return cls(
            success=False,
            error=exc.message,
            error_code=exc.error_code.value,
            status_code=exc.status_code,
        )

    def to_dict(self, data: Any = None) -> dict[str, Any]:
        """Serializable form; ``data`` overrides the raw payload (e.g. a response model dump)."""
        body: dict[str, Any] = {"success": self.success}
        if self.success:
            payload = data if data is not None else self.data
            if payload is not None:
                body["data"] = payload
        else:
            body["error"] = self.error
            body["error_code"] = self.error_code
        return body


async def run_operation(
    operation: str,
    func: Callable[[], Awaitable[T]],
) -> OperationResult[T]:
    """Run ``func`` and fold application errors into a failed result."""
    try:
        data = await func()
    except PersistenceException as exc:
        logger.error(
            f"{operation} failed in storage layer",
            extra_data={
                "operation": operation,
                "error_code": exc.error_code.value,
                "cause": repr(exc.__cause__),
            },
            exc_info=True
        )
        return OperationResult.failure(exc)
    except AppException as exc:
        logger.warning(
            f"{operation} rejected: {exc.message}",
            extra_data={
                "operation": operation,
                "error_code": exc.error_code.value,
                "details": exc.details,
            }
        )
        return OperationResult.failure(exc)
    return OperationResult.ok(data)
