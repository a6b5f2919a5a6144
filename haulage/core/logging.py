"""
Structured Logging Infrastructure

JSON log lines carrying the application name and a per-request correlation
ID, plus a timing decorator for ledger and report operations.

Usage:
    logger = get_logger(__name__)
    logger.info("Payment recorded", extra_data={"invoice_id": 7, "amount": "400.00"})

    @log_operation("revenue_report")
    async def revenue_report(...): ...
"""
import inspect
import json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Iterator

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

_app_name = "haulage"


class JSONFormatter(logging.Formatter):
    """One JSON object per record; ``extra_data`` goes under ``extra``"""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "app": getattr(record, "app_name", _app_name),
            "logger": record.name,
            "message": record.getMessage(),
        }
        correlation_id = correlation_id_var.get()
        if correlation_id:
            entry["correlation_id"] = correlation_id
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            entry["extra"] = extra_data
        # Decimals and datetimes in extra_data print as strings
        return json.dumps(entry, ensure_ascii=False, default=str)


class StructuredLogger(logging.Logger):
    """Logger whose level methods accept an ``extra_data`` mapping"""

    def _log(self, level, msg, args, exc_info=None, extra=None, stack_info=False, stacklevel=1, extra_data=None):
        if extra_data:
            extra = {**(extra or {}), "extra_data": extra_data}
        super()._log(level, msg, args, exc_info=exc_info, extra=extra, stack_info=stack_info, stacklevel=stacklevel)


logging.setLoggerClass(StructuredLogger)


class AppContextFilter(logging.Filter):
    """Stamps application name and correlation ID onto every record"""

    def __init__(self, app_name: str) -> None:
        super().__init__()
        self.app_name = app_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.app_name = self.app_name
        record.correlation_id = correlation_id_var.get() or "-"
        return True


def setup_logging(level: str = "INFO", json_format: bool = True, app_name: str = "haulage") -> None:
    """
    Configure the root logger with a single stdout handler.

    ``json_format=False`` gives a one-line human format for local runs.
    """
    global _app_name
    _app_name = app_name

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(AppContextFilter(app_name))
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | [%(correlation_id)s] | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level.upper())
    root_logger.addHandler(handler)

    # SQL statements are echoed by the engine when DEBUG is on
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Bind ``correlation_id`` (or a fresh one) to the current context"""
    cid = correlation_id or generate_correlation_id()
    correlation_id_var.set(cid)
    return cid


def get_correlation_id() -> str:
    """Current correlation ID; one is generated and bound if missing"""
    return correlation_id_var.get() or set_correlation_id()


def get_logger(name: str) -> StructuredLogger:
    return logging.getLogger(name)  # type: ignore


@contextmanager
def _timed(logger: StructuredLogger, operation: str) -> Iterator[None]:
    logger.debug(f"Starting {operation}", extra_data={"operation": operation, "status": "started"})
    started = time.perf_counter()
    try:
        yield
    except Exception as exc:
        logger.error(
            f"Failed {operation}: {exc}",
            extra_data={
                "operation": operation,
                "status": "failed",
                "duration_seconds": round(time.perf_counter() - started, 4),
                "error": str(exc),
            },
            exc_info=True
        )
        raise
    logger.info(
        f"Completed {operation}",
        extra_data={
            "operation": operation,
            "status": "completed",
            "duration_seconds": round(time.perf_counter() - started, 4),
        }
    )


def log_operation(operation_name: str):
    """Log start, duration and outcome of a sync or async callable; errors are re-raised"""
    def decorator(func):
        logger = get_logger(func.__module__)

        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                with _timed(logger, operation_name):
                    return await func(*args, **kwargs)
            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            with _timed(logger, operation_name):
                return func(*args, **kwargs)
        return wrapper

    return decorator
