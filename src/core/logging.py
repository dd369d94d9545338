"""
Structured Logging Configuration with structlog

JSON in production, colored console output in development. Every entry is
stamped with the service version and, while a scan is in flight, the scan id
and the current pipeline stage.
"""

import sys
import asyncio
import logging
import structlog
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from functools import wraps
from typing import Any, Dict, Iterator, Optional

from src.core.config import settings

# Request-scoped context
scan_id_var: ContextVar[Optional[str]] = ContextVar("scan_id", default=None)
stage_var: ContextVar[Optional[str]] = ContextVar("stage", default=None)

# Third-party loggers that flood INFO with per-request noise
NOISY_LOGGERS = ("httpx", "ultralytics", "asyncio", "PIL", "open_clip")


def add_scan_context(
    logger: logging.Logger,
    method_name: str,
    event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    event_dict["timestamp"] = datetime.utcnow().isoformat() + "Z"
    event_dict["version"] = settings.APP_VERSION

    for key, var in (("scan_id", scan_id_var), ("stage", stage_var)):
        value = var.get()
        if value:
            event_dict.setdefault(key, value)

    return event_dict


def setup_logging(log_level: str = "INFO", json_format: bool = True):
    """
    Configure structlog on top of the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        json_format: JSON lines when True, colored console output otherwise
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            add_scan_context,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


class LogContext:
    """
    Binds a scan id (and optionally a stage) for every log entry emitted
    inside the block.

    Usage:
        with LogContext(scan_id=scan_id, stage="perception"):
            logger.info("perception_started")
    """

    def __init__(self, scan_id: Optional[str] = None, stage: Optional[str] = None):
        self.scan_id = scan_id
        self.stage = stage
        self._tokens = []

    def __enter__(self):
        if self.scan_id:
            self._tokens.append((scan_id_var, scan_id_var.set(self.scan_id)))
        if self.stage:
            self._tokens.append((stage_var, stage_var.set(self.stage)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
        return False


@contextmanager
def _stage_span(logger, stage: str) -> Iterator[None]:
    token = stage_var.set(stage)
    start_time = datetime.utcnow()
    logger.info("stage_started", stage=stage)
    try:
        yield
    except Exception as e:
        logger.error(
            "stage_failed",
            stage=stage,
            duration_ms=int((datetime.utcnow() - start_time).total_seconds() * 1000),
            error=str(e),
            error_type=type(e).__name__
        )
        raise
    else:
        logger.info(
            "stage_completed",
            stage=stage,
            duration_ms=int((datetime.utcnow() - start_time).total_seconds() * 1000)
        )
    finally:
        stage_var.reset(token)


def with_logging(stage: str):
    """
    Decorator emitting stage_started / stage_completed / stage_failed around
    a sync or async callable.

    Usage:
        @with_logging("fusion")
        def fuse(inventory, protocol):
            ...
    """
    def decorator(func):
        logger = get_logger(func.__module__)

        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                with _stage_span(logger, stage):
                    return await func(*args, **kwargs)
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            with _stage_span(logger, stage):
                return func(*args, **kwargs)
        return sync_wrapper

    return decorator


# Example log output structure:
# {
#   "timestamp": "2024-05-20T10:00:00Z",
#   "level": "info",
#   "event": "fusion_completed",
#   "stage": "fusion",
#   "scan_id": "550e8400e29b41d4a716446655440000",
#   "version": "1.0.0",
#   "validated": 4,
#   "hallucinations": 1,
#   "substitution_risk": "EXPERIMENTAL"
# }
