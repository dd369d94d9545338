"""
Global Exception Handling

Service exception hierarchy (``code`` doubles as the HTTP status), circuit
breakers for the reasoning engine and model backends, and the FastAPI
handlers that render both as structured JSON.
"""

import time
import traceback
from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime
from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from src.core.logging import get_logger, scan_id_var

logger = get_logger(__name__)


# =============================================================================
# Custom Exceptions
# =============================================================================

class CulinaryLensException(Exception):
    """Base exception for the perception & fusion service."""

    def __init__(
        self,
        message: str,
        code: int = 500,
        scan_id: Optional[str] = None,
        stage: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.scan_id = scan_id or scan_id_var.get()
        self.stage = stage
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "scan_id": self.scan_id,
            "code": self.code,
            "stage": self.stage,
            "details": self.details,
            "timestamp": datetime.utcnow().isoformat() + "Z"
        }


class ValidationError(CulinaryLensException):
    """Raised when input validation fails."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code=400, **kwargs)


class PipelineStageError(CulinaryLensException):
    """Raised when a perception stage fails or breaks the stage contract."""

    def __init__(self, message: str, stage: str, **kwargs):
        super().__init__(message, code=500, stage=stage, **kwargs)


class PerceptionTimeoutError(CulinaryLensException):
    """Raised when a perception run exceeds its deadline.

    Callers must treat this as "no new data", never as an empty inventory.
    """

    def __init__(self, deadline_ms: int, **kwargs):
        super().__init__(
            f"Perception inference exceeded its {deadline_ms}ms deadline",
            code=504,
            stage="perception",
            **kwargs
        )
        self.details["deadline_ms"] = deadline_ms


class SanityCheckError(CulinaryLensException):
    """Raised by the fusion sanity gate for malformed inventory data."""

    def __init__(self, message: str, offending: Optional[list] = None, **kwargs):
        super().__init__(message, code=422, stage="sanity_gate", **kwargs)
        self.details["offending"] = offending or []


class ExternalAPIError(CulinaryLensException):
    """Raised when an external API call fails (e.g., the reasoning engine)."""

    def __init__(self, message: str, service: str, http_status: Optional[int] = None, **kwargs):
        super().__init__(message, code=502, **kwargs)
        self.details["service"] = service
        self.details["http_status"] = http_status


class CircuitBreakerOpenError(CulinaryLensException):
    """Raised when circuit breaker is open."""

    def __init__(self, service: str, **kwargs):
        super().__init__(
            f"Service '{service}' is temporarily unavailable (circuit breaker open)",
            code=503,
            **kwargs
        )
        self.details["service"] = service


# =============================================================================
# Circuit Breaker
# =============================================================================

class CircuitState(str, Enum):
    CLOSED = "CLOSED"        # calls pass through
    OPEN = "OPEN"            # failing fast until the recovery timeout
    HALF_OPEN = "HALF_OPEN"  # probing with a bounded number of calls


class CircuitBreaker:
    """
    Fails fast once a backend has failed ``failure_threshold`` times in a row.

    After ``recovery_timeout`` seconds the breaker lets up to
    ``half_open_max_calls`` probes through; that many successes close it, a
    single failure reopens it.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60,
        half_open_max_calls: int = 3
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls
        self.reset()

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if time.monotonic() - self._opened_at >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                self._half_open_calls = 0
        return self._state

    def can_execute(self) -> bool:
        state = self.state
        if state == CircuitState.HALF_OPEN:
            return self._half_open_calls < self.half_open_max_calls
        return state == CircuitState.CLOSED

    def record_success(self):
        if self._state == CircuitState.CLOSED:
            self._failure_count = 0
            return

        if self._state == CircuitState.HALF_OPEN:
            self._half_open_calls += 1
            if self._half_open_calls >= self.half_open_max_calls:
                self.reset()
                logger.info("circuit_breaker_closed", circuit=self.name)

    def record_failure(self, error: Optional[Exception] = None):
        self._failure_count += 1

        if self._state == CircuitState.HALF_OPEN:
            event = "circuit_breaker_reopened"
        elif self._failure_count >= self.failure_threshold:
            event = "circuit_breaker_opened"
        else:
            return

        self._state = CircuitState.OPEN
        self._opened_at = time.monotonic()
        logger.warning(
            event,
            circuit=self.name,
            failure_count=self._failure_count,
            error=str(error) if error else None
        )

    def reset(self):
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None
        self._half_open_calls = 0


# Breakers for the reasoning engine and the model backends
circuit_breakers: Dict[str, CircuitBreaker] = {
    "reasoning_engine": CircuitBreaker("reasoning_engine", failure_threshold=3, recovery_timeout=120),
    "detector": CircuitBreaker("detector", failure_threshold=3, recovery_timeout=60),
    "coverage_scorer": CircuitBreaker("coverage_scorer", failure_threshold=3, recovery_timeout=60),
}


def get_circuit_breaker(name: str) -> CircuitBreaker:
    """Get or create the breaker for ``name``."""
    if name not in circuit_breakers:
        circuit_breakers[name] = CircuitBreaker(name)
    return circuit_breakers[name]


def circuit_states() -> Dict[str, str]:
    return {name: breaker.state.value for name, breaker in circuit_breakers.items()}


# =============================================================================
# HTTP mapping
# =============================================================================

def _error_response(status_code: int, message: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": message,
            "scan_id": scan_id_var.get(),
            "code": status_code,
            "timestamp": datetime.utcnow().isoformat() + "Z"
        }
    )


def _culinary_lens_response(exc: CulinaryLensException) -> JSONResponse:
    # Timeouts are expected under load; everything else 5xx is a fault
    log = logger.warning if exc.code < 500 or isinstance(exc, PerceptionTimeoutError) else logger.error
    log(
        "culinary_lens_exception",
        error=exc.message,
        code=exc.code,
        stage=exc.stage,
        details=exc.details
    )
    return JSONResponse(status_code=exc.code, content=exc.to_dict())


def _unhandled_response(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=str(request.url.path),
        traceback=traceback.format_exc()
    )
    return _error_response(500, "Internal server error")


class GlobalExceptionMiddleware(BaseHTTPMiddleware):
    """Structured JSON for exceptions raised outside route handlers."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except CulinaryLensException as exc:
            return _culinary_lens_response(exc)
        except HTTPException as exc:
            return _error_response(exc.status_code, exc.detail)
        except Exception as exc:
            return _unhandled_response(request, exc)


def register_exception_handlers(app: FastAPI):
    """Map service exceptions to structured JSON responses."""

    @app.exception_handler(CulinaryLensException)
    async def culinary_lens_exception_handler(request: Request, exc: CulinaryLensException):
        return _culinary_lens_response(exc)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        return _unhandled_response(request, exc)
