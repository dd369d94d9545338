import time

from src.core.exceptions import (
    CircuitBreaker,
    CircuitState,
    PerceptionTimeoutError,
    SanityCheckError,
    circuit_states,
)


def expire(breaker: CircuitBreaker):
    breaker._opened_at = time.monotonic() - breaker.recovery_timeout - 1


def test_circuit_breaker_opens_after_threshold():
    breaker = CircuitBreaker("test", failure_threshold=2, recovery_timeout=60)

    breaker.record_failure()
    assert breaker.can_execute()
    breaker.record_failure()

    assert breaker.state == CircuitState.OPEN
    assert not breaker.can_execute()


def test_success_resets_failure_count():
    breaker = CircuitBreaker("test", failure_threshold=2)

    breaker.record_failure()
    breaker.record_success()
    breaker.record_failure()

    assert breaker.state == CircuitState.CLOSED


def test_circuit_breaker_half_open_then_closes():
    breaker = CircuitBreaker("test", failure_threshold=1, recovery_timeout=60, half_open_max_calls=1)
    breaker.record_failure()
    expire(breaker)

    assert breaker.state == CircuitState.HALF_OPEN
    assert breaker.can_execute()

    breaker.record_success()
    assert breaker.state == CircuitState.CLOSED


def test_half_open_failure_reopens():
    breaker = CircuitBreaker("test", failure_threshold=1, recovery_timeout=60)
    breaker.record_failure()
    expire(breaker)
    assert breaker.state == CircuitState.HALF_OPEN

    breaker.record_failure()

    assert breaker.state == CircuitState.OPEN


def test_circuit_states_snapshot():
    assert circuit_states()["reasoning_engine"] == "CLOSED"


def test_exception_payloads():
    timeout = PerceptionTimeoutError(4000, scan_id="scan-9")
    body = timeout.to_dict()
    assert body["code"] == 504
    assert body["scan_id"] == "scan-9"
    assert body["details"]["deadline_ms"] == 4000

    sanity = SanityCheckError("bad", offending=[{"name": "Pear"}])
    assert sanity.code == 422
    assert sanity.stage == "sanity_gate"
    assert sanity.details["offending"] == [{"name": "Pear"}]
