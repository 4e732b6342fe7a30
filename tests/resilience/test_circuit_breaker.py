"""Tests for the per-source circuit breaker."""

import pytest

from obsdash.resilience.backoff import BackoffConfig
from obsdash.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitMetrics,
    CircuitState,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _cb(**config_kw) -> CircuitBreaker:
    return CircuitBreaker("metrics", CircuitBreakerConfig(**config_kw))


def _fail_n_times(cb: CircuitBreaker, n: int, now: float = 0.0, spacing: float = 1.0) -> float:
    """Record *n* transient failures, *spacing* seconds apart. Returns the last timestamp."""
    for i in range(n):
        now_i = now + i * spacing
        assert cb.allow(now_i)
        cb.record_failure(now_i)
    return now + (n - 1) * spacing


# ---------------------------------------------------------------------------
# CircuitState enum
# ---------------------------------------------------------------------------


class TestCircuitState:
    def test_values(self):
        assert CircuitState.CLOSED.value == "closed"
        assert CircuitState.OPEN.value == "open"
        assert CircuitState.HALF_OPEN.value == "half_open"

    def test_is_str_enum(self):
        assert isinstance(CircuitState.CLOSED, str)


# ---------------------------------------------------------------------------
# Config / metrics defaults
# ---------------------------------------------------------------------------


class TestDefaults:
    def test_config_defaults(self):
        cfg = CircuitBreakerConfig()
        assert cfg.failure_threshold == 5
        assert cfg.failure_window_seconds == 300.0
        assert cfg.backoff == BackoffConfig()

    def test_metrics_defaults(self):
        m = CircuitMetrics()
        assert m.total_calls == 0
        assert m.open_count == 0
        assert m.last_failure_time is None

    def test_starts_closed(self):
        cb = _cb()
        assert cb.state == CircuitState.CLOSED
        assert cb.opened_until is None
        assert cb.allow(0.0)


# ---------------------------------------------------------------------------
# CLOSED -> OPEN
# ---------------------------------------------------------------------------


class TestOpening:
    def test_opens_at_threshold(self):
        cb = _cb(failure_threshold=3)
        _fail_n_times(cb, 2)
        assert cb.state == CircuitState.CLOSED
        cb.record_failure(2.0)
        assert cb.state == CircuitState.OPEN

    def test_first_cooldown_is_base_delay(self):
        cb = _cb(failure_threshold=2)
        last = _fail_n_times(cb, 2, now=100.0)
        assert cb.opened_until == pytest.approx(last + 1.0)

    def test_open_rejects(self):
        cb = _cb(failure_threshold=1)
        cb.record_failure(10.0)
        assert cb.allow(10.5) is False
        assert cb.metrics.rejected_calls == 1

    def test_success_resets_counter(self):
        cb = _cb(failure_threshold=3)
        _fail_n_times(cb, 2)
        cb.record_success(3.0)
        assert cb.consecutive_failures == 0
        cb.record_failure(4.0)
        cb.record_failure(5.0)
        assert cb.state == CircuitState.CLOSED

    def test_terminal_failure_resets_counter(self):
        cb = _cb(failure_threshold=3)
        _fail_n_times(cb, 2)
        cb.record_terminal(3.0)
        assert cb.consecutive_failures == 0
        assert cb.state == CircuitState.CLOSED

    def test_failures_outside_window_do_not_count(self):
        cb = _cb(failure_threshold=3, failure_window_seconds=10.0)
        cb.record_failure(0.0)
        cb.record_failure(1.0)
        cb.record_failure(20.0)
        assert cb.state == CircuitState.CLOSED
        assert cb.consecutive_failures == 1


# ---------------------------------------------------------------------------
# OPEN -> HALF_OPEN -> CLOSED / OPEN
# ---------------------------------------------------------------------------


class TestRecovery:
    def _opened(self) -> CircuitBreaker:
        cb = _cb(failure_threshold=1)
        cb.record_failure(0.0)
        assert cb.opened_until == 1.0
        return cb

    def test_half_open_after_cooldown(self):
        cb = self._opened()
        assert cb.current_state(0.5) == CircuitState.OPEN
        assert cb.current_state(1.0) == CircuitState.HALF_OPEN

    def test_half_open_allows_single_probe(self):
        cb = self._opened()
        assert cb.allow(1.0) is True
        assert cb.allow(1.1) is False

    def test_probe_success_closes(self):
        cb = self._opened()
        cb.allow(1.0)
        cb.record_success(1.2)
        assert cb.state == CircuitState.CLOSED
        assert cb.opened_until is None
        assert cb.metrics.open_count == 0

    def test_probe_failure_reopens_with_longer_cooldown(self):
        cb = self._opened()
        cb.allow(1.0)
        cb.record_failure(1.5)
        assert cb.state == CircuitState.OPEN
        assert cb.opened_until == pytest.approx(1.5 + 2.0)
        assert cb.metrics.open_count == 2

    def test_terminal_probe_closes(self):
        cb = self._opened()
        cb.allow(1.0)
        cb.record_terminal(1.2)
        assert cb.state == CircuitState.CLOSED

    def test_reset(self):
        cb = self._opened()
        cb.reset()
        assert cb.state == CircuitState.CLOSED
        assert cb.allow(0.1)


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


class TestDiagnostics:
    def test_snapshot(self):
        cb = _cb(failure_threshold=2)
        _fail_n_times(cb, 2)
        snap = cb.snapshot()
        assert snap.name == "metrics"
        assert snap.state == CircuitState.OPEN
        assert snap.consecutive_failures == 2
        assert snap.open_count == 1

    def test_to_dict(self):
        cb = _cb(failure_threshold=1)
        cb.record_failure(0.0)
        d = cb.to_dict()
        assert d["state"] == "open"
        assert d["metrics"]["failed_calls"] == 1
        assert d["config"]["failure_threshold"] == 1
        assert d["opened_until"].startswith("1970-01-01T00:00:01")
