"""
Circuit Breaker Pattern Implementation.

One breaker per data source key. Time is always passed in by the caller so
the breaker can be driven from the deterministic transition function.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Backend failing, requests are short-circuited
- HALF_OPEN: A single probe request is allowed

Transitions:
- CLOSED → OPEN: failure_threshold consecutive transient failures inside the window
- OPEN → HALF_OPEN: cooldown elapsed (checked on the next allow())
- HALF_OPEN → CLOSED: probe succeeds, counters and backoff reset
- HALF_OPEN → OPEN: probe fails, cooldown grows one backoff step
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional

from .backoff import BackoffConfig, calculate_delay

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""
    failure_threshold: int = 5              # Consecutive transient failures before opening
    failure_window_seconds: float = 300.0   # Failures older than this stop counting
    backoff: BackoffConfig = field(default_factory=BackoffConfig)


@dataclass
class CircuitMetrics:
    """Metrics for a circuit breaker."""
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0
    open_count: int = 0                  # Backoff exponent for the next cooldown
    last_failure_time: Optional[float] = None
    last_success_time: Optional[float] = None
    last_state_change: Optional[float] = None


@dataclass(frozen=True)
class CircuitSnapshot:
    """Read-only view of a breaker for diagnostics."""
    name: str
    state: CircuitState
    consecutive_failures: int
    open_count: int
    opened_until: Optional[float]


class CircuitBreaker:
    """
    Circuit breaker for a single data source.

    Usage:
        cb = CircuitBreaker("metrics")

        if cb.allow(now):
            ...issue the request...
            cb.record_success(now)          # or record_failure / record_terminal
        else:
            ...show cached data, circuit is open until cb.opened_until...
    """

    def __init__(self, name: str, config: CircuitBreakerConfig = None):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._state = CircuitState.CLOSED
        self._metrics = CircuitMetrics()
        self._failures: deque[float] = deque()
        self._opened_until: Optional[float] = None
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitState:
        """Current circuit state (without applying an elapsed cooldown)."""
        return self._state

    @property
    def metrics(self) -> CircuitMetrics:
        return self._metrics

    @property
    def consecutive_failures(self) -> int:
        return len(self._failures)

    @property
    def opened_until(self) -> Optional[float]:
        return self._opened_until

    def _transition_to(self, new_state: CircuitState, now: float) -> None:
        old_state = self._state
        self._state = new_state
        self._metrics.state_changes += 1
        self._metrics.last_state_change = now

        if new_state == CircuitState.OPEN:
            self._metrics.open_count += 1
            cooldown = calculate_delay(self._metrics.open_count, self.config.backoff)
            self._opened_until = now + cooldown
            self._probe_in_flight = False
            logger.info(
                f"Circuit '{self.name}' transitioned: {old_state.value} → open "
                f"(cooldown {cooldown:.1f}s)"
            )
            return

        if new_state == CircuitState.HALF_OPEN:
            self._probe_in_flight = False

        if new_state == CircuitState.CLOSED:
            self._failures.clear()
            self._metrics.open_count = 0
            self._opened_until = None
            self._probe_in_flight = False

        logger.info(f"Circuit '{self.name}' transitioned: {old_state.value} → {new_state.value}")

    def _check_state(self, now: float) -> None:
        if self._state == CircuitState.OPEN and self._opened_until is not None:
            if now >= self._opened_until:
                self._transition_to(CircuitState.HALF_OPEN, now)

    def current_state(self, now: float) -> CircuitState:
        """State at *now*, applying an elapsed cooldown."""
        self._check_state(now)
        return self._state

    def allow(self, now: float) -> bool:
        """Whether a request may be issued at *now*. Claims the probe slot in HALF_OPEN."""
        self._check_state(now)

        if self._state == CircuitState.OPEN:
            self._metrics.rejected_calls += 1
            return False

        if self._state == CircuitState.HALF_OPEN:
            if self._probe_in_flight:
                self._metrics.rejected_calls += 1
                return False
            self._probe_in_flight = True

        return True

    def record_success(self, now: float) -> None:
        """Record a successful call."""
        self._metrics.total_calls += 1
        self._metrics.successful_calls += 1
        self._metrics.last_success_time = now
        self._failures.clear()

        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.CLOSED, now)

    def record_failure(self, now: float) -> None:
        """Record a transient failure."""
        self._metrics.total_calls += 1
        self._metrics.failed_calls += 1
        self._metrics.last_failure_time = now

        cutoff = now - self.config.failure_window_seconds
        while self._failures and self._failures[0] < cutoff:
            self._failures.popleft()
        self._failures.append(now)

        if self._state == CircuitState.CLOSED:
            if len(self._failures) >= self.config.failure_threshold:
                self._transition_to(CircuitState.OPEN, now)

        elif self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.OPEN, now)

    def record_terminal(self, now: float) -> None:
        """
        Record a terminal (parsing or application) failure.

        The backend answered, so it counts as reachable: the consecutive
        transient count resets and a HALF_OPEN probe closes the circuit rather
        than reopening it. Only transient failures reopen a probing circuit.
        """
        self._metrics.total_calls += 1
        self._metrics.failed_calls += 1
        self._metrics.last_failure_time = now
        self._failures.clear()

        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.CLOSED, now)

    def reset(self) -> None:
        """Manually reset the circuit breaker to closed state."""
        self._state = CircuitState.CLOSED
        self._failures.clear()
        self._metrics.open_count = 0
        self._opened_until = None
        self._probe_in_flight = False
        logger.info(f"Circuit '{self.name}' manually reset")

    def snapshot(self) -> CircuitSnapshot:
        return CircuitSnapshot(
            name=self.name,
            state=self._state,
            consecutive_failures=len(self._failures),
            open_count=self._metrics.open_count,
            opened_until=self._opened_until,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for diagnostics output."""
        return {
            "name": self.name,
            "state": self._state.value,
            "metrics": {
                "total_calls": self._metrics.total_calls,
                "successful_calls": self._metrics.successful_calls,
                "failed_calls": self._metrics.failed_calls,
                "rejected_calls": self._metrics.rejected_calls,
                "state_changes": self._metrics.state_changes,
                "consecutive_failures": len(self._failures),
            },
            "config": {
                "failure_threshold": self.config.failure_threshold,
                "failure_window_seconds": self.config.failure_window_seconds,
                "base_delay": self.config.backoff.base_delay,
                "max_delay": self.config.backoff.max_delay,
            },
            "opened_until": datetime.fromtimestamp(
                self._opened_until, tz=UTC
            ).isoformat() if self._opened_until else None,
        }
