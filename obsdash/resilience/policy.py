"""
Per data source resilience policy.

Combines a circuit breaker per key with bounded retry scheduling for the
request currently in flight. The transition function asks should_attempt()
before issuing a fetch and reports every attempt's outcome through
on_result(), which answers with the next step:

- SUCCESS: apply the data
- RETRY: schedule the same request again after `delay`
- SURFACE: show the error, keep the last cached value
- OPENED: the circuit just opened, show the error, stop retrying

Retries use the same backoff sequence as circuit cooldowns. Running out of
attempts surfaces the error but does not open the circuit on its own; only
consecutive transient failures do.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from .backoff import BackoffConfig, calculate_delay
from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitSnapshot,
    CircuitState,
)

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    """Result of one attempt, as reported to the policy."""
    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient_failure"
    TERMINAL_FAILURE = "terminal_failure"

    @classmethod
    def failure(cls, transient: bool) -> "Outcome":
        return cls.TRANSIENT_FAILURE if transient else cls.TERMINAL_FAILURE


class Action(str, Enum):
    SUCCESS = "success"
    RETRY = "retry"
    SURFACE = "surface"
    OPENED = "opened"


@dataclass(frozen=True)
class Decision:
    action: Action
    delay: float = 0.0
    attempt: int = 0                     # Attempt number the retry will be
    until: Optional[float] = None        # Set when the circuit is open


@dataclass
class RetryState:
    """Retry bookkeeping for the request in flight for one key."""
    generation: int
    attempt: int = 1
    next_delay: float = 0.0


@dataclass(frozen=True)
class ResilienceConfig:
    """Policy constants, with optional per-source overrides."""
    failure_threshold: int = 5
    failure_window_seconds: float = 300.0
    max_attempts: int = 3
    backoff: BackoffConfig = field(default_factory=BackoffConfig)
    overrides: dict[str, dict[str, Any]] = field(default_factory=dict)

    def for_source(self, key: str) -> "ResilienceConfig":
        """Effective config for *key* with its overrides applied."""
        override = dict(self.overrides.get(key, {}))
        if not override:
            return self
        backoff_fields = {
            name: override.pop(name)
            for name in ("base_delay", "factor", "max_delay")
            if name in override
        }
        backoff = replace(self.backoff, **backoff_fields) if backoff_fields else self.backoff
        return replace(self, backoff=backoff, overrides={}, **override)

    def circuit_config(self) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            failure_window_seconds=self.failure_window_seconds,
            backoff=self.backoff,
        )


class ResiliencePolicy:
    """
    Retry and circuit breaker state for every data source key.

    Not thread-safe: it is only touched from the dispatcher's serialized
    message processing.
    """

    def __init__(self, config: ResilienceConfig = None):
        self.config = config or ResilienceConfig()
        self._breakers: dict[str, CircuitBreaker] = {}
        self._retries: dict[str, RetryState] = {}

    def _config(self, key: str) -> ResilienceConfig:
        return self.config.for_source(key)

    def breaker(self, key: str) -> CircuitBreaker:
        """Breaker for *key*, created on first use."""
        cb = self._breakers.get(key)
        if cb is None:
            cb = CircuitBreaker(key, self._config(key).circuit_config())
            self._breakers[key] = cb
        return cb

    def should_attempt(self, key: str, now: float) -> bool:
        """False means the request must not be issued."""
        allowed = self.breaker(key).allow(now)
        if not allowed:
            logger.debug(f"Short-circuited request for '{key}'")
        return allowed

    def begin(self, key: str, generation: int) -> RetryState:
        """Start retry bookkeeping for a freshly dispatched request."""
        state = RetryState(generation=generation)
        self._retries[key] = state
        return state

    def retry_state(self, key: str) -> Optional[RetryState]:
        return self._retries.get(key)

    def open_until(self, key: str) -> Optional[float]:
        return self.breaker(key).opened_until

    def circuit_state(self, key: str, now: float) -> CircuitState:
        return self.breaker(key).current_state(now)

    def _discard_retry(self, key: str, generation: Optional[int]) -> None:
        state = self._retries.get(key)
        if state is not None and (generation is None or state.generation == generation):
            del self._retries[key]

    def on_result(
        self,
        key: str,
        outcome: Outcome,
        now: float,
        generation: Optional[int] = None,
    ) -> Decision:
        """
        Record the outcome of one attempt and decide what happens next.

        Args:
            key: Data source key
            outcome: What the attempt produced
            now: Completion time
            generation: Request generation the attempt belonged to

        Returns:
            Decision for the caller to act on
        """
        cb = self.breaker(key)

        if outcome == Outcome.SUCCESS:
            cb.record_success(now)
            self._discard_retry(key, generation)
            return Decision(Action.SUCCESS)

        if outcome == Outcome.TERMINAL_FAILURE:
            cb.record_terminal(now)
            self._discard_retry(key, generation)
            return Decision(Action.SURFACE)

        was_open = cb.state == CircuitState.OPEN
        cb.record_failure(now)

        if cb.state == CircuitState.OPEN:
            # A late failure for an already open circuit is just another failure
            self._retries.pop(key, None)
            if was_open:
                return Decision(Action.SURFACE, until=cb.opened_until)
            logger.warning(
                f"Circuit for '{key}' opened after {cb.consecutive_failures} consecutive failures"
            )
            return Decision(Action.OPENED, until=cb.opened_until)

        state = self._retries.get(key)
        if state is None or (generation is not None and state.generation != generation):
            return Decision(Action.SURFACE)

        max_attempts = self._config(key).max_attempts
        if state.attempt >= max_attempts:
            logger.warning(f"All {max_attempts} attempts failed for '{key}'")
            del self._retries[key]
            return Decision(Action.SURFACE)

        delay = calculate_delay(state.attempt, self._config(key).backoff)
        state.attempt += 1
        state.next_delay = delay
        logger.info(f"Retry {state.attempt}/{max_attempts} for '{key}' after {delay:.2f}s")
        return Decision(Action.RETRY, delay=delay, attempt=state.attempt)

    def snapshot(self, key: str) -> CircuitSnapshot:
        return self.breaker(key).snapshot()

    def to_dict(self) -> dict[str, Any]:
        return {key: cb.to_dict() for key, cb in sorted(self._breakers.items())}
