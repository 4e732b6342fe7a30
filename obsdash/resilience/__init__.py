"""
Resilience module for data source fault tolerance.

Provides:
- Exponential backoff schedule shared by retries and cooldowns
- Per-key circuit breaker
- Resilience policy combining bounded retries with the breaker
"""

from .backoff import BackoffConfig, calculate_delay, delay_schedule
from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitMetrics,
    CircuitSnapshot,
    CircuitState,
)
from .policy import (
    Action,
    Decision,
    Outcome,
    ResilienceConfig,
    ResiliencePolicy,
    RetryState,
)

__all__ = [
    "BackoffConfig",
    "calculate_delay",
    "delay_schedule",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitMetrics",
    "CircuitSnapshot",
    "CircuitState",
    "Action",
    "Decision",
    "Outcome",
    "ResilienceConfig",
    "ResiliencePolicy",
    "RetryState",
]
