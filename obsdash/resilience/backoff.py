"""
Exponential backoff schedule.

Shared by retry delays and circuit breaker cooldowns so a backend that stays
down sees the same growing gaps either way. No jitter: delays feed the
transition function, which must stay deterministic.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class BackoffConfig:
    """Configuration for exponential backoff."""
    base_delay: float = 1.0              # Delay for the first step in seconds
    factor: float = 2.0                  # Exponential multiplier
    max_delay: float = 60.0              # Cap


def calculate_delay(step: int, config: BackoffConfig) -> float:
    """Delay for the given 1-based step: base * factor**(step-1), capped."""
    if step < 1:
        step = 1
    delay = config.base_delay * (config.factor ** (step - 1))
    return max(0.0, min(delay, config.max_delay))


def delay_schedule(steps: int, config: BackoffConfig) -> list[float]:
    """The first *steps* delays, useful for logging a policy at startup."""
    return [calculate_delay(step, config) for step in range(1, steps + 1)]
