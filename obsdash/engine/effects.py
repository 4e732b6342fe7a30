"""
Effects requested by the transition function.

An effect is a description of a side-effecting operation. The transition
function only returns them; the EffectRunner executes them and posts the
resulting message back to the dispatcher.
"""

from dataclasses import dataclass
from typing import ClassVar

from pydantic import SecretStr

from .messages import Message
from .state import FilterSpec, QuerySpec, Theme, TimeRange, View


class Effect:
    """Base class for effects."""


@dataclass(frozen=True)
class Fetch(Effect):
    """Fetch from a data source. The generation travels back on the completion."""
    source: ClassVar[View]
    generation: int
    endpoint: str
    auth_token: SecretStr
    timeout: float = 10.0


@dataclass(frozen=True)
class FetchMetrics(Fetch):
    source: ClassVar[View] = View.METRICS
    query: QuerySpec = QuerySpec()
    time_range: TimeRange = TimeRange()


@dataclass(frozen=True)
class FetchLogs(Fetch):
    source: ClassVar[View] = View.LOGS
    filters: FilterSpec = FilterSpec()
    limit: int = 500


@dataclass(frozen=True)
class FetchAlerts(Fetch):
    source: ClassVar[View] = View.ALERTS
    filter: FilterSpec = FilterSpec()


@dataclass(frozen=True)
class StartTimer(Effect):
    """Post TimerFired(generation) after `duration` seconds."""
    duration: float
    generation: int


@dataclass(frozen=True)
class Delay(Effect):
    """Post `message` after `duration` seconds. Used for retries and status expiry."""
    duration: float
    message: Message


@dataclass(frozen=True)
class LoadConfig(Effect):
    """Ask the config source for the startup configuration."""


@dataclass(frozen=True)
class SaveSettings(Effect):
    theme: Theme
    refresh_interval_ms: int
