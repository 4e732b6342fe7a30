"""
Messages accepted by the dispatcher.

User actions, timer ticks and effect completions all arrive as one of these.
Per-source messages share a base class and differ only in the `source`
class attribute, so the transition function handles every view the same way.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, Optional

from ..errors import ApiError
from .state import ConfigState, FilterSpec, QuerySpec, Theme, TimeRange, View


class Message:
    """Base class for everything the dispatcher processes."""


@dataclass(frozen=True)
class Navigate(Message):
    view: View


# ---------------------------------------------------------------------------
# Refresh requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Refresh(Message):
    """Ask for fresh data. `retry_of` is set when this is a scheduled retry."""
    source: ClassVar[View]
    retry_of: Optional[int] = None


@dataclass(frozen=True)
class RefreshMetrics(Refresh):
    source: ClassVar[View] = View.METRICS


@dataclass(frozen=True)
class RefreshLogs(Refresh):
    source: ClassVar[View] = View.LOGS


@dataclass(frozen=True)
class RefreshAlerts(Refresh):
    source: ClassVar[View] = View.ALERTS


# ---------------------------------------------------------------------------
# Fetch completions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Loaded(Message):
    """Completion of a fetch: either `data` or a classified `error`."""
    source: ClassVar[View]
    generation: int
    data: Any = None
    error: Optional[ApiError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class MetricsLoaded(Loaded):
    source: ClassVar[View] = View.METRICS


@dataclass(frozen=True)
class LogsLoaded(Loaded):
    source: ClassVar[View] = View.LOGS


@dataclass(frozen=True)
class AlertsLoaded(Loaded):
    source: ClassVar[View] = View.ALERTS


REFRESH_MESSAGES: dict[View, type[Refresh]] = {
    View.METRICS: RefreshMetrics,
    View.LOGS: RefreshLogs,
    View.ALERTS: RefreshAlerts,
}

LOADED_MESSAGES: dict[View, type[Loaded]] = {
    View.METRICS: MetricsLoaded,
    View.LOGS: LogsLoaded,
    View.ALERTS: AlertsLoaded,
}


# ---------------------------------------------------------------------------
# Request parameter changes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SetMetricsQuery(Message):
    query: QuerySpec
    time_range: Optional[TimeRange] = None


@dataclass(frozen=True)
class SetLogFilters(Message):
    filters: FilterSpec


@dataclass(frozen=True)
class SetAlertFilter(Message):
    filter: FilterSpec


@dataclass(frozen=True)
class ScrollLogs(Message):
    offset: int


@dataclass(frozen=True)
class SilenceAlert(Message):
    alert_id: str


@dataclass(frozen=True)
class UnsilenceAlert(Message):
    alert_id: str


# ---------------------------------------------------------------------------
# Timers, config and settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimerFired(Message):
    generation: int


@dataclass(frozen=True)
class ConfigLoaded(Message):
    config: Optional[ConfigState] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class ConfigChanged(Message):
    config: ConfigState


@dataclass(frozen=True)
class ThemeChanged(Message):
    theme: Theme


@dataclass(frozen=True)
class SettingsSaved(Message):
    error: Optional[str] = None


@dataclass(frozen=True)
class ClearStatus(Message):
    token: int
