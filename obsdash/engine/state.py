"""
Immutable application state.

Every value here is a frozen dataclass. A transition never edits a state in
place: it builds a new aggregate with dataclasses.replace(), so a snapshot
handed to the renderer can never change under it.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Generic, Mapping, Optional, TypeVar

from pydantic import SecretStr

from ..cache import CacheEntry
from ..errors import ApiError

T = TypeVar("T")


class View(str, Enum):
    """Dashboard views. The value doubles as the data source key."""
    METRICS = "metrics"
    LOGS = "logs"
    ALERTS = "alerts"


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class StatusMessage:
    text: str
    level: NotificationLevel

    @classmethod
    def success(cls, text: str) -> "StatusMessage":
        return cls(text, NotificationLevel.SUCCESS)

    @classmethod
    def error(cls, text: str) -> "StatusMessage":
        return cls(text, NotificationLevel.ERROR)


# ---------------------------------------------------------------------------
# Request parameters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QuerySpec:
    """Opaque backend query plus resolution."""
    expression: str = "up"
    step_seconds: float = 60.0


@dataclass(frozen=True)
class TimeRange:
    """Absolute (start/end set) or relative (trailing lookback window) range."""
    start: Optional[float] = None
    end: Optional[float] = None
    lookback_seconds: float = 3600.0

    @property
    def is_relative(self) -> bool:
        return self.start is None or self.end is None

    def resolve(self, now: float) -> "TimeRange":
        """Absolute range for a request issued at *now*."""
        if not self.is_relative:
            return self
        end = self.end if self.end is not None else now
        return TimeRange(start=end - self.lookback_seconds, end=end,
                         lookback_seconds=self.lookback_seconds)


@dataclass(frozen=True)
class FilterSpec:
    """Free-text filter plus exact label matches."""
    text: str = ""
    labels: tuple[tuple[str, str], ...] = ()

    @classmethod
    def of(cls, text: str = "", **labels: str) -> "FilterSpec":
        return cls(text=text, labels=tuple(sorted(labels.items())))

    def matches(self, labels: Mapping[str, str], text: str = "") -> bool:
        for name, value in self.labels:
            if labels.get(name) != value:
                return False
        if self.text and self.text.lower() not in text.lower():
            return False
        return True


# ---------------------------------------------------------------------------
# View state building blocks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Cached(Generic[T]):
    """A value shown in a view, with when it was fetched and whether it is stale."""
    value: Optional[T] = None
    fetched_at: Optional[float] = None
    is_stale: bool = False

    def stale(self) -> "Cached[T]":
        return self if self.is_stale else replace(self, is_stale=True)

    @classmethod
    def from_entry(cls, entry: CacheEntry, is_stale: bool) -> "Cached[Any]":
        return cls(value=entry.value, fetched_at=entry.fetched_at, is_stale=is_stale)


@dataclass(frozen=True)
class RequestLedger:
    """
    Generation bookkeeping for one view.

    issued: newest generation handed out
    basis: generation at which request parameters last changed; completions
        below it answer an outdated request
    applied: generation whose data is on screen
    """
    issued: int = 0
    basis: int = 0
    applied: int = 0
    pending: bool = False
    retrying: bool = False

    def issue(self, parameters_changed: bool = False) -> "RequestLedger":
        generation = self.issued + 1
        return replace(
            self,
            issued=generation,
            basis=generation if parameters_changed else self.basis,
            pending=True,
            retrying=False,
        )

    def is_outdated(self, generation: int) -> bool:
        return generation < self.basis or generation < self.applied

    @property
    def in_flight(self) -> bool:
        """A fetch is outstanding (not merely waiting for a retry delay)."""
        return self.pending and not self.retrying


@dataclass(frozen=True)
class DashboardState:
    active_view: View = View.METRICS
    loading: bool = True
    status: Optional[StatusMessage] = None
    status_token: int = 0
    timer_generation: int = 0


@dataclass(frozen=True)
class MetricsState:
    query: QuerySpec = field(default_factory=QuerySpec)
    time_range: TimeRange = field(default_factory=TimeRange)
    result: Cached[Any] = field(default_factory=Cached)
    last_error: Optional[ApiError] = None
    ledger: RequestLedger = field(default_factory=RequestLedger)


@dataclass(frozen=True)
class LogsState:
    filters: FilterSpec = field(default_factory=FilterSpec)
    scroll_position: int = 0
    entries: Cached[Any] = field(default_factory=Cached)
    last_error: Optional[ApiError] = None
    ledger: RequestLedger = field(default_factory=RequestLedger)


@dataclass(frozen=True)
class AlertsState:
    active: frozenset[str] = frozenset()
    silenced: frozenset[str] = frozenset()
    filter: FilterSpec = field(default_factory=FilterSpec)
    result: Cached[Any] = field(default_factory=Cached)
    last_error: Optional[ApiError] = None
    ledger: RequestLedger = field(default_factory=RequestLedger)


@dataclass(frozen=True)
class ConfigState:
    endpoints: Mapping[str, str] = field(default_factory=dict)
    auth_token: SecretStr = field(default_factory=lambda: SecretStr(""))
    refresh_interval_ms: int = 5000
    stale_after_ms: int = 30000
    fetch_timeout_ms: int = 10000
    theme: Theme = Theme.DARK

    def __post_init__(self):
        # Read-only copy so no caller keeps a mutable handle into the state
        object.__setattr__(self, "endpoints", MappingProxyType(dict(self.endpoints)))

    @property
    def refresh_interval(self) -> float:
        return self.refresh_interval_ms / 1000.0

    @property
    def stale_after(self) -> float:
        return self.stale_after_ms / 1000.0

    def endpoint(self, key: str) -> Optional[str]:
        return self.endpoints.get(key)


@dataclass(frozen=True)
class AppState:
    dashboard: DashboardState = field(default_factory=DashboardState)
    metrics: MetricsState = field(default_factory=MetricsState)
    logs: LogsState = field(default_factory=LogsState)
    alerts: AlertsState = field(default_factory=AlertsState)
    config: ConfigState = field(default_factory=ConfigState)


def initial_state(config: ConfigState = None, view: View = View.METRICS) -> AppState:
    """State at startup, before the config source has answered."""
    return AppState(
        dashboard=DashboardState(active_view=view),
        config=config or ConfigState(),
    )
