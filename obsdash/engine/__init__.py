"""
Reactive dashboard engine.

Provides:
- Immutable application state and the messages/effects that drive it
- The pure transition function
- StateStore, Dispatcher and EffectRunner plumbing
"""

from .dispatcher import Dispatcher
from .effects import (
    Delay,
    Effect,
    Fetch,
    FetchAlerts,
    FetchLogs,
    FetchMetrics,
    LoadConfig,
    SaveSettings,
    StartTimer,
)
from .messages import (
    AlertsLoaded,
    ClearStatus,
    ConfigChanged,
    ConfigLoaded,
    Loaded,
    LogsLoaded,
    Message,
    MetricsLoaded,
    Navigate,
    Refresh,
    RefreshAlerts,
    RefreshLogs,
    RefreshMetrics,
    ScrollLogs,
    SetAlertFilter,
    SetLogFilters,
    SetMetricsQuery,
    SettingsSaved,
    SilenceAlert,
    ThemeChanged,
    TimerFired,
    UnsilenceAlert,
)
from .runner import EffectRunner
from .state import (
    AlertsState,
    AppState,
    Cached,
    ConfigState,
    DashboardState,
    FilterSpec,
    LogsState,
    MetricsState,
    QuerySpec,
    RequestLedger,
    StatusMessage,
    Theme,
    TimeRange,
    View,
    initial_state,
)
from .store import StateStore
from .transition import transition

__all__ = [
    "Dispatcher",
    "EffectRunner",
    "StateStore",
    "transition",
    "initial_state",
    # state
    "AppState",
    "DashboardState",
    "MetricsState",
    "LogsState",
    "AlertsState",
    "ConfigState",
    "Cached",
    "RequestLedger",
    "StatusMessage",
    "QuerySpec",
    "TimeRange",
    "FilterSpec",
    "Theme",
    "View",
    # messages
    "Message",
    "Navigate",
    "Refresh",
    "RefreshMetrics",
    "RefreshLogs",
    "RefreshAlerts",
    "Loaded",
    "MetricsLoaded",
    "LogsLoaded",
    "AlertsLoaded",
    "SetMetricsQuery",
    "SetLogFilters",
    "SetAlertFilter",
    "ScrollLogs",
    "SilenceAlert",
    "UnsilenceAlert",
    "TimerFired",
    "ConfigLoaded",
    "ConfigChanged",
    "ThemeChanged",
    "SettingsSaved",
    "ClearStatus",
    # effects
    "Effect",
    "Fetch",
    "FetchMetrics",
    "FetchLogs",
    "FetchAlerts",
    "StartTimer",
    "Delay",
    "LoadConfig",
    "SaveSettings",
]
