"""
The transition function: (state, message) -> (state, effects).

Pure apart from the two collaborators it is handed, the Cache and the
ResiliencePolicy, which the dispatcher only ever touches from here. Time
enters only through the explicit `now` argument. The same inputs (state,
message, now, and collaborator contents) always give the same result.

Metrics, logs and alerts follow one pattern, described by a SourceSpec:

- Refresh: ask the policy; short-circuit to the cached value with a
  circuit-open error, or emit a Fetch tagged with a new generation.
- Loaded(data): report success, apply it unless it answers a superseded
  request, write the cache.
- Loaded(error): report failure, then retry (Delay), or surface the error
  while keeping the last value visible and stale.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from ..cache import Cache, is_stale
from ..errors import ApiError, InvariantViolation, circuit_open_error, classify
from ..resilience import Action, Outcome, ResiliencePolicy
from .effects import Delay, Effect, Fetch, FetchAlerts, FetchLogs, FetchMetrics, SaveSettings, StartTimer
from .messages import (
    REFRESH_MESSAGES,
    ClearStatus,
    ConfigChanged,
    ConfigLoaded,
    Loaded,
    Message,
    Navigate,
    Refresh,
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
from .state import AlertsState, AppState, Cached, StatusMessage, View

logger = logging.getLogger(__name__)

Effects = tuple[Effect, ...]

# Seconds a status banner stays up
STATUS_CLEAR_SECONDS = 3.0


@dataclass(frozen=True)
class Context:
    """Everything a transition may consult besides the state and message."""
    now: float
    cache: Cache
    policy: ResiliencePolicy


@dataclass(frozen=True)
class SourceSpec:
    """How one data source maps onto AppState."""
    view: View
    state_field: str                     # Attribute of AppState
    result_field: str                    # Cached[...] attribute of the view state
    build_fetch: Callable[[Any, AppState, int, float], Fetch]

    @property
    def key(self) -> str:
        return self.view.value

    def view_state(self, state: AppState) -> Any:
        return getattr(state, self.state_field)

    def result(self, view_state: Any) -> Cached:
        return getattr(view_state, self.result_field)


def _fetch_metrics(vs, state: AppState, generation: int, now: float) -> Fetch:
    return FetchMetrics(
        generation=generation,
        endpoint=state.config.endpoint(View.METRICS.value),
        auth_token=state.config.auth_token,
        timeout=state.config.fetch_timeout_ms / 1000.0,
        query=vs.query,
        time_range=vs.time_range.resolve(now),
    )


def _fetch_logs(vs, state: AppState, generation: int, now: float) -> Fetch:
    return FetchLogs(
        generation=generation,
        endpoint=state.config.endpoint(View.LOGS.value),
        auth_token=state.config.auth_token,
        timeout=state.config.fetch_timeout_ms / 1000.0,
        filters=vs.filters,
    )


def _fetch_alerts(vs, state: AppState, generation: int, now: float) -> Fetch:
    return FetchAlerts(
        generation=generation,
        endpoint=state.config.endpoint(View.ALERTS.value),
        auth_token=state.config.auth_token,
        timeout=state.config.fetch_timeout_ms / 1000.0,
        filter=vs.filter,
    )


SOURCES: dict[View, SourceSpec] = {
    View.METRICS: SourceSpec(View.METRICS, "metrics", "result", _fetch_metrics),
    View.LOGS: SourceSpec(View.LOGS, "logs", "entries", _fetch_logs),
    View.ALERTS: SourceSpec(View.ALERTS, "alerts", "result", _fetch_alerts),
}


def _put_view(state: AppState, spec: SourceSpec, view_state: Any) -> AppState:
    return replace(state, **{spec.state_field: view_state})


def _with_error(state: AppState, spec: SourceSpec, error: ApiError) -> AppState:
    vs = spec.view_state(state)
    return _put_view(state, spec, replace(vs, last_error=error))


def _invariant_error(state: AppState, spec: SourceSpec, detail: str) -> tuple[AppState, Effects]:
    error = classify(InvariantViolation(detail), spec.key)
    logger.warning(f"Invariant violated for '{spec.key}': {detail}")
    return _with_error(state, spec, error), ()


def _set_status(state: AppState, status: StatusMessage) -> tuple[AppState, Effects]:
    token = state.dashboard.status_token + 1
    dashboard = replace(state.dashboard, status=status, status_token=token)
    return (
        replace(state, dashboard=dashboard),
        (Delay(STATUS_CLEAR_SECONDS, ClearStatus(token)),),
    )


# ---------------------------------------------------------------------------
# Per-source pattern
# ---------------------------------------------------------------------------


def _issue(
    state: AppState,
    spec: SourceSpec,
    ctx: Context,
    parameters_changed: bool = False,
    retry_of: Optional[int] = None,
) -> tuple[AppState, Effects]:
    """Issue (or re-issue) a fetch for *spec*, subject to the circuit breaker."""
    vs = spec.view_state(state)
    ledger = vs.ledger
    result = spec.result(vs)

    if retry_of is not None and retry_of != ledger.issued:
        logger.debug(f"Dropping retry of generation {retry_of} for '{spec.key}' (now {ledger.issued})")
        return state, ()

    if not state.config.endpoint(spec.key):
        return _invariant_error(state, spec, f"no endpoint configured for '{spec.key}'")

    if not ctx.policy.should_attempt(spec.key, ctx.now):
        until = ctx.policy.open_until(spec.key) or ctx.now
        vs = replace(
            vs,
            **{spec.result_field: result.stale()},
            last_error=circuit_open_error(spec.key, until),
            # An outstanding probe still answers; only a dead request stops pending
            ledger=ledger if ledger.in_flight else replace(ledger, pending=False, retrying=False),
        )
        return _put_view(state, spec, vs), ()

    if retry_of is None:
        ledger = ledger.issue(parameters_changed=parameters_changed)
        ctx.policy.begin(spec.key, ledger.issued)
    else:
        ledger = replace(ledger, pending=True, retrying=False)

    vs = replace(vs, **{spec.result_field: result.stale()}, ledger=ledger)
    state = _put_view(state, spec, vs)
    return state, (spec.build_fetch(vs, state, ledger.issued, ctx.now),)


def _apply_data(state: AppState, spec: SourceSpec, view_state: Any, data: Any) -> Any:
    """Hook for views that derive extra fields from freshly applied data."""
    if spec.view == View.ALERTS:
        return _recompute_active(view_state, data)
    return view_state


def _on_loaded(state: AppState, message: Loaded, ctx: Context) -> tuple[AppState, Effects]:
    spec = SOURCES[message.source]
    vs = spec.view_state(state)
    ledger = vs.ledger
    generation = message.generation

    if generation < 1 or generation > ledger.issued:
        return _invariant_error(
            state, spec, f"completion for generation {generation} that was never issued"
        )

    if message.ok:
        ctx.policy.on_result(spec.key, Outcome.SUCCESS, ctx.now, generation)
        result = spec.result(vs)

        if generation == ledger.applied:
            # Same answer again: only the fetch time moves
            ctx.cache.put(spec.key, result.value, ctx.now)
            vs = replace(vs, **{spec.result_field: replace(result, fetched_at=ctx.now)})
            return _put_view(state, spec, vs), ()

        if ledger.is_outdated(generation):
            logger.debug(f"Discarding superseded '{spec.key}' result g{generation}")
            return state, ()

        newest = generation == ledger.issued
        ctx.cache.put(spec.key, message.data, ctx.now)
        vs = replace(
            vs,
            **{spec.result_field: Cached(message.data, ctx.now, is_stale=not newest)},
            last_error=None,
            ledger=replace(
                ledger,
                applied=generation,
                pending=not newest,
                retrying=ledger.retrying and not newest,
            ),
        )
        vs = _apply_data(state, spec, vs, message.data)
        return _put_view(state, spec, vs), ()

    error = message.error
    decision = ctx.policy.on_result(
        spec.key, Outcome.failure(error.transient), ctx.now, generation
    )

    if generation != ledger.issued or generation <= ledger.applied:
        logger.debug(f"Discarding superseded '{spec.key}' failure g{generation}")
        return state, ()

    result = spec.result(vs).stale()
    if decision.action == Action.RETRY:
        vs = replace(
            vs,
            **{spec.result_field: result},
            ledger=replace(ledger, pending=True, retrying=True),
        )
        retry = REFRESH_MESSAGES[spec.view](retry_of=generation)
        return _put_view(state, spec, vs), (Delay(decision.delay, retry),)

    logger.info(f"Surfacing '{spec.key}' error ({decision.action.value}): {error.describe()}")
    vs = replace(
        vs,
        **{spec.result_field: result},
        last_error=error,
        ledger=replace(ledger, pending=False, retrying=False),
    )
    return _put_view(state, spec, vs), ()


def _on_refresh(state: AppState, message: Refresh, ctx: Context) -> tuple[AppState, Effects]:
    return _issue(state, SOURCES[message.source], ctx, retry_of=message.retry_of)


# ---------------------------------------------------------------------------
# Navigation and request parameters
# ---------------------------------------------------------------------------


def _on_navigate(state: AppState, message: Navigate, ctx: Context) -> tuple[AppState, Effects]:
    spec = SOURCES[message.view]
    state = replace(state, dashboard=replace(state.dashboard, active_view=message.view))
    vs = spec.view_state(state)

    entry = ctx.cache.get(spec.key)
    stale = is_stale(entry, ctx.now, state.config.stale_after)
    if entry is not None:
        # A failed, pending or outdated result stays stale however young the entry is
        cached = Cached.from_entry(entry, is_stale=stale or spec.result(vs).is_stale)
        state = _put_view(state, spec, replace(vs, **{spec.result_field: cached}))

    if state.dashboard.loading or not stale or vs.ledger.pending:
        return state, ()
    return _issue(state, spec, ctx)


def _on_set_query(state: AppState, message: SetMetricsQuery, ctx: Context) -> tuple[AppState, Effects]:
    metrics = replace(
        state.metrics,
        query=message.query,
        time_range=message.time_range or state.metrics.time_range,
    )
    state = replace(state, metrics=metrics)
    return _issue(state, SOURCES[View.METRICS], ctx, parameters_changed=True)


def _on_set_log_filters(state: AppState, message: SetLogFilters, ctx: Context) -> tuple[AppState, Effects]:
    state = replace(state, logs=replace(state.logs, filters=message.filters, scroll_position=0))
    return _issue(state, SOURCES[View.LOGS], ctx, parameters_changed=True)


def _on_set_alert_filter(state: AppState, message: SetAlertFilter, ctx: Context) -> tuple[AppState, Effects]:
    state = replace(state, alerts=replace(state.alerts, filter=message.filter))
    return _issue(state, SOURCES[View.ALERTS], ctx, parameters_changed=True)


def _on_scroll(state: AppState, message: ScrollLogs, ctx: Context) -> tuple[AppState, Effects]:
    entries = state.logs.entries.value
    if entries is None:
        return _invariant_error(state, SOURCES[View.LOGS], "scroll requested before any logs were loaded")
    position = max(0, min(message.offset, max(len(entries) - 1, 0)))
    return replace(state, logs=replace(state.logs, scroll_position=position)), ()


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


def _recompute_active(alerts: AlertsState, data: Any = None) -> AlertsState:
    items = data if data is not None else (alerts.result.value or ())
    firing = frozenset(a.id for a in items if a.is_firing)
    return replace(alerts, active=firing - alerts.silenced)


def _known_alert_ids(alerts: AlertsState) -> frozenset[str]:
    return frozenset(a.id for a in (alerts.result.value or ()))


def _on_silence(state: AppState, message: SilenceAlert, ctx: Context) -> tuple[AppState, Effects]:
    alerts = state.alerts
    if message.alert_id not in _known_alert_ids(alerts):
        return _invariant_error(state, SOURCES[View.ALERTS], f"unknown alert '{message.alert_id}'")
    alerts = replace(alerts, silenced=alerts.silenced | {message.alert_id})
    return replace(state, alerts=_recompute_active(alerts)), ()


def _on_unsilence(state: AppState, message: UnsilenceAlert, ctx: Context) -> tuple[AppState, Effects]:
    alerts = state.alerts
    if message.alert_id not in alerts.silenced:
        return state, ()
    alerts = replace(alerts, silenced=alerts.silenced - {message.alert_id})
    return replace(state, alerts=_recompute_active(alerts)), ()


# ---------------------------------------------------------------------------
# Timer, config, settings
# ---------------------------------------------------------------------------


def _refresh_targets(state: AppState) -> list[View]:
    targets = [state.dashboard.active_view]
    if View.ALERTS not in targets:
        targets.append(View.ALERTS)
    return targets


def _refresh_all(state: AppState, ctx: Context, skip_pending: bool) -> tuple[AppState, Effects]:
    effects: list[Effect] = []
    for view in _refresh_targets(state):
        spec = SOURCES[view]
        ledger = spec.view_state(state).ledger
        # A scheduled retry keeps its attempt count; a tick must not restart it
        if skip_pending and ledger.pending:
            continue
        state, issued = _issue(state, spec, ctx)
        effects.extend(issued)
    return state, tuple(effects)


def _restart_timer(state: AppState) -> tuple[AppState, Effects]:
    generation = state.dashboard.timer_generation + 1
    state = replace(state, dashboard=replace(state.dashboard, timer_generation=generation))
    return state, (StartTimer(state.config.refresh_interval, generation),)


def _on_timer(state: AppState, message: TimerFired, ctx: Context) -> tuple[AppState, Effects]:
    if message.generation != state.dashboard.timer_generation or state.dashboard.loading:
        logger.debug(f"Dropping outdated timer g{message.generation}")
        return state, ()
    state, effects = _refresh_all(state, ctx, skip_pending=True)
    timer = StartTimer(state.config.refresh_interval, state.dashboard.timer_generation)
    return state, effects + (timer,)


def _on_config_loaded(state: AppState, message: ConfigLoaded, ctx: Context) -> tuple[AppState, Effects]:
    effects: tuple[Effect, ...] = ()
    if message.config is not None:
        state = replace(state, config=message.config)
    state = replace(state, dashboard=replace(state.dashboard, loading=False))

    if message.error is not None:
        logger.error(f"Failed to load config: {message.error}")
        state, effects = _set_status(state, StatusMessage.error(f"Failed to load settings: {message.error}"))

    state, timer = _restart_timer(state)
    state, fetches = _refresh_all(state, ctx, skip_pending=False)
    return state, effects + timer + fetches


def _on_config_changed(state: AppState, message: ConfigChanged, ctx: Context) -> tuple[AppState, Effects]:
    old = state.config
    state = replace(state, config=message.config)
    effects: tuple[Effect, ...] = ()
    if state.dashboard.loading:
        return state, effects
    if message.config.refresh_interval_ms != old.refresh_interval_ms:
        state, effects = _restart_timer(state)
    if dict(message.config.endpoints) != dict(old.endpoints) or message.config.auth_token != old.auth_token:
        state, fetches = _refresh_all(state, ctx, skip_pending=False)
        effects = effects + fetches
    return state, effects


def _on_theme(state: AppState, message: ThemeChanged, ctx: Context) -> tuple[AppState, Effects]:
    config = replace(state.config, theme=message.theme)
    state = replace(state, config=config)
    return state, (SaveSettings(config.theme, config.refresh_interval_ms),)


def _on_settings_saved(state: AppState, message: SettingsSaved, ctx: Context) -> tuple[AppState, Effects]:
    if message.error is None:
        return _set_status(state, StatusMessage.success("Settings saved"))
    logger.error(f"Failed to save settings: {message.error}")
    return _set_status(state, StatusMessage.error(f"Failed to save settings: {message.error}"))


def _on_clear_status(state: AppState, message: ClearStatus, ctx: Context) -> tuple[AppState, Effects]:
    if message.token != state.dashboard.status_token:
        return state, ()
    return replace(state, dashboard=replace(state.dashboard, status=None)), ()


_HANDLERS: dict[type, Callable[[AppState, Any, Context], tuple[AppState, Effects]]] = {
    Navigate: _on_navigate,
    Refresh: _on_refresh,
    Loaded: _on_loaded,
    SetMetricsQuery: _on_set_query,
    SetLogFilters: _on_set_log_filters,
    SetAlertFilter: _on_set_alert_filter,
    ScrollLogs: _on_scroll,
    SilenceAlert: _on_silence,
    UnsilenceAlert: _on_unsilence,
    TimerFired: _on_timer,
    ConfigLoaded: _on_config_loaded,
    ConfigChanged: _on_config_changed,
    ThemeChanged: _on_theme,
    SettingsSaved: _on_settings_saved,
    ClearStatus: _on_clear_status,
}


def _handler_for(message: Message):
    for cls in type(message).__mro__:
        handler = _HANDLERS.get(cls)
        if handler is not None:
            return handler
    return None


def transition(
    state: AppState,
    message: Message,
    *,
    now: float,
    cache: Cache,
    policy: ResiliencePolicy,
) -> tuple[AppState, Effects]:
    """
    Apply one message.

    Args:
        state: Current snapshot (never modified)
        message: Message to apply
        now: Processing time in epoch seconds
        cache: Last-known-good cache
        policy: Resilience policy

    Returns:
        (next state, effects to run)
    """
    handler = _handler_for(message)
    if handler is None:
        logger.warning(f"Ignoring unknown message {type(message).__name__}")
        return state, ()
    return handler(state, message, Context(now=now, cache=cache, policy=policy))
