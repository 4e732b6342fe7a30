"""
Pure renderer: AppState -> JSON-serialisable view tree.

The tree carries what a front end needs to draw the dashboard: the active
view's content, an inline error line, and stale / circuit-open indicators.
Nothing here mutates the snapshot.
"""

from datetime import UTC, datetime
from typing import Any, Optional

from obsdash.engine.state import AppState, Cached, View
from obsdash.errors import ApiError


def _iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=UTC).isoformat()


def _indicators(result: Cached, error: Optional[ApiError], ledger) -> dict[str, Any]:
    return {
        "stale": result.is_stale,
        "loading": ledger.pending,
        "retrying": ledger.retrying,
        "circuit_open": bool(error and error.is_circuit_open),
        "fetched_at": _iso(result.fetched_at),
        "error": error.describe() if error else None,
    }


def _render_metrics(state: AppState) -> dict[str, Any]:
    metrics = state.metrics
    data = metrics.result.value
    series = []
    if data is not None:
        for item in data.series:
            latest = item.latest
            series.append({
                "labels": dict(item.labels),
                "points": len(item.samples),
                "latest": latest.value if latest else None,
            })
    return {
        "query": metrics.query.expression,
        "series": series,
        **_indicators(metrics.result, metrics.last_error, metrics.ledger),
    }


def _render_logs(state: AppState, page_size: int) -> dict[str, Any]:
    logs = state.logs
    entries = logs.entries.value or ()
    start = logs.scroll_position
    window = entries[start:start + page_size]
    return {
        "filter": logs.filters.text,
        "total": len(entries),
        "offset": start,
        "lines": [
            {"time": _iso(entry.timestamp), "line": entry.line}
            for entry in window
        ],
        **_indicators(logs.entries, logs.last_error, logs.ledger),
    }


def _render_alerts(state: AppState) -> dict[str, Any]:
    alerts = state.alerts
    items = alerts.result.value or ()
    return {
        "active_count": len(alerts.active),
        "silenced_count": len(alerts.silenced),
        "alerts": [
            {
                "id": alert.id,
                "name": alert.name,
                "severity": alert.severity.value,
                "silenced": alert.id in alerts.silenced,
                "firing": alert.id in alerts.active,
            }
            for alert in items
        ],
        **_indicators(alerts.result, alerts.last_error, alerts.ledger),
    }


def render(state: AppState, page_size: int = 50) -> dict[str, Any]:
    """Build the view tree for *state*."""
    dashboard = state.dashboard
    tree: dict[str, Any] = {
        "theme": state.config.theme.value,
        "active_view": dashboard.active_view.value,
        "loading": dashboard.loading,
        "status": (
            {"text": dashboard.status.text, "level": dashboard.status.level.value}
            if dashboard.status else None
        ),
        "alert_badge": len(state.alerts.active),
    }
    if dashboard.loading:
        tree["content"] = {"message": "Loading settings..."}
    elif dashboard.active_view == View.METRICS:
        tree["content"] = _render_metrics(state)
    elif dashboard.active_view == View.LOGS:
        tree["content"] = _render_logs(state, page_size)
    else:
        tree["content"] = _render_alerts(state)
    return tree
