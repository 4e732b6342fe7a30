"""Tests for the view tree renderer."""

import json
from dataclasses import replace

from obsdash.engine import (
    AlertsLoaded,
    LogsLoaded,
    MetricsLoaded,
    Navigate,
    RefreshAlerts,
    RefreshLogs,
    RefreshMetrics,
    ScrollLogs,
    SettingsSaved,
    SilenceAlert,
    View,
    initial_state,
)
from obsdash.errors import circuit_open_error
from obsdash.render import render
from tests.engine.conftest import Harness, alert, log_entries, metric_data, ready_state


class TestRender:
    def test_loading(self):
        tree = render(initial_state())
        assert tree["loading"] is True
        assert tree["content"] == {"message": "Loading settings..."}
        assert tree["theme"] == "dark"
        assert tree["status"] is None
        assert tree["alert_badge"] == 0

    def test_metrics_view(self):
        h = Harness(ready_state())
        h.send(RefreshMetrics(), now=0.0)
        h.send(MetricsLoaded(1, data=metric_data(3.5)), now=1.0)

        content = render(h.state)["content"]
        assert content["query"] == "up"
        assert content["series"] == [{"labels": {"job": "api"}, "points": 1, "latest": 3.5}]
        assert content["stale"] is False
        assert content["loading"] is False
        assert content["error"] is None
        assert content["fetched_at"] == "1970-01-01T00:00:01+00:00"

    def test_pending_view_shows_loading(self):
        h = Harness(ready_state())
        h.send(RefreshMetrics(), now=0.0)
        content = render(h.state)["content"]
        assert content["loading"] is True
        assert content["series"] == []

    def test_logs_window(self):
        h = Harness(ready_state(view=View.LOGS))
        h.send(RefreshLogs(), now=0.0)
        h.send(LogsLoaded(1, data=log_entries(5)), now=1.0)
        h.send(ScrollLogs(1), now=2.0)

        content = render(h.state, page_size=2)["content"]
        assert content["total"] == 5
        assert content["offset"] == 1
        assert [line["line"] for line in content["lines"]] == ["line 1", "line 2"]

    def test_alerts_and_badge(self):
        h = Harness(ready_state(view=View.ALERTS))
        h.send(RefreshAlerts(), now=0.0)
        h.send(AlertsLoaded(1, data=(alert("a"), alert("b"))), now=1.0)
        h.send(SilenceAlert("b"), now=2.0)

        tree = render(h.state)
        assert tree["alert_badge"] == 1
        content = tree["content"]
        assert content["active_count"] == 1
        assert content["silenced_count"] == 1
        assert [(a["id"], a["silenced"], a["firing"]) for a in content["alerts"]] == [
            ("a", False, True),
            ("b", True, False),
        ]

    def test_circuit_open_indicator(self):
        state = ready_state()
        state = replace(state, metrics=replace(state.metrics, last_error=circuit_open_error("metrics", 60.0)))

        content = render(state)["content"]
        assert content["circuit_open"] is True
        assert "circuit open" in content["error"]

    def test_status_and_json_serialisable(self):
        h = Harness(ready_state())
        h.send(SettingsSaved(), now=0.0)
        h.send(Navigate(View.LOGS), now=0.0)

        tree = render(h.state)
        assert tree["status"] == {"text": "Settings saved", "level": "success"}
        assert tree["active_view"] == "logs"
        json.dumps(tree)
