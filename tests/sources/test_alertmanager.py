"""Tests for the Alertmanager source."""

import asyncio

import httpx
import pytest
from pydantic import SecretStr

from obsdash.engine import FetchAlerts, FilterSpec
from obsdash.errors import ErrorCategory, classify
from obsdash.models import AlertSeverity
from obsdash.sources.alertmanager import AlertmanagerSource, parse_alerts

PAYLOAD = [
    {
        "fingerprint": "a1",
        "labels": {"alertname": "HighLatency", "severity": "critical", "service": "api"},
        "annotations": {"summary": "p99 above 2s"},
        "startsAt": "2024-05-01T10:00:00Z",
        "status": {"state": "active"},
    },
    {
        "fingerprint": "b2",
        "labels": {"alertname": "DiskFilling", "severity": "page"},
        "annotations": {},
        "status": {"state": "suppressed"},
    },
]


def _run(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


def _fetch(handler, filter_spec: FilterSpec = FilterSpec()):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            request = FetchAlerts(
                generation=1,
                endpoint="http://alertmanager:9093",
                auth_token=SecretStr(""),
                filter=filter_spec,
            )
            return await AlertmanagerSource(client).fetch(request)
    return _run(go())


class TestParseAlerts:
    def test_maps_fields(self):
        alerts = parse_alerts(PAYLOAD)
        first = alerts[0]
        assert first.id == "a1"
        assert first.name == "HighLatency"
        assert first.severity == AlertSeverity.CRITICAL
        assert first.summary == "p99 above 2s"
        assert first.is_firing is True
        assert first.starts_at.year == 2024

    def test_unknown_severity_and_state(self):
        second = parse_alerts(PAYLOAD)[1]
        assert second.severity == AlertSeverity.NONE
        assert second.is_firing is False
        assert second.starts_at is None

    def test_text_filter_applied_locally(self):
        alerts = parse_alerts(PAYLOAD, FilterSpec.of("latency"))
        assert [a.id for a in alerts] == ["a1"]


class TestAlertmanagerSource:
    def test_label_filters_sent_as_matchers(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, json=PAYLOAD[:1])

        alerts = _fetch(handler, FilterSpec.of(service="api", severity="critical"))

        request = seen["request"]
        assert request.url.path == "/api/v2/alerts"
        assert request.url.params.get_list("filter") == ['service="api"', 'severity="critical"']
        assert len(alerts) == 1

    def test_non_list_payload_is_parsing_error(self):
        with pytest.raises(TypeError) as exc_info:
            _fetch(lambda request: httpx.Response(200, json={"alerts": []}))
        assert classify(exc_info.value, "alerts").category == ErrorCategory.PARSING
