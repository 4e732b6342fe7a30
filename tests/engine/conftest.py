"""Shared fixtures for engine tests."""

import asyncio
from dataclasses import replace

import pytest

from obsdash.cache import Cache
from obsdash.engine import AppState, ConfigState, View, initial_state, transition
from obsdash.models import Alert, AlertSeverity, LogEntry, MetricData, MetricSeries, Sample
from obsdash.resilience import ResilienceConfig, ResiliencePolicy
from obsdash.sources.base import DataSource

ENDPOINTS = {
    "metrics": "http://prometheus:9090",
    "logs": "http://loki:3100",
    "alerts": "http://alertmanager:9093",
}


def make_config(**overrides) -> ConfigState:
    fields = {"endpoints": ENDPOINTS}
    fields.update(overrides)
    return ConfigState(**fields)


def ready_state(view: View = View.METRICS, **config_overrides) -> AppState:
    """State after the config source answered."""
    state = initial_state(make_config(**config_overrides), view)
    return replace(state, dashboard=replace(state.dashboard, loading=False))


def metric_data(value: float = 1.0, query: str = "up") -> MetricData:
    return MetricData(
        query=query,
        series=(MetricSeries(labels={"job": "api"}, samples=(Sample(timestamp=1.0, value=value),)),),
    )


def log_entries(n: int) -> tuple[LogEntry, ...]:
    return tuple(LogEntry(timestamp=float(100 - i), line=f"line {i}") for i in range(n))


def alert(alert_id: str, state: str = "active") -> Alert:
    return Alert(id=alert_id, name=f"Alert{alert_id}", severity=AlertSeverity.WARNING, state=state)


class Harness:
    """Drives transition() with one cache and policy, like the dispatcher does."""

    def __init__(self, state: AppState, config: ResilienceConfig = None):
        self.state = state
        self.cache = Cache()
        self.policy = ResiliencePolicy(config)

    def send(self, message, now: float = 0.0):
        self.state, effects = transition(
            self.state, message, now=now, cache=self.cache, policy=self.policy
        )
        return effects


@pytest.fixture
def engine() -> Harness:
    return Harness(ready_state())


@pytest.fixture
def make_engine():
    def _make(state: AppState = None, **resilience_kw) -> Harness:
        return Harness(state or ready_state(), ResilienceConfig(**resilience_kw))
    return _make


class FakeSource(DataSource):
    """In-memory data source: returns *result* or raises *exc*, optionally after *delay*."""

    def __init__(self, key: str, result=None, exc: Exception = None, delay: float = 0.0):
        self._key = key
        self._result = result
        self._exc = exc
        self._delay = delay
        self.requests = []

    @property
    def source_id(self) -> str:
        return self._key

    async def fetch(self, request):
        self.requests.append(request)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._exc is not None:
            raise self._exc
        return self._result
