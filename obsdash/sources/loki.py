"""Loki-compatible log query source for the logs view."""

import logging
from typing import Literal

from pydantic import BaseModel

from obsdash.engine.effects import FetchLogs
from obsdash.engine.state import FilterSpec
from obsdash.models import LogEntry
from obsdash.sources.http import HttpSource

logger = logging.getLogger(__name__)

QUERY_RANGE_PATH = "/loki/api/v1/query_range"

# Loki rejects selectors without a non-empty matcher
MATCH_ALL_SELECTOR = '{job=~".+"}'


class _LokiStream(BaseModel):
    stream: dict[str, str] = {}
    values: list[tuple[str, str]] = []


class _LokiData(BaseModel):
    resultType: Literal["streams"]
    result: list[_LokiStream]


class _LokiResponse(BaseModel):
    status: Literal["success"]
    data: _LokiData


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def build_logql(filters: FilterSpec) -> str:
    """Stream selector from label filters plus a line filter for the text."""
    if filters.labels:
        selector = "{" + ", ".join(f"{name}={_quote(value)}" for name, value in filters.labels) + "}"
    else:
        selector = MATCH_ALL_SELECTOR
    if filters.text:
        return f"{selector} |= {_quote(filters.text)}"
    return selector


def parse_streams(payload: dict) -> tuple[LogEntry, ...]:
    """Flatten Loki streams into entries, newest first."""
    response = _LokiResponse.model_validate(payload)
    entries = [
        LogEntry(timestamp=int(ts) / 1e9, line=line, labels=stream.stream)
        for stream in response.data.result
        for ts, line in stream.values
    ]
    entries.sort(key=lambda e: e.timestamp, reverse=True)
    return tuple(entries)


class LokiSource(HttpSource):
    """Fetches log lines from a Loki HTTP API."""

    @property
    def source_id(self) -> str:
        return "logs"

    async def fetch(self, request: FetchLogs) -> tuple[LogEntry, ...]:
        params = {
            "query": build_logql(request.filters),
            "limit": request.limit,
            "direction": "backward",
        }
        payload = await self._get_json(request, QUERY_RANGE_PATH, params)
        return parse_streams(payload)
