"""Tests for the Loki log source."""

import asyncio

import httpx
from pydantic import SecretStr

from obsdash.engine import FetchLogs, FilterSpec
from obsdash.sources.loki import MATCH_ALL_SELECTOR, LokiSource, build_logql, parse_streams

PAYLOAD = {
    "status": "success",
    "data": {
        "resultType": "streams",
        "result": [
            {
                "stream": {"app": "api"},
                "values": [["1700000002000000000", "GET /health 200"], ["1700000000000000000", "started"]],
            },
            {
                "stream": {"app": "worker"},
                "values": [["1700000001000000000", "job done"]],
            },
        ],
    },
}


def _run(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


class TestBuildLogql:
    def test_match_all(self):
        assert build_logql(FilterSpec()) == MATCH_ALL_SELECTOR

    def test_labels(self):
        assert build_logql(FilterSpec.of(env="prod", app="api")) == '{app="api", env="prod"}'

    def test_text_filter_is_quoted(self):
        query = build_logql(FilterSpec.of('say "hi"'))
        assert query == MATCH_ALL_SELECTOR + ' |= "say \\"hi\\""'


class TestParseStreams:
    def test_flattens_newest_first(self):
        entries = parse_streams(PAYLOAD)
        assert [e.line for e in entries] == ["GET /health 200", "job done", "started"]
        assert entries[0].timestamp == 1700000002.0
        assert entries[1].labels == {"app": "worker"}

    def test_empty(self):
        payload = {"status": "success", "data": {"resultType": "streams", "result": []}}
        assert parse_streams(payload) == ()


class TestLokiSource:
    def test_fetch(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, json=PAYLOAD)

        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                request = FetchLogs(
                    generation=1,
                    endpoint="http://loki:3100",
                    auth_token=SecretStr(""),
                    filters=FilterSpec.of("error", app="api"),
                    limit=100,
                )
                return await LokiSource(client).fetch(request)

        entries = _run(go())

        params = seen["request"].url.params
        assert seen["request"].url.path == "/loki/api/v1/query_range"
        assert params["query"] == '{app="api"} |= "error"'
        assert params["limit"] == "100"
        assert params["direction"] == "backward"
        assert len(entries) == 3

    def test_source_id(self):
        assert LokiSource().source_id == "logs"
