"""Prometheus-compatible range query source for the metrics view."""

import logging
from typing import Literal

from pydantic import BaseModel

from obsdash.engine.effects import FetchMetrics
from obsdash.models import MetricData, MetricSeries, Sample
from obsdash.sources.http import HttpSource

logger = logging.getLogger(__name__)

QUERY_RANGE_PATH = "/api/v1/query_range"


class _PromSeries(BaseModel):
    metric: dict[str, str] = {}
    values: list[tuple[float, float]] = []


class _PromData(BaseModel):
    resultType: Literal["matrix"]
    result: list[_PromSeries]


class _PromResponse(BaseModel):
    status: Literal["success"]
    data: _PromData


def parse_query_range(query: str, payload: dict) -> MetricData:
    """Validate a query_range response into MetricData."""
    response = _PromResponse.model_validate(payload)
    series = tuple(
        MetricSeries(
            labels=item.metric,
            samples=tuple(Sample(timestamp=ts, value=value) for ts, value in item.values),
        )
        for item in response.data.result
    )
    return MetricData(query=query, series=series)


class PrometheusSource(HttpSource):
    """Fetches range queries from a Prometheus HTTP API."""

    @property
    def source_id(self) -> str:
        return "metrics"

    async def fetch(self, request: FetchMetrics) -> MetricData:
        time_range = request.time_range
        params = {
            "query": request.query.expression,
            "start": time_range.start,
            "end": time_range.end,
            "step": request.query.step_seconds,
        }
        payload = await self._get_json(request, QUERY_RANGE_PATH, params)
        data = parse_query_range(request.query.expression, payload)
        logger.debug(f"Prometheus returned {len(data.series)} series for {request.query.expression!r}")
        return data
