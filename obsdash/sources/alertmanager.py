"""Alertmanager-compatible source for the alerts view."""

import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from obsdash.engine.effects import FetchAlerts
from obsdash.engine.state import FilterSpec
from obsdash.models import Alert, AlertSeverity
from obsdash.sources.http import HttpSource

logger = logging.getLogger(__name__)

ALERTS_PATH = "/api/v2/alerts"


class _AlertStatus(BaseModel):
    state: str = "active"


class _GettableAlert(BaseModel):
    fingerprint: str
    labels: dict[str, str] = {}
    annotations: dict[str, str] = {}
    startsAt: Optional[datetime] = None
    status: _AlertStatus = Field(default_factory=_AlertStatus)


def _severity(labels: dict[str, str]) -> AlertSeverity:
    try:
        return AlertSeverity(labels.get("severity", "none").lower())
    except ValueError:
        return AlertSeverity.NONE


def parse_alerts(payload: list, filters: FilterSpec = None) -> tuple[Alert, ...]:
    """Validate the alert list and apply the free-text part of the filter."""
    raw = [_GettableAlert.model_validate(item) for item in payload]
    alerts = []
    for item in raw:
        alert = Alert(
            id=item.fingerprint,
            name=item.labels.get("alertname", item.fingerprint),
            severity=_severity(item.labels),
            state=item.status.state,
            summary=item.annotations.get("summary", ""),
            labels=item.labels,
            starts_at=item.startsAt,
        )
        if filters is None or filters.matches(alert.labels, f"{alert.name} {alert.summary}"):
            alerts.append(alert)
    return tuple(alerts)


class AlertmanagerSource(HttpSource):
    """Fetches alerts from the Alertmanager v2 API."""

    @property
    def source_id(self) -> str:
        return "alerts"

    async def fetch(self, request: FetchAlerts) -> tuple[Alert, ...]:
        # Label matchers go to the server, free text is matched locally
        params = [("filter", f'{name}="{value}"') for name, value in request.filter.labels]
        payload = await self._get_json(request, ALERTS_PATH, params or None)
        if not isinstance(payload, list):
            raise TypeError(f"expected a list of alerts, got {type(payload).__name__}")
        alerts = parse_alerts(payload, request.filter)
        logger.debug(f"Alertmanager returned {len(alerts)} alerts")
        return alerts
