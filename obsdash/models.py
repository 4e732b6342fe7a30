"""
Payload models for data returned by the observability backends.

Sources validate backend responses into these models, so a schema mismatch
surfaces as a pydantic ValidationError (classified as a parsing error).
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Sample(BaseModel):
    model_config = {"frozen": True}

    timestamp: float
    value: float


class MetricSeries(BaseModel):
    """One labelled time series."""
    model_config = {"frozen": True}

    labels: dict[str, str] = Field(default_factory=dict)
    samples: tuple[Sample, ...] = ()

    @property
    def latest(self) -> Optional[Sample]:
        return self.samples[-1] if self.samples else None


class MetricData(BaseModel):
    """Result of a range query."""
    model_config = {"frozen": True}

    query: str
    series: tuple[MetricSeries, ...] = ()


class LogEntry(BaseModel):
    model_config = {"frozen": True}

    timestamp: float
    line: str
    labels: dict[str, str] = Field(default_factory=dict)


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"
    NONE = "none"


class Alert(BaseModel):
    """A firing (or suppressed) alert."""
    model_config = {"frozen": True}

    id: str
    name: str
    severity: AlertSeverity = AlertSeverity.NONE
    state: str = "active"
    summary: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    starts_at: Optional[datetime] = None

    @property
    def is_firing(self) -> bool:
        return self.state == "active"
