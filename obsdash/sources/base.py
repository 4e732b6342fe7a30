"""Base class for dashboard data sources."""

from abc import ABC, abstractmethod
from typing import Any

from obsdash.engine.effects import Fetch


class DataSource(ABC):
    """
    Abstract base class for data sources.

    Subclasses must implement:
        - source_id property: Data source key this source answers for
        - fetch() coroutine: Returns the payload for a Fetch effect, raises on failure
    """

    @property
    @abstractmethod
    def source_id(self) -> str:
        """Data source key (metrics, logs, alerts)."""
        pass

    @abstractmethod
    async def fetch(self, request: Fetch) -> Any:
        """Fetch the payload described by *request*."""
        pass
