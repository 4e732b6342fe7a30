"""
Error classification for data-source failures.

Every failure that comes back from an external call is folded into one
ApiError with exactly one category and a transient flag:

- NETWORK: connection failures, timeouts, 5xx responses (transient)
- PARSING: malformed or unexpected payloads (terminal)
- APPLICATION: broken in-process invariants, rejected requests (terminal)

Transient errors are eligible for retry by the resilience policy. Terminal
errors are surfaced to the view immediately.
"""

import asyncio
import json
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Optional

import httpx
from pydantic import ValidationError


class ErrorCategory(str, Enum):
    """Top-level failure categories."""
    NETWORK = "network"
    PARSING = "parsing"
    APPLICATION = "application"


class NetworkKind(str, Enum):
    """What kind of network failure a NETWORK error was."""
    CONNECT = "connect"
    TIMEOUT = "timeout"
    SERVER = "server"
    RATE_LIMITED = "rate_limited"
    CIRCUIT_OPEN = "circuit_open"


class InvariantViolation(Exception):
    """Raised (or classified) when an in-process invariant does not hold."""


@dataclass(frozen=True)
class ApiError:
    """A classified failure, safe to keep inside application state."""
    category: ErrorCategory
    detail: str
    transient: bool
    network_kind: Optional[NetworkKind] = None
    source: Optional[str] = None

    @property
    def is_circuit_open(self) -> bool:
        return self.network_kind == NetworkKind.CIRCUIT_OPEN

    def describe(self) -> str:
        """Short human readable text for inline display."""
        if self.category == ErrorCategory.NETWORK and self.network_kind:
            label = f"network/{self.network_kind.value}"
        else:
            label = self.category.value
        prefix = f"{self.source}: " if self.source else ""
        return f"{prefix}{label}: {self.detail}"

    @classmethod
    def network(cls, kind: NetworkKind, detail: str, source: str = None) -> "ApiError":
        return cls(ErrorCategory.NETWORK, detail, True, kind, source)

    @classmethod
    def parsing(cls, detail: str, source: str = None) -> "ApiError":
        return cls(ErrorCategory.PARSING, detail, False, None, source)

    @classmethod
    def application(cls, detail: str, source: str = None) -> "ApiError":
        return cls(ErrorCategory.APPLICATION, detail, False, None, source)


# Decoding failures raised while turning a response body into payload models
PARSING_EXCEPTIONS = (
    ValidationError,
    json.JSONDecodeError,
    httpx.DecodingError,
    ValueError,
    KeyError,
    TypeError,
)


def _classify_status(exc: httpx.HTTPStatusError, source: Optional[str]) -> ApiError:
    status = exc.response.status_code
    detail = f"HTTP {status} from {exc.request.url}"
    if status >= 500:
        return ApiError.network(NetworkKind.SERVER, detail, source)
    if status == 429:
        return ApiError.network(NetworkKind.RATE_LIMITED, detail, source)
    if status == 408:
        return ApiError.network(NetworkKind.TIMEOUT, detail, source)
    # Any other 4xx: the request itself was rejected
    return ApiError.application(detail, source)


def classify(failure: BaseException | ApiError, source: str = None) -> ApiError:
    """
    Map a raw failure to an ApiError.

    Args:
        failure: Exception raised by a data source call (an ApiError passes through)
        source: Data source key the failure belongs to

    Returns:
        ApiError with exactly one category and a transient flag
    """
    if isinstance(failure, ApiError):
        return failure

    if isinstance(failure, httpx.HTTPStatusError):
        return _classify_status(failure, source)

    # Timeouts before generic transport errors: httpx timeouts are transport errors too
    if isinstance(failure, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
        return ApiError.network(NetworkKind.TIMEOUT, str(failure) or "request timed out", source)

    if isinstance(failure, (httpx.TransportError, ConnectionError, OSError)):
        return ApiError.network(NetworkKind.CONNECT, str(failure) or type(failure).__name__, source)

    if isinstance(failure, InvariantViolation):
        return ApiError.application(str(failure), source)

    if isinstance(failure, PARSING_EXCEPTIONS):
        return ApiError.parsing(f"{type(failure).__name__}: {failure}", source)

    return ApiError.application(f"{type(failure).__name__}: {failure}", source)


def circuit_open_error(source: str, until: float) -> ApiError:
    """Error attached to a view whose refresh was short-circuited."""
    until_iso = datetime.fromtimestamp(until, tz=UTC).isoformat()
    return ApiError.network(
        NetworkKind.CIRCUIT_OPEN,
        f"circuit open until {until_iso}",
        source,
    )
