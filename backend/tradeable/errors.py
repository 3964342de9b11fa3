"""
Error taxonomy shared by the fetch layer, adapters and services.

Fetch failures are typed so callers can decide between retry, endpoint
substitution and fallback. Only ConfigurationError and the ValueError
subclasses are meant to reach the HTTP layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FailureKind(str, Enum):
    CONNECTIVITY = "connectivity"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    MALFORMED = "malformed"
    SERVER_ERROR = "server_error"
    REJECTED = "rejected"


# kinds that a further attempt can plausibly fix
RETRYABLE_KINDS = frozenset(
    {
        FailureKind.CONNECTIVITY,
        FailureKind.RATE_LIMITED,
        FailureKind.TIMEOUT,
        FailureKind.MALFORMED,
        FailureKind.SERVER_ERROR,
    }
)


@dataclass(frozen=True)
class FetchAttempt:
    url: str
    attempt_number: int
    timeout_ms: int
    succeeded: bool
    kind: Optional[FailureKind] = None
    message: str = ""


class TradeableError(Exception):
    pass


class FetchError(TradeableError):
    kind: FailureKind = FailureKind.SERVER_ERROR

    def __init__(
        self,
        message: str,
        *,
        url: str = "",
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
        retry_after_s: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.url = url
        self.status_code = status_code
        self.cause = cause
        self.retry_after_s = retry_after_s
        self.attempts: tuple[FetchAttempt, ...] = ()

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


class ConnectivityError(FetchError):
    kind = FailureKind.CONNECTIVITY


class RateLimited(FetchError):
    kind = FailureKind.RATE_LIMITED


class Timeout(FetchError):
    kind = FailureKind.TIMEOUT


class MalformedResponse(FetchError):
    kind = FailureKind.MALFORMED


class ServerError(FetchError):
    kind = FailureKind.SERVER_ERROR


class RequestRejected(FetchError):
    kind = FailureKind.REJECTED


class SourceUnavailable(TradeableError):
    """An optional source cannot be called, usually because its key is absent."""


class AllSourcesExhausted(TradeableError):
    def __init__(self, failures: list[tuple[str, BaseException]]) -> None:
        names = ", ".join(f"{name} ({type(error).__name__})" for name, error in failures)
        super().__init__(f"All sources failed: {names}" if failures else "No sources configured")
        self.failures = failures


class ConfigurationError(TradeableError):
    pass


class InvalidWeightingStrategy(ValueError):
    pass


class UnknownSource(ValueError):
    pass
