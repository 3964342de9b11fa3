from __future__ import annotations

import logging
from typing import TypeVar

from tradeable.errors import FailureKind, FetchError, SourceUnavailable
from tradeable.schemas.provider import SourceResult, SourceStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STATUS_BY_KIND: dict[FailureKind, SourceStatus] = {
    FailureKind.CONNECTIVITY: "unreachable",
    FailureKind.RATE_LIMITED: "rate_limited",
    FailureKind.TIMEOUT: "timeout",
    FailureKind.MALFORMED: "malformed",
    FailureKind.SERVER_ERROR: "error",
    FailureKind.REJECTED: "error",
}


def status_for_error(error: BaseException) -> SourceStatus:
    if isinstance(error, FetchError):
        return _STATUS_BY_KIND.get(error.kind, "error")
    if isinstance(error, SourceUnavailable):
        return "missing_key"
    return "error"


def live(provider: str, value: T) -> SourceResult[T]:
    return SourceResult(provider=provider, value=value)


def fallback(provider: str, value: T, status: SourceStatus) -> SourceResult[T]:
    logger.warning(f"{provider}: serving fallback data ({status})")
    return SourceResult(provider=provider, value=value, origin="fallback", status=status)
