from __future__ import annotations

import datetime
from dataclasses import dataclass, fields, replace
from email.utils import parsedate_to_datetime
from typing import Mapping, Optional

# X-RateLimit-Reset values below this are relative seconds, above are epoch seconds
_EPOCH_CUTOFF = 1_000_000_000


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


def _parse_retry_after(value: Optional[str], now: float) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=datetime.timezone.utc)
    return max(0.0, retry_at.timestamp() - now)


@dataclass(frozen=True)
class RateLimitState:
    """Provider rate-limit hints observed on the most recent responses.

    Values are immutable; every response yields a new state via merge().
    """

    limit: Optional[int] = None
    remaining: Optional[int] = None
    reset_at: Optional[float] = None
    retry_after_s: Optional[float] = None
    observed_at: Optional[float] = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str], now: float) -> "RateLimitState":
        lowered = {key.lower(): value for key, value in headers.items()}
        reset = _parse_int(lowered.get("x-ratelimit-reset"))
        reset_at: Optional[float] = None
        if reset is not None:
            reset_at = float(reset) if reset >= _EPOCH_CUTOFF else now + reset
        return cls(
            limit=_parse_int(lowered.get("x-ratelimit-limit")),
            remaining=_parse_int(lowered.get("x-ratelimit-remaining")),
            reset_at=reset_at,
            retry_after_s=_parse_retry_after(lowered.get("retry-after"), now),
            observed_at=now,
        )

    def merge(self, newer: "RateLimitState") -> "RateLimitState":
        updates = {
            item.name: getattr(newer, item.name)
            for item in fields(newer)
            if getattr(newer, item.name) is not None
        }
        if newer.observed_at is not None and newer.retry_after_s is None:
            updates["retry_after_s"] = None
        return replace(self, **updates)

    @property
    def exhausted(self) -> bool:
        return self.remaining == 0

    def delay_hint(self, now: float) -> float:
        hints = [0.0]
        if self.retry_after_s is not None and self.observed_at is not None:
            hints.append(self.observed_at + self.retry_after_s - now)
        if self.exhausted and self.reset_at is not None:
            hints.append(self.reset_at - now)
        return max(0.0, max(hints))
