from __future__ import annotations

import datetime
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

Origin = Literal["live", "fallback"]
SourceStatus = Literal[
    "ok",
    "missing_key",
    "rate_limited",
    "timeout",
    "unreachable",
    "malformed",
    "error",
    "empty",
]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class SourceResult(BaseModel, Generic[T]):
    model_config = ConfigDict(frozen=True)

    provider: str
    value: T
    origin: Origin = "live"
    status: SourceStatus = "ok"
    fetched_at: datetime.datetime = Field(default_factory=utcnow)

    @property
    def is_live(self) -> bool:
        return self.origin == "live"
