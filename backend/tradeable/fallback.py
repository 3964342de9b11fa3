from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Sequence, TypeVar, Union

import httpx

from tradeable.errors import AllSourcesExhausted, TradeableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# errors an external strategy is expected to produce; anything else is a bug
EXPECTED_ERRORS = (TradeableError, httpx.HTTPError)


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    strategy: str


@dataclass(frozen=True)
class Err:
    error: BaseException
    strategy: str


Result = Union[Ok[T], Err]


@dataclass(frozen=True)
class Strategy(Generic[T]):
    name: str
    run: Callable[[], Awaitable[T]]


async def attempt(strategy: Strategy[T]) -> Result[T]:
    try:
        return Ok(await strategy.run(), strategy.name)
    except EXPECTED_ERRORS as exc:
        return Err(exc, strategy.name)


async def first_success(strategies: Sequence[Strategy[T]]) -> Result[T]:
    failures: list[tuple[str, BaseException]] = []
    for strategy in strategies:
        result = await attempt(strategy)
        if isinstance(result, Ok):
            return result
        logger.warning(f"Strategy {result.strategy} failed: {result.error}")
        failures.append((result.strategy, result.error))
    return Err(AllSourcesExhausted(failures), "all")
