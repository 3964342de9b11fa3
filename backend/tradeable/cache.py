from __future__ import annotations

import json
import logging
from typing import Optional, TypeVar

from pydantic import BaseModel, ValidationError
from redis.asyncio import Redis

from tradeable.config.settings import settings
from tradeable.schemas.market import MarketSnapshot
from tradeable.schemas.news import NewsDigest

logger = logging.getLogger(__name__)

MARKET_SNAPSHOT_KEY = "tradeable:market:snapshot"
NEWS_DIGEST_KEY = "tradeable:news:digest"

M = TypeVar("M", bound=BaseModel)


def _get_client() -> Redis:
    return Redis.from_url(
        settings.redis_url,
        socket_connect_timeout=settings.redis_socket_timeout_seconds,
        socket_timeout=settings.redis_socket_timeout_seconds,
    )


async def _load(cache_key: str, model: type[M]) -> Optional[M]:
    try:
        async with _get_client() as client:
            raw = await client.get(cache_key)
    except Exception as exc:
        logger.warning(f"Cache read for {cache_key} failed: {exc}")
        return None

    if not raw:
        return None

    try:
        payload = json.loads(raw)
        return model.model_validate(payload)
    except (json.JSONDecodeError, TypeError, ValueError, ValidationError):
        return None


async def _store(cache_key: str, value: BaseModel, ttl_seconds: int) -> None:
    try:
        async with _get_client() as client:
            await client.setex(cache_key, ttl_seconds, value.model_dump_json())
    except Exception as exc:
        logger.warning(f"Cache write for {cache_key} failed: {exc}")


async def get_market_snapshot() -> Optional[MarketSnapshot]:
    return await _load(MARKET_SNAPSHOT_KEY, MarketSnapshot)


async def set_market_snapshot(snapshot: MarketSnapshot, ttl_seconds: Optional[int] = None) -> None:
    await _store(MARKET_SNAPSHOT_KEY, snapshot, ttl_seconds or settings.market.snapshot_ttl_seconds)


async def get_news_digest() -> Optional[NewsDigest]:
    return await _load(NEWS_DIGEST_KEY, NewsDigest)


async def set_news_digest(digest: NewsDigest, ttl_seconds: Optional[int] = None) -> None:
    await _store(NEWS_DIGEST_KEY, digest, ttl_seconds or settings.news_digest_ttl_seconds)
