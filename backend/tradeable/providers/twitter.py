from __future__ import annotations

import asyncio
import datetime
import logging
from typing import Any, Optional, Sequence

from tradeable.config.settings import ProviderSettings
from tradeable.errors import FetchError
from tradeable.http.fetch import ResilientFetcher
from tradeable.providers.base import fallback, live, status_for_error
from tradeable.schemas.news import TrendingTopic
from tradeable.schemas.provider import SourceResult

logger = logging.getLogger(__name__)

PROVIDER = "twitter"

_COUNTS_PATH = "/2/tweets/counts/recent"
# recent search only covers the last seven days
_MAX_WINDOW_HOURS = 7 * 24

DEFAULT_KEYWORDS = ("Bitcoin", "Ethereum", "DeFi")

FALLBACK_TOPICS: tuple[TrendingTopic, ...] = (
    TrendingTopic(topic="Bitcoin", mentions=34200, sentiment="positive"),
    TrendingTopic(topic="Ethereum", mentions=18700, sentiment="positive"),
    TrendingTopic(topic="DeFi", mentions=9300, sentiment="neutral"),
)


def parse_tweet_count(payload: Any) -> int:
    meta = payload.get("meta") or {}
    if "total_tweet_count" in meta:
        return int(meta["total_tweet_count"])
    return sum(int(bucket["tweet_count"]) for bucket in payload["data"])


class SocialTrendsAdapter:
    def __init__(self, fetcher: ResilientFetcher, providers: ProviderSettings) -> None:
        self._fetcher = fetcher
        self._providers = providers

    async def _count(self, keyword: str, start_time: datetime.datetime, token: str) -> int:
        return await self._fetcher.fetch(
            f"{self._providers.twitter_base_url.rstrip('/')}{_COUNTS_PATH}",
            params={
                "query": f"{keyword} -is:retweet",
                "granularity": "day",
                "start_time": start_time.strftime("%Y-%m-%dT%H:%M:%SZ"),
            },
            headers={"Authorization": f"Bearer {token}"},
            parse=parse_tweet_count,
        )

    async def get_trending_topics(
        self,
        window_hours: int = 24,
        keywords: Optional[Sequence[str]] = None,
    ) -> SourceResult[list[TrendingTopic]]:
        token = self._providers.twitter_bearer_token
        if not token:
            return fallback(PROVIDER, list(FALLBACK_TOPICS), "missing_key")

        keywords = list(keywords or DEFAULT_KEYWORDS)
        window_hours = max(1, min(window_hours, _MAX_WINDOW_HOURS))
        # start_time must fall strictly inside the seven-day window
        now = datetime.datetime.now(datetime.timezone.utc)
        start_time = now - datetime.timedelta(hours=window_hours) + datetime.timedelta(minutes=1)
        counts = await asyncio.gather(
            *(self._count(keyword, start_time, token) for keyword in keywords),
            return_exceptions=True,
        )

        topics: list[TrendingTopic] = []
        last_error: Optional[FetchError] = None
        for keyword, count in zip(keywords, counts):
            if isinstance(count, FetchError):
                last_error = count
                continue
            if isinstance(count, BaseException):
                raise count
            topics.append(TrendingTopic(topic=keyword, mentions=count))

        if not topics:
            status = status_for_error(last_error) if last_error else "empty"
            return fallback(PROVIDER, list(FALLBACK_TOPICS), status)
        topics.sort(key=lambda topic: topic.mentions, reverse=True)
        return live(PROVIDER, topics)
