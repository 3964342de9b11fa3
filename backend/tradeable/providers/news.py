from __future__ import annotations

import datetime
import logging
from typing import Any, Optional

from tradeable.config.settings import ProviderSettings
from tradeable.errors import FetchError
from tradeable.http.fetch import ResilientFetcher
from tradeable.providers.base import fallback, live, status_for_error
from tradeable.schemas.news import Article
from tradeable.schemas.provider import SourceResult

logger = logging.getLogger(__name__)

PROVIDER = "newsapi"

_EVERYTHING_PATH = "/v2/everything"

FALLBACK_ARTICLES: tuple[Article, ...] = (
    Article(
        title="Bitcoin Reaches New Monthly High Amid Institutional Adoption",
        content=(
            "Major financial institutions continue to show increased interest in Bitcoin, "
            "driving price momentum and market confidence to new levels this month."
        ),
        source="CoinDesk",
        published_at=datetime.datetime(2024, 1, 15, 10, 0, tzinfo=datetime.timezone.utc),
    ),
    Article(
        title="Ethereum Network Sees Record Transaction Volume",
        content=(
            "The Ethereum blockchain processed a record number of transactions this week, "
            "highlighting growing adoption of decentralized applications and smart contracts."
        ),
        source="The Block",
        published_at=datetime.datetime(2024, 1, 15, 8, 0, tzinfo=datetime.timezone.utc),
    ),
    Article(
        title="New Crypto Regulations Proposed for Enhanced Consumer Protection",
        content=(
            "Government officials announce new framework aimed at protecting retail investors "
            "while maintaining innovation in the cryptocurrency space."
        ),
        source="Reuters",
        published_at=datetime.datetime(2024, 1, 15, 6, 0, tzinfo=datetime.timezone.utc),
    ),
    Article(
        title="DeFi Protocol Launches Revolutionary Yield Farming Strategy",
        content=(
            "A new decentralized finance protocol introduces innovative yield farming mechanisms "
            "that could reshape how users earn passive income in crypto."
        ),
        source="DeFi Pulse",
        published_at=datetime.datetime(2024, 1, 15, 4, 0, tzinfo=datetime.timezone.utc),
    ),
)


def parse_articles(payload: Any) -> list[Article]:
    if payload.get("status") not in (None, "ok"):
        raise ValueError(f"NewsAPI status {payload.get('status')}")
    articles: list[Article] = []
    for row in payload["articles"]:
        if not row.get("title"):
            continue
        articles.append(
            Article(
                title=row["title"],
                content=row.get("description") or row.get("content") or "",
                source=(row.get("source") or {}).get("name") or "Unknown",
                image_url=row.get("urlToImage"),
                published_at=row["publishedAt"],
                url=row.get("url"),
            )
        )
    return articles


class NewsAdapter:
    def __init__(self, fetcher: ResilientFetcher, providers: ProviderSettings) -> None:
        self._fetcher = fetcher
        self._providers = providers

    async def get_news(self, query: Optional[str] = None) -> SourceResult[list[Article]]:
        api_key = self._providers.news_api_key
        if not api_key:
            return fallback(PROVIDER, list(FALLBACK_ARTICLES), "missing_key")

        params = {
            "q": query or self._providers.news_query,
            "language": "en",
            "sortBy": "publishedAt",
            "pageSize": self._providers.news_page_size,
        }
        try:
            articles = await self._fetcher.fetch(
                f"{self._providers.news_base_url.rstrip('/')}{_EVERYTHING_PATH}",
                params=params,
                headers={"X-Api-Key": api_key},
                parse=parse_articles,
            )
        except FetchError as exc:
            return fallback(PROVIDER, list(FALLBACK_ARTICLES), status_for_error(exc))
        if not articles:
            return fallback(PROVIDER, list(FALLBACK_ARTICLES), "empty")
        return live(PROVIDER, articles)
