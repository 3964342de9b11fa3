from __future__ import annotations

import asyncio
import logging

from tradeable.cache import set_news_digest
from tradeable.config.settings import settings
from tradeable.providers.news import NewsAdapter
from tradeable.schemas.news import NewsDigest, ScoredArticle
from tradeable.sentiment.aggregate import calculate_overall_sentiment
from tradeable.sentiment.analyzer import SentimentAnalyzer
from tradeable.services import build_services

logger = logging.getLogger(__name__)


async def build_news_digest(news: NewsAdapter, analyzer: SentimentAnalyzer) -> NewsDigest:
    result = await news.get_news()
    articles = result.value
    verdicts = await analyzer.analyze_many(
        [f"{article.title} {article.content}".strip() for article in articles]
    )
    scored = [
        ScoredArticle(**article.model_dump(), sentiment=verdict)
        for article, verdict in zip(articles, verdicts)
    ]
    return NewsDigest(
        articles=scored,
        sentiment=calculate_overall_sentiment(verdicts, analyzer.settings),
        origin=result.origin,
    )


async def _refresh_and_store() -> int:
    services = build_services(settings, persist_snapshots=False)
    try:
        digest = await build_news_digest(services.news, services.analyzer)
    finally:
        await services.aclose()
    await set_news_digest(digest)
    logger.info(
        f"Stored news digest with {len(digest.articles)} articles "
        f"(mood={digest.sentiment.mood}, origin={digest.origin})"
    )
    return len(digest.articles)


def run_news_refresh() -> int:
    return asyncio.run(_refresh_and_store())
