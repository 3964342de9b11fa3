from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from tradeable import cache
from tradeable.config.settings import Settings
from tradeable.ensemble.ensembler import Ensembler
from tradeable.ensemble.sources import build_sources
from tradeable.http.fetch import ResilientFetcher, RetryPolicy
from tradeable.market.aggregator import MarketAggregator
from tradeable.providers.binance import BinanceAdapter
from tradeable.providers.gemini import GeminiClient
from tradeable.providers.huggingface import HuggingFaceClassifier, HuggingFaceTextClient
from tradeable.providers.news import NewsAdapter
from tradeable.providers.twitter import SocialTrendsAdapter
from tradeable.sentiment.analyzer import SentimentAnalyzer

USER_AGENT = "TradeableAssistant/1.0"


@dataclass
class Services:
    settings: Settings
    client: httpx.AsyncClient
    fetcher: ResilientFetcher
    binance: BinanceAdapter
    news: NewsAdapter
    social: SocialTrendsAdapter
    classifier: HuggingFaceClassifier
    analyzer: SentimentAnalyzer
    ensembler: Ensembler
    aggregator: MarketAggregator

    async def aclose(self) -> None:
        await self.aggregator.stop()
        await self.client.aclose()


def build_services(
    settings: Settings,
    client: Optional[httpx.AsyncClient] = None,
    *,
    persist_snapshots: bool = True,
) -> Services:
    client = client or httpx.AsyncClient(headers={"User-Agent": USER_AGENT})
    fetcher = ResilientFetcher(
        client,
        RetryPolicy.from_settings(settings.fetch),
        alternate_hosts=settings.fetch.alternate_hosts,
    )
    providers = settings.providers

    binance = BinanceAdapter(fetcher, providers, settings.market)
    classifier = HuggingFaceClassifier(fetcher, providers, settings.sentiment.max_text_length)
    analyzer = SentimentAnalyzer(settings.sentiment, classifier)
    sources = build_sources(
        providers,
        GeminiClient(fetcher, providers),
        classifier,
        HuggingFaceTextClient(fetcher, providers),
        analyzer,
    )
    store = cache.set_market_snapshot if persist_snapshots else None
    loader = cache.get_market_snapshot if persist_snapshots else None

    return Services(
        settings=settings,
        client=client,
        fetcher=fetcher,
        binance=binance,
        news=NewsAdapter(fetcher, providers),
        social=SocialTrendsAdapter(fetcher, providers),
        classifier=classifier,
        analyzer=analyzer,
        ensembler=Ensembler(sources, settings.ensemble),
        aggregator=MarketAggregator(binance, settings.market, store=store, loader=loader),
    )
