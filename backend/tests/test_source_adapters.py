import asyncio

import httpx
import pytest

from tradeable.config.settings import MarketSettings, ProviderSettings
from tradeable.errors import MalformedResponse, SourceUnavailable
from tradeable.http.fetch import ResilientFetcher, RetryPolicy
from tradeable.providers.binance import (
    FALLBACK_COINS,
    FALLBACK_STATS,
    BinanceAdapter,
    symbol_name,
)
from tradeable.providers.huggingface import HuggingFaceClassifier, normalize_label, parse_classification
from tradeable.providers.news import FALLBACK_ARTICLES, NewsAdapter
from tradeable.providers.twitter import FALLBACK_TOPICS, SocialTrendsAdapter

TICKERS = [
    {
        "symbol": "BTCUSDT",
        "lastPrice": "60000.00",
        "priceChange": "1200.00",
        "priceChangePercent": "2.04",
        "volume": "1000",
        "highPrice": "61000.00",
        "lowPrice": "58000.00",
    },
    {
        "symbol": "ETHUSDT",
        "lastPrice": "3000.00",
        "priceChange": "-60.00",
        "priceChangePercent": "-1.96",
        "volume": "5000",
        "highPrice": "3100.00",
        "lowPrice": "2950.00",
    },
    {
        "symbol": "PEPEUSDT",
        "lastPrice": "0.00001",
        "priceChange": "0",
        "priceChangePercent": "0",
        "volume": "0",
    },
    {
        "symbol": "ETHBTC",
        "lastPrice": "0.05",
        "priceChange": "0",
        "priceChangePercent": "0",
        "volume": "99999",
    },
]


async def no_sleep(delay: float) -> None:
    return None


def providers(**overrides) -> ProviderSettings:
    values = {
        "binance_api_key": None,
        "news_api_key": None,
        "huggingface_api_key": None,
        "gemini_api_key": None,
        "twitter_bearer_token": None,
    }
    values.update(overrides)
    return ProviderSettings(**values)


def run_with(handler, build, call):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = ResilientFetcher(
                client, RetryPolicy(retries=2), sleep=no_sleep, jitter=lambda: 0.0
            )
            return await call(build(fetcher))

    return asyncio.run(scenario())


def binance_handler(request: httpx.Request) -> httpx.Response:
    if request.url.host == "api.alternative.me":
        return httpx.Response(200, json={"data": [{"value": "72"}]})
    if request.url.path == "/api/v3/ticker/24hr":
        return httpx.Response(200, json=TICKERS)
    if request.url.path == "/api/v3/klines":
        return httpx.Response(200, json=[[1700000000000, "1", "2", "0.5", "1.5", "100"]])
    return httpx.Response(404)


def test_symbol_name_passes_unknown_symbols_through() -> None:
    assert symbol_name("BTC") == "Bitcoin"
    assert symbol_name("matic") == "Polygon"
    assert symbol_name("WIF") == "WIF"


def test_top_coins_filters_usdt_pairs_by_volume() -> None:
    result = run_with(
        binance_handler,
        lambda fetcher: BinanceAdapter(fetcher, providers(), MarketSettings()),
        lambda adapter: adapter.get_top_coins(),
    )

    assert result.origin == "live"
    assert result.status == "ok"
    assert [coin.symbol for coin in result.value] == ["ETH", "BTC"]
    assert result.value[1].name == "Bitcoin"
    assert result.value[1].market_cap == pytest.approx(60_000_000)


def test_market_stats_use_configurable_multiplier() -> None:
    market = MarketSettings(market_cap_multiplier=10)
    result = run_with(
        binance_handler,
        lambda fetcher: BinanceAdapter(fetcher, providers(), market),
        lambda adapter: adapter.get_market_stats(),
    )

    total_volume = 60000.0 * 1000 + 3000.0 * 5000
    assert result.origin == "live"
    assert result.value.total_volume_24h == pytest.approx(total_volume)
    assert result.value.total_market_cap == pytest.approx(total_volume * 10)
    assert result.value.fear_greed_index == 72


def test_fear_greed_outage_uses_default_index() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.alternative.me":
            return httpx.Response(500)
        return binance_handler(request)

    result = run_with(
        handler,
        lambda fetcher: BinanceAdapter(fetcher, providers(), MarketSettings()),
        lambda adapter: adapter.get_market_stats(),
    )
    assert result.origin == "live"
    assert result.value.fear_greed_index == MarketSettings().default_fear_greed_index


def test_binance_outage_returns_tagged_static_fallback() -> None:
    result = run_with(
        lambda request: httpx.Response(503),
        lambda fetcher: BinanceAdapter(fetcher, providers(), MarketSettings()),
        lambda adapter: adapter.get_top_coins(),
    )

    assert result.origin == "fallback"
    assert result.status == "rate_limited"
    assert result.value == list(FALLBACK_COINS)


def test_market_stats_outage_returns_static_stats() -> None:
    result = run_with(
        lambda request: httpx.Response(500),
        lambda fetcher: BinanceAdapter(fetcher, providers(), MarketSettings()),
        lambda adapter: adapter.get_market_stats(),
    )
    assert result.origin == "fallback"
    assert result.value == FALLBACK_STATS


def test_corrupt_body_falls_back_instead_of_raising() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not-gzip-at-all")

    result = run_with(
        handler,
        lambda fetcher: BinanceAdapter(fetcher, providers(), MarketSettings()),
        lambda adapter: adapter.get_top_coins(),
    )

    assert result.origin == "fallback"
    assert result.status == "malformed"
    assert result.value == list(FALLBACK_COINS)


def test_market_overview_downloads_tickers_once() -> None:
    ticker_requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/v3/ticker/24hr":
            ticker_requests.append(request)
        return binance_handler(request)

    coins, stats = run_with(
        handler,
        lambda fetcher: BinanceAdapter(fetcher, providers(), MarketSettings()),
        lambda adapter: adapter.get_market(2),
    )

    assert len(ticker_requests) == 1
    assert [coin.symbol for coin in coins.value] == ["ETH", "BTC"]
    assert stats.origin == "live"
    assert stats.value.fear_greed_index == 72


def test_market_overview_outage_falls_back_for_both() -> None:
    coins, stats = run_with(
        lambda request: httpx.Response(502),
        lambda fetcher: BinanceAdapter(fetcher, providers(), MarketSettings()),
        lambda adapter: adapter.get_market(),
    )

    assert (coins.origin, coins.status) == ("fallback", "error")
    assert stats.value == FALLBACK_STATS


def test_candles_are_parsed() -> None:
    result = run_with(
        binance_handler,
        lambda fetcher: BinanceAdapter(fetcher, providers(), MarketSettings()),
        lambda adapter: adapter.get_candles("btc"),
    )
    assert result.origin == "live"
    assert result.value[0].close == 1.5


def test_news_without_key_skips_network() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    result = run_with(
        handler,
        lambda fetcher: NewsAdapter(fetcher, providers()),
        lambda adapter: adapter.get_news(),
    )

    assert calls == []
    assert result.origin == "fallback"
    assert result.status == "missing_key"
    assert result.value == list(FALLBACK_ARTICLES)


def test_news_maps_articles_and_sends_key_in_header() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "status": "ok",
                "articles": [
                    {
                        "title": "Bitcoin climbs",
                        "description": "Bulls return",
                        "source": {"name": "Example Wire"},
                        "urlToImage": None,
                        "publishedAt": "2024-05-01T12:00:00Z",
                        "url": "https://example.com/a",
                    },
                    {"title": None, "publishedAt": "2024-05-01T12:00:00Z"},
                ],
            },
        )

    result = run_with(
        handler,
        lambda fetcher: NewsAdapter(fetcher, providers(news_api_key="news-key")),
        lambda adapter: adapter.get_news("bitcoin"),
    )

    assert result.origin == "live"
    assert len(result.value) == 1
    assert result.value[0].source == "Example Wire"
    assert seen[0].headers["X-Api-Key"] == "news-key"
    assert "apiKey" not in str(seen[0].url)
    assert seen[0].url.params["q"] == "bitcoin"


def test_trending_topics_fall_back_without_token() -> None:
    result = run_with(
        lambda request: httpx.Response(500),
        lambda fetcher: SocialTrendsAdapter(fetcher, providers()),
        lambda adapter: adapter.get_trending_topics(),
    )
    assert result.origin == "fallback"
    assert result.value == list(FALLBACK_TOPICS)


def test_trending_topics_sorted_by_mentions() -> None:
    counts = {"Bitcoin": 10, "Ethereum": 40, "DeFi": 5}

    def handler(request: httpx.Request) -> httpx.Response:
        keyword = request.url.params["query"].split(" ")[0]
        return httpx.Response(200, json={"data": [], "meta": {"total_tweet_count": counts[keyword]}})

    result = run_with(
        handler,
        lambda fetcher: SocialTrendsAdapter(fetcher, providers(twitter_bearer_token="token")),
        lambda adapter: adapter.get_trending_topics(window_hours=12),
    )
    assert result.origin == "live"
    assert [topic.topic for topic in result.value] == ["Ethereum", "Bitcoin", "DeFi"]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("POSITIVE", "positive"),
        ("negative", "negative"),
        ("LABEL_0", "negative"),
        ("LABEL_1", "neutral"),
        ("LABEL_2", "positive"),
        ("1 star", "negative"),
        ("3 stars", "neutral"),
        ("5 stars", "positive"),
        ("joy", None),
    ],
)
def test_normalize_label(raw, expected) -> None:
    assert normalize_label(raw) == expected


def test_star_ratings_are_folded_into_three_labels() -> None:
    verdict = parse_classification(
        [
            [
                {"label": "5 stars", "score": 0.4},
                {"label": "4 stars", "score": 0.3},
                {"label": "3 stars", "score": 0.2},
                {"label": "1 star", "score": 0.1},
            ]
        ]
    )
    assert verdict.label == "positive"
    assert verdict.confidence == pytest.approx(0.7)
    assert verdict.method == "model"


def test_unknown_label_schema_is_malformed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[[{"label": "joy", "score": 0.9}]])

    with pytest.raises(MalformedResponse):
        run_with(
            handler,
            lambda fetcher: HuggingFaceClassifier(fetcher, providers(huggingface_api_key="hf")),
            lambda classifier: classifier.classify("to the moon"),
        )


def test_classifier_without_key_is_unavailable() -> None:
    with pytest.raises(SourceUnavailable):
        run_with(
            lambda request: httpx.Response(200, json=[]),
            lambda fetcher: HuggingFaceClassifier(fetcher, providers()),
            lambda classifier: classifier.classify("hello"),
        )
