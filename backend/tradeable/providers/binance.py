from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from tradeable.config.settings import MarketSettings, ProviderSettings
from tradeable.errors import FetchError
from tradeable.http.fetch import ResilientFetcher
from tradeable.providers.base import fallback, live, status_for_error
from tradeable.schemas.market import Candle, CoinStat, MarketStats
from tradeable.schemas.provider import SourceResult

logger = logging.getLogger(__name__)

PROVIDER = "binance"

_TICKER_PATH = "/api/v3/ticker/24hr"
_KLINES_PATH = "/api/v3/klines"
_QUOTE_ASSET = "USDT"

_SYMBOL_NAMES = {
    "BTC": "Bitcoin",
    "ETH": "Ethereum",
    "BNB": "BNB",
    "XRP": "XRP",
    "SOL": "Solana",
    "ADA": "Cardano",
    "DOGE": "Dogecoin",
    "AVAX": "Avalanche",
    "DOT": "Polkadot",
    "MATIC": "Polygon",
}

FALLBACK_COINS: tuple[CoinStat, ...] = (
    CoinStat(
        symbol="BTC",
        name="Bitcoin",
        price=43247.82,
        price_change_24h=1018.45,
        price_change_percent_24h=2.4,
        volume_24h=28_400_000_000,
        market_cap=847_600_000_000,
    ),
    CoinStat(
        symbol="ETH",
        name="Ethereum",
        price=2643.91,
        price_change_24h=79.32,
        price_change_percent_24h=3.1,
        volume_24h=12_800_000_000,
        market_cap=317_800_000_000,
    ),
    CoinStat(
        symbol="SOL",
        name="Solana",
        price=98.43,
        price_change_24h=-1.19,
        price_change_percent_24h=-1.2,
        volume_24h=1_200_000_000,
        market_cap=44_200_000_000,
    ),
    CoinStat(
        symbol="ADA",
        name="Cardano",
        price=0.4821,
        price_change_24h=0.026,
        price_change_percent_24h=5.7,
        volume_24h=890_000_000,
        market_cap=16_900_000_000,
    ),
)

FALLBACK_STATS = MarketStats(
    total_market_cap=1_226_500_000_000,
    total_volume_24h=43_290_000_000,
    btc_dominance=69.1,
    fear_greed_index=64,
)


def symbol_name(symbol: str) -> str:
    return _SYMBOL_NAMES.get(symbol.upper(), symbol)


def _usdt_tickers(payload: Any) -> list[dict]:
    if not isinstance(payload, list):
        raise ValueError("ticker payload is not a list")
    return [
        row
        for row in payload
        if isinstance(row, dict) and str(row.get("symbol", "")).endswith(_QUOTE_ASSET)
    ]


def parse_top_coins(payload: Any, limit: int) -> list[CoinStat]:
    tickers = [row for row in _usdt_tickers(payload) if float(row["volume"]) > 0]
    tickers.sort(key=lambda row: float(row["volume"]), reverse=True)
    coins: list[CoinStat] = []
    for row in tickers[:limit]:
        symbol = row["symbol"][: -len(_QUOTE_ASSET)]
        price = float(row["lastPrice"])
        volume = float(row["volume"])
        coins.append(
            CoinStat(
                symbol=symbol,
                name=symbol_name(symbol),
                price=price,
                price_change_24h=float(row["priceChange"]),
                price_change_percent_24h=float(row["priceChangePercent"]),
                volume_24h=volume,
                high_24h=float(row["highPrice"]) if row.get("highPrice") is not None else None,
                low_24h=float(row["lowPrice"]) if row.get("lowPrice") is not None else None,
                market_cap=price * volume,
            )
        )
    return coins


def parse_market_stats(
    payload: Any,
    market: MarketSettings,
    fear_greed_index: int,
) -> MarketStats:
    tickers = _usdt_tickers(payload)
    total_volume = sum(
        float(row.get("volume") or 0) * float(row.get("lastPrice") or 0) for row in tickers
    )
    btc = next((row for row in tickers if row["symbol"] == f"BTC{_QUOTE_ASSET}"), None)
    if btc is None:
        raise ValueError("BTC ticker missing from payload")
    estimated_market_cap = total_volume * market.market_cap_multiplier
    btc_market_cap = float(btc["lastPrice"]) * market.btc_circulating_supply
    dominance = (btc_market_cap / estimated_market_cap * 100) if estimated_market_cap else 0.0
    return MarketStats(
        total_market_cap=estimated_market_cap,
        total_volume_24h=total_volume,
        btc_dominance=round(dominance, 1),
        fear_greed_index=fear_greed_index,
    )


def parse_candles(payload: Any) -> list[Candle]:
    if not isinstance(payload, list):
        raise ValueError("klines payload is not a list")
    return [
        Candle(
            time=int(row[0]),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=float(row[5]),
        )
        for row in payload
    ]


def parse_fear_greed(payload: Any) -> int:
    return int(payload["data"][0]["value"])


class BinanceAdapter:
    """Market data from Binance public endpoints plus the alternative.me index."""

    def __init__(
        self,
        fetcher: ResilientFetcher,
        providers: ProviderSettings,
        market: MarketSettings,
    ) -> None:
        self._fetcher = fetcher
        self._providers = providers
        self._market = market

    def _url(self, path: str) -> str:
        return f"{self._providers.binance_base_url.rstrip('/')}{path}"

    def _headers(self) -> Optional[dict[str, str]]:
        if self._providers.binance_api_key:
            return {"X-MBX-APIKEY": self._providers.binance_api_key}
        return None

    async def _fetch_tickers(self) -> list[dict] | FetchError:
        try:
            return await self._fetcher.fetch(
                self._url(_TICKER_PATH), headers=self._headers(), parse=_usdt_tickers
            )
        except FetchError as exc:
            return exc

    async def _fear_greed_index(self) -> int:
        try:
            return await self._fetcher.fetch(
                self._providers.fear_greed_url, parse=parse_fear_greed, retries=1
            )
        except FetchError:
            logger.warning("Fear & Greed index unavailable, using default")
            return self._market.default_fear_greed_index

    def _coins_from(self, tickers: list[dict] | FetchError, limit: int) -> SourceResult[list[CoinStat]]:
        if isinstance(tickers, FetchError):
            return fallback(PROVIDER, list(FALLBACK_COINS), status_for_error(tickers))
        try:
            coins = parse_top_coins(tickers, limit)
        except (ValueError, TypeError, KeyError) as exc:
            logger.warning(f"Unusable ticker payload for top coins: {exc}")
            return fallback(PROVIDER, list(FALLBACK_COINS), "malformed")
        if not coins:
            return fallback(PROVIDER, list(FALLBACK_COINS), "empty")
        logger.info(f"Fetched {len(coins)} coins from Binance")
        return live(PROVIDER, coins)

    def _stats_from(self, tickers: list[dict] | FetchError, fear_greed_index: int) -> SourceResult[MarketStats]:
        if isinstance(tickers, FetchError):
            return fallback(PROVIDER, FALLBACK_STATS, status_for_error(tickers))
        try:
            stats = parse_market_stats(tickers, self._market, fear_greed_index)
        except (ValueError, TypeError, KeyError) as exc:
            logger.warning(f"Unusable ticker payload for market stats: {exc}")
            return fallback(PROVIDER, FALLBACK_STATS, "malformed")
        return live(PROVIDER, stats)

    async def get_top_coins(self, limit: Optional[int] = None) -> SourceResult[list[CoinStat]]:
        return self._coins_from(await self._fetch_tickers(), limit or self._market.top_n)

    async def get_market_stats(self) -> SourceResult[MarketStats]:
        tickers, fear_greed_index = await asyncio.gather(
            self._fetch_tickers(),
            self._fear_greed_index(),
        )
        return self._stats_from(tickers, fear_greed_index)

    async def get_market(
        self, limit: Optional[int] = None
    ) -> tuple[SourceResult[list[CoinStat]], SourceResult[MarketStats]]:
        """Top coins and aggregate stats derived from a single 24h ticker download."""
        tickers, fear_greed_index = await asyncio.gather(
            self._fetch_tickers(),
            self._fear_greed_index(),
        )
        return (
            self._coins_from(tickers, limit or self._market.top_n),
            self._stats_from(tickers, fear_greed_index),
        )

    async def get_candles(
        self,
        symbol: str,
        interval: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> SourceResult[list[Candle]]:
        params = {
            "symbol": f"{symbol.upper()}{_QUOTE_ASSET}",
            "interval": interval or self._market.candle_interval,
            "limit": limit or self._market.candle_limit,
        }
        try:
            candles = await self._fetcher.fetch(
                self._url(_KLINES_PATH),
                params=params,
                headers=self._headers(),
                parse=parse_candles,
            )
        except FetchError as exc:
            return fallback(PROVIDER, [], status_for_error(exc))
        return live(PROVIDER, candles)
