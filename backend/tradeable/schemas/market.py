from __future__ import annotations

import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from tradeable.schemas.provider import Origin, utcnow

MarketMood = Literal["bullish", "bearish", "neutral"]


class CoinStat(BaseModel):
    symbol: str
    name: str
    price: float
    price_change_24h: float
    price_change_percent_24h: float
    volume_24h: float
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    market_cap: Optional[float] = None


class Candle(BaseModel):
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float


class MacdValue(BaseModel):
    value: float = 0.0
    signal: float = 0.0
    histogram: float = 0.0


class TechnicalIndicators(BaseModel):
    rsi: float = 50.0
    sma20: float = 0.0
    sma50: float = 0.0
    macd: MacdValue = Field(default_factory=MacdValue)


class CoinSnapshot(CoinStat):
    candles: list[Candle] = Field(default_factory=list)
    candles_origin: Origin = "live"
    sentiment: MarketMood = "neutral"
    technical_indicators: TechnicalIndicators = Field(default_factory=TechnicalIndicators)


class MarketStats(BaseModel):
    total_market_cap: float
    total_volume_24h: float
    btc_dominance: float
    fear_greed_index: int


class AggregateStats(MarketStats):
    global_sentiment: MarketMood = "neutral"
    trending: list[str] = Field(default_factory=list)
    origin: Origin = "live"


class MarketSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    coins: tuple[CoinSnapshot, ...] = ()
    stats: AggregateStats
    origin: Origin = "live"
    built_at: datetime.datetime = Field(default_factory=utcnow)
