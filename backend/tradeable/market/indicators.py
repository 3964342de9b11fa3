from __future__ import annotations

from typing import Sequence

from tradeable.config.settings import MarketSettings
from tradeable.schemas.market import Candle, CoinStat, MacdValue, MarketMood, TechnicalIndicators


def sma(values: Sequence[float], window: int) -> float:
    tail = list(values[-window:])
    if not tail:
        return 0.0
    return sum(tail) / len(tail)


def rsi(closes: Sequence[float]) -> float:
    """Naive RSI over the whole window with simple averages."""
    if len(closes) < 2:
        return 50.0
    changes = [current - previous for previous, current in zip(closes, closes[1:])]
    average_gain = sum(max(change, 0.0) for change in changes) / len(changes)
    average_loss = sum(max(-change, 0.0) for change in changes) / len(changes)
    if average_loss == 0:
        return 100.0 if average_gain > 0 else 50.0
    return 100 - 100 / (1 + average_gain / average_loss)


def compute_indicators(candles: Sequence[Candle]) -> TechnicalIndicators:
    if not candles:
        return TechnicalIndicators()
    closes = [candle.close for candle in candles]
    sma20 = sma(closes, 20)
    sma50 = sma(closes, 50)
    spread = sma20 - sma50
    return TechnicalIndicators(
        rsi=round(rsi(closes), 2),
        sma20=sma20,
        sma50=sma50,
        macd=MacdValue(value=spread, signal=spread * 0.9, histogram=spread * 0.1),
    )


def mood_for_change(percent_change: float, market: MarketSettings) -> MarketMood:
    if percent_change >= market.bullish_percent:
        return "bullish"
    if percent_change <= market.bearish_percent:
        return "bearish"
    return "neutral"


def global_sentiment(coins: Sequence[CoinStat], market: MarketSettings) -> MarketMood:
    if not coins:
        return "neutral"
    average = sum(coin.price_change_percent_24h for coin in coins) / len(coins)
    return mood_for_change(average, market)


def trending_symbols(coins: Sequence[CoinStat], count: int) -> list[str]:
    ranked = sorted(coins, key=lambda coin: abs(coin.price_change_percent_24h), reverse=True)
    return [coin.symbol for coin in ranked[:count]]
