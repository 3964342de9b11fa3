from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from tradeable.config.settings import MarketSettings
from tradeable.market.indicators import (
    compute_indicators,
    global_sentiment,
    mood_for_change,
    trending_symbols,
)
from tradeable.providers.binance import BinanceAdapter
from tradeable.schemas.market import (
    AggregateStats,
    Candle,
    CoinSnapshot,
    CoinStat,
    MarketSnapshot,
    TechnicalIndicators,
)
from tradeable.schemas.provider import SourceResult

logger = logging.getLogger(__name__)

SnapshotStore = Callable[[MarketSnapshot], Awaitable[None]]
SnapshotLoader = Callable[[], Awaitable[Optional[MarketSnapshot]]]


class MarketAggregator:
    """Builds market snapshots and publishes each one as a single unit.

    Readers only ever see a fully built snapshot. Concurrent refresh requests
    share one in-flight build.
    """

    def __init__(
        self,
        binance: BinanceAdapter,
        settings: MarketSettings,
        *,
        store: Optional[SnapshotStore] = None,
        loader: Optional[SnapshotLoader] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._binance = binance
        self.settings = settings
        self._store = store
        self._loader = loader
        self._clock = clock
        self._snapshot: Optional[MarketSnapshot] = None
        self._published_at: Optional[float] = None
        self._generation = 0
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    @property
    def snapshot(self) -> Optional[MarketSnapshot]:
        return self._snapshot

    def is_fresh(self) -> bool:
        if self._snapshot is None or self._published_at is None:
            return False
        return self._clock() - self._published_at < self.settings.freshness_window_seconds

    async def get_snapshot(self) -> MarketSnapshot:
        snapshot = self._snapshot
        if snapshot is not None and self.is_fresh():
            return snapshot
        return await self.refresh()

    async def warm(self) -> Optional[MarketSnapshot]:
        """Seed the reader-visible snapshot from the store before the first build.

        A restored snapshot is tagged as fallback and never counts as fresh, so
        the next get_snapshot still rebuilds it.
        """
        if self._snapshot is not None or self._loader is None:
            return self._snapshot
        stored = await self._loader()
        if stored is not None and self._snapshot is None:
            self._snapshot = stored.model_copy(update={"origin": "fallback"})
            logger.info(f"Restored stored market snapshot built at {stored.built_at.isoformat()}")
        return self._snapshot

    async def refresh(self) -> MarketSnapshot:
        generation = self._generation
        async with self._lock:
            if self._generation != generation and self._snapshot is not None:
                return self._snapshot
            snapshot = await self.build_snapshot()
            self._publish(snapshot)
        if self._store is not None:
            await self._store(snapshot)
        return snapshot

    def _publish(self, snapshot: MarketSnapshot) -> None:
        self._snapshot = snapshot
        self._published_at = self._clock()
        self._generation += 1
        logger.info(
            f"Published market snapshot with {len(snapshot.coins)} coins (origin={snapshot.origin})"
        )

    async def _coin_snapshot(self, coin: CoinStat) -> CoinSnapshot:
        candles: SourceResult[list[Candle]] = await self._binance.get_candles(coin.symbol)
        indicators = (
            compute_indicators(candles.value) if candles.is_live else TechnicalIndicators()
        )
        return CoinSnapshot(
            **coin.model_dump(),
            candles=candles.value,
            candles_origin=candles.origin,
            sentiment=mood_for_change(coin.price_change_percent_24h, self.settings),
            technical_indicators=indicators,
        )

    async def build_snapshot(self) -> MarketSnapshot:
        coins_result, stats_result = await self._binance.get_market(self.settings.top_n)
        coins = tuple(
            await asyncio.gather(*(self._coin_snapshot(coin) for coin in coins_result.value))
        )
        stats = AggregateStats(
            **stats_result.value.model_dump(),
            global_sentiment=global_sentiment(coins, self.settings),
            trending=trending_symbols(coins, self.settings.trending_count),
            origin=stats_result.origin,
        )
        origin = "live" if coins_result.is_live and stats_result.is_live else "fallback"
        return MarketSnapshot(coins=coins, stats=stats, origin=origin)

    async def _run(self) -> None:
        while True:
            try:
                await self.refresh()
            except Exception:
                logger.exception("Periodic market refresh failed")
            await asyncio.sleep(self.settings.refresh_interval_seconds)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
