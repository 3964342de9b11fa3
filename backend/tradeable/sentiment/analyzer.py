from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Sequence

from tradeable.config.settings import SentimentSettings
from tradeable.fallback import Ok, Strategy, first_success
from tradeable.providers.huggingface import HuggingFaceClassifier
from tradeable.schemas.sentiment import SentimentVerdict
from tradeable.sentiment.keywords import analyze_keywords, neutral_verdict

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class SentimentAnalyzer:
    """Remote classifier first, keyword heuristic second. Never fails."""

    def __init__(
        self,
        settings: SentimentSettings,
        classifier: Optional[HuggingFaceClassifier] = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self._classifier = classifier
        self._sleep = sleep

    def _strategies(self, text: str, model: Optional[str]) -> list[Strategy[SentimentVerdict]]:
        strategies: list[Strategy[SentimentVerdict]] = []
        if self._classifier is not None and self._classifier.available:
            classifier = self._classifier
            strategies.append(Strategy("model", lambda: classifier.classify(text, model)))

        async def keywords() -> SentimentVerdict:
            return analyze_keywords(text, self.settings)

        strategies.append(Strategy("keyword", keywords))
        return strategies

    async def analyze(self, text: str, model: Optional[str] = None) -> SentimentVerdict:
        if not text or not text.strip():
            return neutral_verdict()
        text = text.strip()[: self.settings.max_text_length]
        result = await first_success(self._strategies(text, model))
        if isinstance(result, Ok):
            return result.value
        # the keyword strategy only fails on a programming error
        raise result.error

    async def analyze_many(self, texts: Sequence[str]) -> list[SentimentVerdict]:
        if not texts:
            return []

        started = time.perf_counter()
        group_size = max(1, self.settings.batch_concurrency)
        groups = (len(texts) + group_size - 1) // group_size
        verdicts: list[SentimentVerdict] = []

        for start in range(0, len(texts), group_size):
            group = texts[start : start + group_size]
            logger.debug(f"Sentiment batch {start // group_size + 1}/{groups}")
            results = await asyncio.gather(
                *(self.analyze(text) for text in group), return_exceptions=True
            )
            for offset, result in enumerate(results):
                if isinstance(result, Exception):
                    logger.error(f"Sentiment analysis of text {start + offset} failed: {result}")
                    result = analyze_keywords(group[offset], self.settings)
                elif isinstance(result, BaseException):
                    raise result
                verdicts.append(result)
            if start + group_size < len(texts):
                await self._sleep(self.settings.batch_delay_seconds)

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        model_count = sum(1 for verdict in verdicts if verdict.method == "model")
        logger.info(
            f"Analyzed {len(verdicts)} texts in {elapsed_ms}ms: "
            f"{model_count} by model, {len(verdicts) - model_count} by keywords"
        )
        return verdicts
