from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Mapping, Optional, Sequence, get_args

from tradeable.config.settings import ENSEMBLE_SOURCE_IDS, EnsembleSettings, WeightingStrategy
from tradeable.ensemble.sources import Context, EnsembleSource, to_contribution
from tradeable.errors import InvalidWeightingStrategy, UnknownSource
from tradeable.fallback import EXPECTED_ERRORS, Err, Ok, Result
from tradeable.schemas.ensemble import EnsembleResult, Methodology, ModelContribution

logger = logging.getLogger(__name__)

FALLBACK_SOURCE = "fallback"

_METHODOLOGY: dict[str, Methodology] = {
    "confidence": "confidence-weighted",
    "equal": "equal",
    "primary-with-support": "primary-with-support",
}


def _elapsed_ms(started: float, clock: Callable[[], float]) -> int:
    return max(0, int((clock() - started) * 1000))


def _mean_confidence(contributions: Sequence[ModelContribution]) -> float:
    return min(1.0, sum(c.confidence for c in contributions) / len(contributions))


def _labelled(contributions: Sequence[ModelContribution]) -> list[str]:
    return [f"{c.source}: {c.response}" for c in contributions]


def merge_contributions(
    contributions: Sequence[ModelContribution],
    strategy: WeightingStrategy,
    default_source: Optional[str] = None,
    disclaimer: str = "",
) -> tuple[str, float]:
    """Return (final_response, consensus_score) for a non-empty set of contributions.

    Ordering depends only on (confidence, source), never on arrival order.
    """
    ordered = sorted(contributions, key=lambda c: (-c.confidence, c.source))
    if len(ordered) == 1:
        return ordered[0].response, ordered[0].confidence

    consensus = _mean_confidence(ordered)
    if strategy == "confidence":
        primary, rest = ordered[0], ordered[1:]
        text = primary.response + "\n\n--- Additional Analysis ---\n" + "\n".join(_labelled(rest))
    else:
        primary = next((c for c in ordered if c.source == default_source), ordered[0])
        rest = [c for c in ordered if c is not primary]
        if strategy == "primary-with-support":
            text = primary.response + "\n\n--- Supporting Analysis ---\n" + "\n".join(_labelled(rest))
        else:
            text = "\n\n".join(_labelled([primary, *rest]))

    if disclaimer:
        text = f"{text}\n\n{disclaimer}"
    return text, consensus


class Ensembler:
    def __init__(
        self,
        sources: Mapping[str, EnsembleSource],
        settings: EnsembleSettings,
        *,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._sources = dict(sources)
        self.settings = settings
        self._clock = clock

    def _resolve(
        self, enabled_sources: Optional[Sequence[str]], weighting: Optional[str]
    ) -> tuple[list[str], WeightingStrategy]:
        strategy = weighting or self.settings.weighting_strategy
        if strategy not in get_args(WeightingStrategy):
            raise InvalidWeightingStrategy(f"Unknown weighting strategy: {strategy}")
        requested = self.settings.enabled_sources if enabled_sources is None else enabled_sources
        names = list(dict.fromkeys(requested))
        unknown = [name for name in names if name not in ENSEMBLE_SOURCE_IDS]
        if unknown:
            raise UnknownSource(f"Unknown ensemble sources: {', '.join(unknown)}")
        return names, strategy

    async def _run_source(self, name: str, prompt: str, context: Context) -> Result[ModelContribution]:
        source = self._sources.get(name)
        if source is None:
            logger.warning(f"Ensemble source {name} is not configured, skipping")
            return Err(LookupError(name), name)
        started = self._clock()
        try:
            response = await asyncio.wait_for(
                source.respond(prompt, context), timeout=self.settings.source_timeout_seconds
            )
        except (*EXPECTED_ERRORS, asyncio.TimeoutError) as exc:
            logger.warning(f"Ensemble source {name} failed, skipping: {exc!r}")
            return Err(exc, name)
        return Ok(to_contribution(response, name, _elapsed_ms(started, self._clock)), name)

    def _fallback(self, started: float) -> ModelContribution:
        return ModelContribution(
            source=FALLBACK_SOURCE,
            response=self.settings.fallback_message,
            confidence=self.settings.fallback_confidence,
            processing_time_ms=_elapsed_ms(started, self._clock),
        )

    async def generate_ensemble(
        self,
        prompt: str,
        context: Optional[Mapping[str, Any]] = None,
        enabled_sources: Optional[Sequence[str]] = None,
        weighting: Optional[str] = None,
    ) -> EnsembleResult:
        names, strategy = self._resolve(enabled_sources, weighting)
        started = self._clock()

        results = await asyncio.gather(*(self._run_source(name, prompt, context) for name in names))
        contributions = [result.value for result in results if isinstance(result, Ok)]
        if not contributions:
            logger.warning("All ensemble sources failed, returning fallback response")
            contributions = [self._fallback(started)]

        final_response, consensus = merge_contributions(
            contributions,
            strategy,
            default_source=self.settings.default_source,
            disclaimer=self.settings.disclaimer,
        )
        ordered = sorted(contributions, key=lambda c: (-c.confidence, c.source))
        return EnsembleResult(
            final_response=final_response,
            consensus_score=consensus,
            total_processing_time_ms=_elapsed_ms(started, self._clock),
            contributions=ordered,
            methodology=_METHODOLOGY[strategy],
        )
