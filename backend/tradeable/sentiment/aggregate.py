from __future__ import annotations

from typing import Optional, Sequence

from tradeable.config.settings import SentimentSettings
from tradeable.schemas.market import MarketMood
from tradeable.schemas.sentiment import (
    OverallSentiment,
    SentimentBreakdown,
    SentimentLabel,
    SentimentPercentages,
    SentimentVerdict,
)

MOOD_BY_LABEL: dict[SentimentLabel, MarketMood] = {
    "positive": "bullish",
    "negative": "bearish",
    "neutral": "neutral",
}


def _breakdown(verdicts: Sequence[SentimentVerdict]) -> SentimentBreakdown:
    total = len(verdicts)
    counts = {"positive": 0, "neutral": 0, "negative": 0}
    for verdict in verdicts:
        counts[verdict.label] += 1
    return SentimentBreakdown(
        positive=counts["positive"],
        neutral=counts["neutral"],
        negative=counts["negative"],
        total=total,
        percentages=SentimentPercentages(
            positive=round(counts["positive"] / total * 100, 2),
            neutral=round(counts["neutral"] / total * 100, 2),
            negative=round(counts["negative"] / total * 100, 2),
        ),
        average_confidence=round(sum(v.confidence for v in verdicts) / total, 3),
    )


def calculate_overall_sentiment(
    verdicts: Sequence[SentimentVerdict],
    settings: Optional[SentimentSettings] = None,
) -> OverallSentiment:
    """Fold per-text verdicts into one label and market mood.

    A label wins outright when its share is above the majority floor, beats
    the opposing label by the margin and the verdicts are confident enough
    on average. A dominant neutral share or a near tie between positive and
    negative is neutral. Otherwise the larger side wins with a reduced
    confidence, unless average confidence is below the gate.
    """
    settings = settings or SentimentSettings()
    if not verdicts:
        return OverallSentiment()

    breakdown = _breakdown(verdicts)
    positive = breakdown.percentages.positive
    negative = breakdown.percentages.negative
    neutral = breakdown.percentages.neutral
    average = breakdown.average_confidence
    confident = average >= settings.min_average_confidence

    label: SentimentLabel
    if confident and positive > settings.majority_floor_percent and positive > negative + settings.majority_margin_percent:
        label = "positive"
        confidence = min(0.95, 0.6 + positive / 100 * 0.3 + average * 0.1)
    elif confident and negative > settings.majority_floor_percent and negative > positive + settings.majority_margin_percent:
        label = "negative"
        confidence = min(0.95, 0.6 + negative / 100 * 0.3 + average * 0.1)
    elif neutral > settings.neutral_floor_percent or abs(positive - negative) < settings.tie_band_percent:
        label = "neutral"
        confidence = min(0.85, 0.5 + average * 0.3)
    elif not confident:
        label = "neutral"
        confidence = average
    else:
        label = "positive" if positive > negative else "negative"
        confidence = min(0.8, 0.5 + abs(positive - negative) / 100 * 0.3)

    return OverallSentiment(
        label=label,
        mood=MOOD_BY_LABEL[label],
        confidence=round(confidence, 3),
        breakdown=breakdown,
    )
