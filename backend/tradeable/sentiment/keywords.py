from __future__ import annotations

import functools
import re
from typing import Sequence

from tradeable.config.settings import SentimentSettings
from tradeable.schemas.sentiment import SentimentVerdict

_PRICE_UP_RE = re.compile(r"(\+\d|\d+(?:\.\d+)?%\s*(?:up|gain|rise|increase|growth))", re.IGNORECASE)
_PRICE_DOWN_RE = re.compile(
    r"((?<![\w])-\d|\d+(?:\.\d+)?%\s*(?:down|loss|drop|decrease|decline))", re.IGNORECASE
)


@functools.lru_cache(maxsize=8)
def _keyword_pattern(keywords: tuple[str, ...]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(word) for word in sorted(keywords, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


def count_keywords(text: str, keywords: Sequence[str]) -> int:
    if not keywords:
        return 0
    return len(_keyword_pattern(tuple(keywords)).findall(text))


def neutral_verdict(confidence: float = 0.5) -> SentimentVerdict:
    return SentimentVerdict(
        label="neutral",
        confidence=confidence,
        method="keyword",
        score_breakdown={"positive": 0.0, "neutral": 1.0, "negative": 0.0},
    )


def _price_move_verdict(text: str, confidence: float) -> SentimentVerdict | None:
    if _PRICE_UP_RE.search(text):
        return SentimentVerdict(
            label="positive",
            confidence=confidence,
            method="keyword",
            score_breakdown={"positive": confidence, "neutral": 0.3, "negative": 0.1},
        )
    if _PRICE_DOWN_RE.search(text):
        return SentimentVerdict(
            label="negative",
            confidence=confidence,
            method="keyword",
            score_breakdown={"positive": 0.1, "neutral": 0.3, "negative": confidence},
        )
    return None


def analyze_keywords(text: str, settings: SentimentSettings) -> SentimentVerdict:
    """Deterministic sentiment from curated domain keywords.

    Whole-word matches are counted for both lists. Without any match the text
    is scanned for explicit price moves ("+4%", "3% down"); failing that it is
    neutral at 0.5.
    """
    if not text or not text.strip():
        return neutral_verdict()

    positive = count_keywords(text, settings.positive_keywords)
    negative = count_keywords(text, settings.negative_keywords)
    total = positive + negative
    if total == 0:
        return _price_move_verdict(text, settings.price_move_confidence) or neutral_verdict()

    positive_ratio = positive / total
    negative_ratio = negative / total
    spread = abs(positive_ratio - negative_ratio)

    if positive_ratio > settings.positive_ratio:
        label = "positive"
        confidence = min(settings.strong_confidence_cap, 0.5 + positive_ratio * 0.4)
    elif positive_ratio < settings.negative_ratio:
        label = "negative"
        confidence = min(settings.strong_confidence_cap, 0.5 + negative_ratio * 0.4)
    elif spread < settings.neutral_band:
        label = "neutral"
        confidence = settings.neutral_confidence
    else:
        label = "positive" if positive_ratio > negative_ratio else "negative"
        confidence = min(settings.lean_confidence_cap, 0.5 + spread * 0.3)

    return SentimentVerdict(
        label=label,
        confidence=round(confidence, 4),
        method="keyword",
        score_breakdown={
            "positive": positive_ratio,
            "neutral": max(0.0, 1 - (positive_ratio + negative_ratio)),
            "negative": negative_ratio,
        },
    )
