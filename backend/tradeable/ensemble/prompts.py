from __future__ import annotations

import json
from typing import Any, Mapping, Optional

from tradeable.schemas.sentiment import SentimentVerdict

_ASSISTANT_INSTRUCTIONS = (
    "You are a crypto trading assistant. Analyze this query in the context of "
    "cryptocurrency markets and trading:"
)

_FOCUS = (
    "Provide a concise, actionable response focusing on:",
    "- Market analysis if relevant",
    "- Trading insights",
    "- Risk considerations",
    "- Current market sentiment",
    "",
    "Keep response under 200 words",
)

_COMMENTARY = {
    "positive": (
        "Market sentiment appears bullish. Confidence: {confidence}%. This suggests "
        "favorable market conditions and potential upward price movement."
    ),
    "negative": (
        "Market sentiment appears bearish. Confidence: {confidence}%. This indicates "
        "caution and potential downward pressure on prices."
    ),
    "neutral": (
        "Market sentiment is neutral. Confidence: {confidence}%. Mixed signals suggest "
        "a wait-and-see approach may be prudent."
    ),
}


def with_context(prompt: str, context: Optional[Mapping[str, Any]]) -> str:
    if not context:
        return prompt
    return f"{prompt}\n\nMarket Context: {json.dumps(context, indent=2, default=str)}"


def assistant_prompt(prompt: str, context: Optional[Mapping[str, Any]] = None) -> str:
    return "\n".join((_ASSISTANT_INSTRUCTIONS, "", with_context(prompt, context), "", *_FOCUS))


def market_analysis_prompt(prompt: str, context: Optional[Mapping[str, Any]] = None) -> str:
    return f"Crypto market analyst notes.\nQuestion: {with_context(prompt, context)}\nAnalysis:"


def sentiment_commentary(verdict: SentimentVerdict) -> str:
    return _COMMENTARY[verdict.label].format(confidence=f"{verdict.confidence * 100:.1f}")
