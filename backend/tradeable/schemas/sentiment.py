from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from tradeable.schemas.market import MarketMood

SentimentLabel = Literal["positive", "neutral", "negative"]
SentimentMethod = Literal["model", "keyword"]

SENTIMENT_LABELS: tuple[SentimentLabel, ...] = ("positive", "neutral", "negative")


class SentimentVerdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: SentimentLabel
    confidence: float = Field(ge=0.0, le=1.0)
    method: SentimentMethod
    score_breakdown: dict[str, float] = Field(default_factory=dict)


class SentimentPercentages(BaseModel):
    positive: float = 0.0
    neutral: float = 0.0
    negative: float = 0.0


class SentimentBreakdown(BaseModel):
    positive: int = 0
    neutral: int = 0
    negative: int = 0
    total: int = 0
    percentages: SentimentPercentages = Field(default_factory=SentimentPercentages)
    average_confidence: float = 0.0


class OverallSentiment(BaseModel):
    label: SentimentLabel = "neutral"
    mood: MarketMood = "neutral"
    confidence: float = 0.5
    breakdown: SentimentBreakdown = Field(default_factory=SentimentBreakdown)


class SentimentRequest(BaseModel):
    text: str


class BatchSentimentRequest(BaseModel):
    texts: list[str] = Field(default_factory=list)


class BatchSentimentResponse(BaseModel):
    verdicts: list[SentimentVerdict] = Field(default_factory=list)
    overall: OverallSentiment = Field(default_factory=OverallSentiment)
