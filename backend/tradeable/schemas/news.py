from __future__ import annotations

import datetime
from typing import Optional

from pydantic import BaseModel, Field

from tradeable.schemas.provider import Origin, utcnow
from tradeable.schemas.sentiment import OverallSentiment, SentimentVerdict


class Article(BaseModel):
    title: str
    content: str = ""
    source: str
    image_url: Optional[str] = None
    published_at: datetime.datetime
    url: Optional[str] = None


class TrendingTopic(BaseModel):
    topic: str
    mentions: int
    sentiment: Optional[str] = None


class ScoredArticle(Article):
    sentiment: SentimentVerdict


class NewsDigest(BaseModel):
    articles: list[ScoredArticle] = Field(default_factory=list)
    sentiment: OverallSentiment = Field(default_factory=OverallSentiment)
    origin: Origin = "live"
    built_at: datetime.datetime = Field(default_factory=utcnow)


class NewsRefreshResponse(BaseModel):
    job_id: str
    job_status: str
