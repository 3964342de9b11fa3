from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from tradeable.config.settings import WeightingStrategy

Methodology = Literal["confidence-weighted", "primary-with-support", "equal"]


class ModelContribution(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    response: str
    confidence: float = Field(ge=0.0, le=1.0)
    processing_time_ms: int = 0
    strengths: list[str] = Field(default_factory=list)


class EnsembleResult(BaseModel):
    final_response: str
    consensus_score: float = Field(ge=0.0, le=1.0)
    total_processing_time_ms: int
    contributions: list[ModelContribution] = Field(default_factory=list)
    methodology: Methodology


class EnsembleOptions(BaseModel):
    use_gemini: bool = True
    use_financial_bert: bool = True
    use_crypto_bert: bool = False
    use_news_analysis: bool = True
    use_market_analysis: bool = False
    use_market_sentiment: bool = False
    weighting_strategy: Optional[WeightingStrategy] = None

    def enabled_sources(self) -> list[str]:
        flags = (
            ("gemini", self.use_gemini),
            ("financial_bert", self.use_financial_bert),
            ("crypto_bert", self.use_crypto_bert),
            ("news_analysis", self.use_news_analysis),
            ("market_analysis", self.use_market_analysis),
            ("market_sentiment", self.use_market_sentiment),
        )
        return [source for source, enabled in flags if enabled]
