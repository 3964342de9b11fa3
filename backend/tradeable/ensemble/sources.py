"""
Ensemble sources.

Every backend answers with one of three tagged response variants. The
to_contribution normaliser is the only place that knows how a variant maps
onto a ModelContribution, so the ensembler never looks at backend identity.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, Union

from tradeable.config.settings import ProviderSettings
from tradeable.ensemble import prompts
from tradeable.errors import SourceUnavailable
from tradeable.providers.gemini import GeminiClient
from tradeable.providers.huggingface import HuggingFaceClassifier, HuggingFaceTextClient
from tradeable.schemas.ensemble import ModelContribution
from tradeable.schemas.sentiment import SentimentVerdict
from tradeable.sentiment.analyzer import SentimentAnalyzer

GEMINI_CONFIDENCE = 0.9
TEXT_GENERATION_CONFIDENCE = 0.8

Context = Optional[Mapping[str, Any]]


@dataclass(frozen=True)
class GeminiCompletion:
    text: str


@dataclass(frozen=True)
class TextGeneration:
    text: str
    model: str


@dataclass(frozen=True)
class ClassifierReading:
    verdict: SentimentVerdict
    model: str


ModelResponse = Union[GeminiCompletion, TextGeneration, ClassifierReading]


def to_contribution(response: ModelResponse, source: str, elapsed_ms: int) -> ModelContribution:
    if isinstance(response, GeminiCompletion):
        return ModelContribution(
            source=source,
            response=response.text,
            confidence=GEMINI_CONFIDENCE,
            processing_time_ms=elapsed_ms,
            strengths=["reasoning", "market context"],
        )
    if isinstance(response, TextGeneration):
        return ModelContribution(
            source=source,
            response=response.text,
            confidence=TEXT_GENERATION_CONFIDENCE,
            processing_time_ms=elapsed_ms,
            strengths=["market commentary"],
        )
    if isinstance(response, ClassifierReading):
        return ModelContribution(
            source=source,
            response=prompts.sentiment_commentary(response.verdict),
            confidence=response.verdict.confidence,
            processing_time_ms=elapsed_ms,
            strengths=["sentiment", response.verdict.method],
        )
    raise TypeError(f"Unsupported model response: {type(response).__name__}")


class EnsembleSource(Protocol):
    async def respond(self, prompt: str, context: Context) -> ModelResponse: ...


class GeminiSource:
    def __init__(self, client: GeminiClient) -> None:
        self._client = client

    async def respond(self, prompt: str, context: Context) -> ModelResponse:
        return GeminiCompletion(await self._client.generate(prompts.assistant_prompt(prompt, context)))


class ClassifierSource:
    def __init__(self, classifier: HuggingFaceClassifier, model: str) -> None:
        self._classifier = classifier
        self._model = model

    async def respond(self, prompt: str, context: Context) -> ModelResponse:
        if not self._classifier.available:
            raise SourceUnavailable(f"{self._model} needs a HuggingFace API key")
        verdict = await self._classifier.classify(prompt, self._model)
        return ClassifierReading(verdict, self._model)


class TextGenerationSource:
    def __init__(self, client: HuggingFaceTextClient, model: str) -> None:
        self._client = client
        self._model = model

    async def respond(self, prompt: str, context: Context) -> ModelResponse:
        text = await self._client.generate(prompts.market_analysis_prompt(prompt, context), self._model)
        return TextGeneration(text, self._model)


class MarketSentimentSource:
    """Local analyzer reading; degrades to keywords instead of failing."""

    def __init__(self, analyzer: SentimentAnalyzer) -> None:
        self._analyzer = analyzer

    async def respond(self, prompt: str, context: Context) -> ModelResponse:
        verdict = await self._analyzer.analyze(prompt)
        return ClassifierReading(verdict, "market-sentiment")


def build_sources(
    providers: ProviderSettings,
    gemini: GeminiClient,
    classifier: HuggingFaceClassifier,
    text_client: HuggingFaceTextClient,
    analyzer: SentimentAnalyzer,
) -> dict[str, EnsembleSource]:
    return {
        "gemini": GeminiSource(gemini),
        "financial_bert": ClassifierSource(classifier, providers.financial_model),
        "crypto_bert": ClassifierSource(classifier, providers.crypto_model),
        "news_analysis": ClassifierSource(classifier, providers.news_model),
        "market_analysis": TextGenerationSource(text_client, providers.generation_model),
        "market_sentiment": MarketSentimentSource(analyzer),
    }
