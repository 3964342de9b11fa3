from __future__ import annotations

import logging
import re
from typing import Any, Optional

from tradeable.config.settings import ProviderSettings
from tradeable.errors import SourceUnavailable
from tradeable.http.fetch import ResilientFetcher
from tradeable.schemas.sentiment import SENTIMENT_LABELS, SentimentLabel, SentimentVerdict

logger = logging.getLogger(__name__)

_STARS_RE = re.compile(r"^([1-5])\s*stars?$")
_INDEXED_LABELS: dict[str, SentimentLabel] = {
    "label_0": "negative",
    "label_1": "neutral",
    "label_2": "positive",
}
_NAMED_LABELS: dict[str, SentimentLabel] = {
    "positive": "positive",
    "pos": "positive",
    "negative": "negative",
    "neg": "negative",
    "neutral": "neutral",
    "neu": "neutral",
}


def normalize_label(raw: str) -> Optional[SentimentLabel]:
    """Map the label vocabularies of common sentiment models onto our three labels.

    Handles positive/negative/neutral (any case, abbreviated), LABEL_0..2 as
    emitted by cardiffnlp models, and the 1-5 star scale of nlptown models.
    Returns None for anything else.
    """
    label = raw.strip().lower()
    if label in _NAMED_LABELS:
        return _NAMED_LABELS[label]
    if label in _INDEXED_LABELS:
        return _INDEXED_LABELS[label]
    match = _STARS_RE.match(label)
    if match:
        stars = int(match.group(1))
        if stars <= 2:
            return "negative"
        if stars == 3:
            return "neutral"
        return "positive"
    return None


def _predictions(payload: Any) -> list[dict]:
    # the inference API nests predictions one level per input
    if isinstance(payload, list) and payload and isinstance(payload[0], list):
        payload = payload[0]
    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list) or not payload:
        raise ValueError("no predictions in classifier response")
    return payload


def parse_classification(payload: Any) -> SentimentVerdict:
    breakdown = {label: 0.0 for label in SENTIMENT_LABELS}
    recognized = False
    for prediction in _predictions(payload):
        label = normalize_label(str(prediction["label"]))
        if label is None:
            continue
        recognized = True
        breakdown[label] += float(prediction["score"])
    if not recognized:
        raise ValueError("unrecognized label schema")

    best = max(SENTIMENT_LABELS, key=lambda label: breakdown[label])
    return SentimentVerdict(
        label=best,
        confidence=min(1.0, max(0.0, breakdown[best])),
        method="model",
        score_breakdown=breakdown,
    )


def parse_generated_text(payload: Any) -> str:
    if isinstance(payload, list):
        payload = payload[0]
    text = str(payload["generated_text"]).strip()
    if not text:
        raise ValueError("empty generation")
    return text


class _InferenceClient:
    def __init__(self, fetcher: ResilientFetcher, providers: ProviderSettings) -> None:
        self._fetcher = fetcher
        self._providers = providers

    @property
    def available(self) -> bool:
        return bool(self._providers.huggingface_api_key)

    def _model_url(self, model: str) -> str:
        return f"{self._providers.huggingface_base_url.rstrip('/')}/models/{model}"

    def _headers(self) -> dict[str, str]:
        api_key = self._providers.huggingface_api_key
        if not api_key:
            raise SourceUnavailable("HuggingFace API key is not configured")
        return {"Authorization": f"Bearer {api_key}"}


class HuggingFaceClassifier(_InferenceClient):
    def __init__(
        self,
        fetcher: ResilientFetcher,
        providers: ProviderSettings,
        max_text_length: int = 512,
    ) -> None:
        super().__init__(fetcher, providers)
        self._max_text_length = max_text_length

    async def classify(self, text: str, model: Optional[str] = None) -> SentimentVerdict:
        headers = self._headers()
        model = model or self._providers.sentiment_model
        return await self._fetcher.fetch(
            self._model_url(model),
            method="POST",
            json_body={
                "inputs": text.strip()[: self._max_text_length],
                "options": {"wait_for_model": True, "use_cache": False},
            },
            headers=headers,
            parse=parse_classification,
        )


class HuggingFaceTextClient(_InferenceClient):
    async def generate(self, prompt: str, model: Optional[str] = None) -> str:
        headers = self._headers()
        model = model or self._providers.generation_model
        return await self._fetcher.fetch(
            self._model_url(model),
            method="POST",
            json_body={
                "inputs": prompt,
                "parameters": {"max_new_tokens": 200, "return_full_text": False},
                "options": {"wait_for_model": True},
            },
            headers=headers,
            parse=parse_generated_text,
        )
