from __future__ import annotations

from typing import Any

from tradeable.config.settings import ProviderSettings
from tradeable.errors import SourceUnavailable
from tradeable.http.fetch import ResilientFetcher

_GENERATION_CONFIG = {
    "temperature": 0.7,
    "topP": 0.8,
    "topK": 40,
    "maxOutputTokens": 1024,
}


def parse_completion(payload: Any) -> str:
    parts = payload["candidates"][0]["content"]["parts"]
    text = "".join(part.get("text", "") for part in parts).strip()
    if not text:
        raise ValueError("empty completion")
    return text


class GeminiClient:
    def __init__(self, fetcher: ResilientFetcher, providers: ProviderSettings) -> None:
        self._fetcher = fetcher
        self._providers = providers

    async def generate(self, prompt: str) -> str:
        api_key = self._providers.gemini_api_key
        if not api_key:
            raise SourceUnavailable("Gemini API key is not configured")
        url = (
            f"{self._providers.gemini_base_url.rstrip('/')}"
            f"/models/{self._providers.gemini_model}:generateContent"
        )
        return await self._fetcher.fetch(
            url,
            method="POST",
            json_body={
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": _GENERATION_CONFIG,
            },
            headers={"x-goog-api-key": api_key},
            parse=parse_completion,
        )
