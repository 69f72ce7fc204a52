from __future__ import annotations

from wanderer.core.errors import ProviderInvalidResponse
from wanderer.providers.base import NarrativeProvider
from wanderer.providers.http import HTTPClient

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"


class GeminiProvider(NarrativeProvider):
    name = "gemini"

    def __init__(self, http: HTTPClient, model: str = "gemini-pro"):
        self.http = http
        self.model = model

    def complete(self, prompt: str, max_tokens: int, temperature: float, api_key: str) -> str:
        data = self.http.post_json(
            f"{GEMINI_BASE_URL}/{self.model}:generateContent",
            {
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": {
                    "temperature": temperature,
                    "topK": 40,
                    "topP": 0.9,
                    "maxOutputTokens": max_tokens,
                },
            },
            params={"key": api_key},
            headers={"Content-Type": "application/json"},
        )
        try:
            parts = data["candidates"][0]["content"]["parts"]
            text = "".join(p.get("text", "") for p in parts)
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise ProviderInvalidResponse("Invalid response format from Gemini API", provider=self.name) from e
        if not text:
            raise ProviderInvalidResponse("Gemini returned empty content", provider=self.name)
        return text
