from __future__ import annotations

from wanderer.core.errors import ProviderInvalidResponse
from wanderer.providers.base import NarrativeProvider
from wanderer.providers.http import HTTPClient

GROQ_BASE_URL = "https://api.groq.com/openai/v1"

SYSTEM_PROMPT = (
    "You are a professional storyteller who writes long, vivid, detailed stories "
    "for people on a walk. Reply with plain JSON only: no markdown and no explanation. "
    "Start the response with { and end it with }."
)


class GroqProvider(NarrativeProvider):
    """OpenAI-compatible chat completions on Groq."""

    name = "groq"

    def __init__(self, http: HTTPClient, model: str = "llama3-8b-8192", system_prompt: str = SYSTEM_PROMPT):
        self.http = http
        self.model = model
        self.system_prompt = system_prompt

    def complete(self, prompt: str, max_tokens: int, temperature: float, api_key: str) -> str:
        data = self.http.post_json(
            f"{GROQ_BASE_URL}/chat/completions",
            {
                "model": self.model,
                "messages": [
                    {"role": "system", "content": self.system_prompt},
                    {"role": "user", "content": prompt},
                ],
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
        )
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderInvalidResponse("Groq response has no message content", provider=self.name) from e
        if not text:
            raise ProviderInvalidResponse("Groq returned empty content", provider=self.name)
        return text
