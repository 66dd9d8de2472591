"""
LLM gateways used by the agents.

Every call receives the complete ordered context; gateways keep no
conversation state of their own so they can be shared between sessions.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Literal, Optional, Protocol, Sequence

import httpx
from google import genai
from google.genai import types

from .config import Settings

logger = logging.getLogger(__name__)

Role = Literal["user", "model"]


@dataclass(frozen=True)
class PromptTurn:
    role: Role
    text: str


class LLMError(RuntimeError):
    """Raised when a gateway cannot produce text for a prompt."""


class LLMGateway(Protocol):
    async def generate(self, context: Sequence[PromptTurn]) -> str:
        ...


class GeminiGateway:
    """Gemini text models via google-genai; the streamed chunks are joined into one reply."""

    def __init__(
        self,
        *,
        api_key: Optional[str],
        model: str,
        client: Optional[genai.Client] = None,
    ) -> None:
        if client is None and not api_key:
            raise ValueError("GEMINI_API_KEY must be set to use the gemini provider")
        self.model = model
        self._client = client or genai.Client(api_key=api_key)

    async def generate(self, context: Sequence[PromptTurn]) -> str:
        contents = [
            types.Content(role=turn.role, parts=[types.Part.from_text(text=turn.text)])
            for turn in context
        ]

        def _run() -> str:
            acc = []
            for chunk in self._client.models.generate_content_stream(
                model=self.model, contents=contents
            ):
                if getattr(chunk, "text", None):
                    acc.append(chunk.text)
            return "".join(acc)

        try:
            text = await asyncio.to_thread(_run)
        except Exception as exc:
            raise LLMError(f"Gemini request failed: {exc}") from exc
        text = text.strip()
        if not text:
            raise LLMError("Gemini returned an empty response")
        return text


class OllamaGateway:
    def __init__(
        self,
        *,
        endpoint: str,
        model: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.endpoint = endpoint
        self.model = model
        self._timeout = httpx.Timeout(timeout)
        self._transport = transport

    def build_payload(self, context: Sequence[PromptTurn]) -> dict:
        # Ollama speaks the OpenAI role names.
        messages = [
            {"role": "assistant" if turn.role == "model" else turn.role, "content": turn.text}
            for turn in context
        ]
        return {"model": self.model, "messages": messages, "stream": False}

    async def generate(self, context: Sequence[PromptTurn]) -> str:
        payload = self.build_payload(context)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self.endpoint, json=payload)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise LLMError(f"Ollama request failed: {exc}") from exc

        try:
            text = data["message"]["content"]
        except (KeyError, TypeError) as exc:
            raise LLMError("Ollama response is missing message.content") from exc
        if not isinstance(text, str) or not text.strip():
            raise LLMError("Ollama returned an empty response")
        return text.strip()


DUMMY_QUOTES = (
    "事実は小説よりも奇なり。（バイロン）",
    "明日は明日の風が吹く。（マーガレット・ミッチェル）",
    "求めよ、さらば与えられん。（マタイによる福音書）",
    "語りえぬものについては、沈黙しなければならない。（ウィトゲンシュタイン）",
)


class DummyGateway:
    """Offline stand-in that answers with canned quotations."""

    def __init__(self, *, delay: float = 1.0, rng: Optional[random.Random] = None) -> None:
        self.delay = delay
        self._rng = rng or random.Random()

    async def generate(self, context: Sequence[PromptTurn]) -> str:
        await asyncio.sleep(self.delay)
        return self._rng.choice(DUMMY_QUOTES)


def create_gateway(provider: str, settings: Settings) -> LLMGateway:
    """Build the gateway named by ``provider`` (gemini, ollama or dummy)."""
    provider = provider.strip().lower()
    if provider == "gemini":
        return GeminiGateway(api_key=settings.gemini_api_key, model=settings.gemini_model)
    if provider == "ollama":
        return OllamaGateway(endpoint=settings.ollama_endpoint, model=settings.ollama_model)
    if provider == "dummy":
        return DummyGateway()
    raise ValueError(f"Unsupported LLM provider: {provider}")


__all__ = [
    "DummyGateway",
    "GeminiGateway",
    "LLMError",
    "LLMGateway",
    "OllamaGateway",
    "PromptTurn",
    "create_gateway",
]
