from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any

import aiohttp

from ..common import truncate
from ..prompts.companion import GenerationPrompt
from .rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger("companion_core.services")

RETRIABLE_STATUSES = frozenset({408, 409, 429, 500, 502, 503, 504})
MAX_ATTEMPTS = 3
CHARS_PER_TOKEN = 4


class GenerationRejected(RuntimeError):
    """Gemini answered, but not with a usable reply; retrying will not help."""


def to_gemini_payload(messages: list[dict[str, str]]) -> dict[str, Any]:
    """System messages fold into one `systemInstruction`; assistant turns become `model`."""
    system_parts: list[str] = []
    contents: list[dict[str, Any]] = []
    for message in messages:
        text = str(message.get("content", "")).strip()
        if not text:
            continue
        role = str(message.get("role", "")).strip().lower()
        if role == "system":
            system_parts.append(text)
        else:
            contents.append({"role": "model" if role == "assistant" else "user", "parts": [{"text": text}]})

    payload: dict[str, Any] = {"contents": contents}
    if system_parts:
        payload["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_parts)}]}
    return payload


def reply_text(data: dict[str, Any]) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        reason = (data.get("promptFeedback") or {}).get("blockReason")
        raise GenerationRejected(f"Gemini blocked the prompt: {reason}" if reason else "Gemini returned no candidates")

    first = candidates[0]
    parts = (first.get("content") or {}).get("parts") or []
    chunks = [part["text"].strip() for part in parts if isinstance(part.get("text"), str) and part["text"].strip()]
    if chunks:
        return "\n".join(chunks)
    reason = first.get("finishReason")
    raise GenerationRejected(f"Gemini empty reply (finishReason={reason})" if reason else "Gemini empty reply")


class GeminiClient:
    """Reply generator backed by the Gemini REST `generateContent` endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout_seconds: float,
        temperature: float,
        max_output_tokens: int,
        base_url: str = "https://generativelanguage.googleapis.com",
        rate_limiter: SlidingWindowRateLimiter | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.temperature = temperature
        self.max_output_tokens = max(0, int(max_output_tokens))
        self.rate_limiter = rate_limiter
        self._session: aiohttp.ClientSession | None = None

    @classmethod
    def from_settings(cls, settings: Any) -> "GeminiClient":
        return cls(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            timeout_seconds=settings.generation_timeout_seconds,
            temperature=settings.gemini_temperature,
            max_output_tokens=settings.gemini_max_output_tokens,
            base_url=settings.gemini_base_url,
            rate_limiter=SlidingWindowRateLimiter(
                settings.generation_rate_limit_requests,
                settings.generation_rate_limit_window_seconds,
            ),
        )

    async def start(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    def _generation_config(self) -> dict[str, Any]:
        config: dict[str, Any] = {"temperature": self.temperature}
        if self.max_output_tokens:
            config["maxOutputTokens"] = self.max_output_tokens
        return config

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        await self.start()
        assert self._session is not None
        url = f"{self.base_url}/v1beta/models/{self.model}:generateContent?key={self.api_key}"

        last_error: Exception | None = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            if self.rate_limiter is not None:
                await self.rate_limiter.acquire()
            try:
                async with self._session.post(url, json=payload) as response:
                    body = await response.text()
                    if response.status == 200:
                        return json.loads(body)
                    if response.status not in RETRIABLE_STATUSES:
                        raise GenerationRejected(f"Gemini error {response.status}: {body}")
                    last_error = RuntimeError(f"Gemini retriable error {response.status}: {body}")
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
                last_error = exc

            if attempt < MAX_ATTEMPTS:
                logger.debug("Gemini request attempt %s failed: %s", attempt, last_error)
                await asyncio.sleep(min(4.0, 0.35 * attempt + random.random() * 0.2))

        raise RuntimeError(f"Gemini request failed after {MAX_ATTEMPTS} attempts: {last_error}")

    async def generate(self, prompt: GenerationPrompt) -> str:
        payload = to_gemini_payload(prompt.messages)
        payload["generationConfig"] = self._generation_config()
        text = reply_text(await self._post(payload))
        if self.max_output_tokens:
            text = truncate(text, self.max_output_tokens * CHARS_PER_TOKEN)
        return text
