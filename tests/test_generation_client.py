from __future__ import annotations

import asyncio
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from companion_core.models import EmotionalState, Turn  # noqa: E402
from companion_core.prompts.companion import (  # noqa: E402
    GenerationPrompt,
    build_reply_prompt,
    choose_mood,
    time_of_day,
)
from companion_core.services.gemini_client import (  # noqa: E402
    GeminiClient,
    GenerationRejected,
    reply_text,
    to_gemini_payload,
)
from companion_core.services.rate_limiter import SlidingWindowRateLimiter  # noqa: E402


class _FakeResponse:
    def __init__(self, status: int, body: object) -> None:
        self.status = status
        self._body = body if isinstance(body, str) else json.dumps(body)

    async def text(self) -> str:
        return self._body

    async def __aenter__(self) -> "_FakeResponse":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None


class _FakeSession:
    def __init__(self, *responses: _FakeResponse) -> None:
        self.responses = list(responses)
        self.payloads: list[dict] = []
        self.closed = False

    def post(self, url: str, json: dict) -> _FakeResponse:
        self.payloads.append(json)
        return self.responses.pop(0)


def _client(max_output_tokens: int = 0) -> GeminiClient:
    return GeminiClient(
        api_key="test-key",
        model="gemini-test",
        timeout_seconds=5,
        temperature=0.5,
        max_output_tokens=max_output_tokens,
    )


HELLO = GenerationPrompt([{"role": "user", "content": "hi"}])


def _ok(text: str) -> _FakeResponse:
    return _FakeResponse(200, {"candidates": [{"content": {"parts": [{"text": text}]}}]})


def test_messages_map_to_gemini_payload() -> None:
    payload = to_gemini_payload(
        [
            {"role": "system", "content": "be kind"},
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "system", "content": "stay brief"},
            {"role": "user", "content": "   "},
        ]
    )

    assert payload["systemInstruction"] == {"parts": [{"text": "be kind\n\nstay brief"}]}
    assert payload["contents"] == [
        {"role": "user", "parts": [{"text": "hi"}]},
        {"role": "model", "parts": [{"text": "hello"}]},
    ]


def test_reply_text_reports_blocks_and_empty_candidates() -> None:
    with pytest.raises(GenerationRejected, match="SAFETY"):
        reply_text({"promptFeedback": {"blockReason": "SAFETY"}})
    with pytest.raises(GenerationRejected, match="finishReason=MAX_TOKENS"):
        reply_text({"candidates": [{"content": {"parts": []}, "finishReason": "MAX_TOKENS"}]})

    text = reply_text({"candidates": [{"content": {"parts": [{"text": " a "}, {"text": "b"}]}}]})
    assert text == "a\nb"


def test_generate_sends_generation_config_and_truncates_reply() -> None:
    async def scenario() -> None:
        client = _client(max_output_tokens=10)
        session = _FakeSession(_ok("Hello there. This is a long reply that keeps going on."))
        client._session = session

        reply = await client.generate(HELLO)

        assert reply == "Hello there. This is a long reply that"
        assert session.payloads[0]["generationConfig"] == {"temperature": 0.5, "maxOutputTokens": 10}

    asyncio.run(scenario())


def test_retriable_status_is_retried() -> None:
    async def scenario() -> None:
        client = _client()
        session = _FakeSession(_FakeResponse(503, "busy"), _ok("fine"))
        client._session = session

        assert await client.generate(HELLO) == "fine"
        assert len(session.payloads) == 2

    asyncio.run(scenario())


def test_client_error_is_not_retried() -> None:
    async def scenario() -> None:
        client = _client()
        session = _FakeSession(_FakeResponse(400, "bad request"), _ok("unused"))
        client._session = session

        with pytest.raises(GenerationRejected, match="Gemini error 400"):
            await client.generate(HELLO)
        assert len(session.payloads) == 1

    asyncio.run(scenario())


def test_exhausted_retries_report_the_last_error() -> None:
    async def scenario() -> None:
        client = _client()
        session = _FakeSession(*(_FakeResponse(429, "slow down") for _ in range(3)))
        client._session = session

        with pytest.raises(RuntimeError, match="after 3 attempts: Gemini retriable error 429") as caught:
            await client.generate(HELLO)
        assert not isinstance(caught.value, GenerationRejected)
        assert session.payloads[0]["generationConfig"] == {"temperature": 0.5}

    asyncio.run(scenario())


def test_rate_limiter_waits_for_the_window_to_slide() -> None:
    now = [0.0]
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        now[0] += seconds

    limiter = SlidingWindowRateLimiter(2, 10.0, monotonic=lambda: now[0], sleep=fake_sleep)

    async def scenario() -> None:
        await limiter.acquire()
        now[0] += 4.0
        await limiter.acquire()
        await limiter.acquire()

    asyncio.run(scenario())

    assert sleeps == [pytest.approx(6.0)]
    assert limiter.remaining() == 0
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(0, 10.0)


def test_reply_prompt_layout() -> None:
    at = datetime(2026, 3, 1, 20, 30, tzinfo=timezone.utc)
    earlier = Turn.create("c1", "We talked about music", timestamp=at)
    answer = Turn.create("c1", "Music is great", "assistant", timestamp=at)
    user_turn = Turn.create("c1", "I am so happy today", timestamp=at)

    prompt = build_reply_prompt(
        user_turn=user_turn,
        recent_turns=[earlier, answer, user_turn],
        traits=[("emotional_depth", 75.4), ("empathy", 80.0)],
        emotional_state=EmotionalState(0.4, 0.6, "content", at),
        strategy="topic_continuation",
        candidate_template="Tell me more about music.",
        user_emotion=("joy", 0.1),
        continuity_notes=["Time gap of 40 minutes detected"],
        retry_reason="Response conflicts with dominant personality traits",
    )

    roles = [message["role"] for message in prompt.messages]
    assert roles == ["system", "user", "assistant", "system", "system", "user"]
    assert prompt.messages[-1]["content"] == "I am so happy today"
    system = prompt.messages[0]["content"]
    assert "It's evening time." in system
    assert "cheerful and upbeat" in system
    assert "- Emotional depth (75%)" in system
    assert "Time gap of 40 minutes detected" in system
    assert "Response approach: topic_continuation" in prompt.system_text
    assert "previous draft was rejected" in prompt.system_text


def test_mood_and_time_helpers() -> None:
    assert choose_mood("I feel sad and worried") == "caring"
    assert choose_mood("just a normal day") is None
    assert time_of_day(datetime(2026, 3, 1, 3, 0)) == "night"
    assert time_of_day(datetime(2026, 3, 1, 9, 0)) == "morning"
