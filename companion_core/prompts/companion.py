from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

from ..common import collapse_spaces, truncate
from ..lexicons.json_loader import load_lexicon
from ..models import EmotionalState, Memory, Turn

_DEFAULTS: dict[str, Any] = {
    "base_system_prompt": (
        "You are a warm AI companion, designed to be a supportive, empathetic, and engaging presence. "
        "Your responses should reflect a consistent personality.\n\n"
        "CONVERSATION STYLE:\n"
        "- Use natural, conversational language\n"
        "- Show emotional intelligence in your responses\n"
        "- Include appropriate emojis to convey emotion (1-2 per message maximum)\n"
        "- Maintain conversation flow with follow-up questions\n"
        "- Share personal viewpoints while respecting boundaries\n\n"
        "BEHAVIORAL GUIDELINES:\n"
        "- Remember and reference previous conversations when relevant\n"
        "- Express your own interests and preferences consistently\n"
        "- Be supportive without being clingy\n"
        "- Stay within ethical and safety guidelines\n\n"
        "RESPONSE FORMAT:\n"
        "- Keep responses concise (2-3 sentences on average)\n"
        "- Include occasional questions to maintain engagement\n\n"
        "SAFETY AND ETHICS:\n"
        "- Avoid harmful, explicit, or inappropriate content\n"
        "- Respect user privacy and personal information\n"
        "- Promote healthy relationship dynamics\n"
        "- Redirect inappropriate requests professionally"
    ),
    "mood_prompts": {
        "happy": "You are in a cheerful and upbeat mood. Express joy and enthusiasm in your responses.",
        "caring": "You are feeling nurturing and supportive. Show extra empathy and concern.",
        "playful": "You are in a fun and lighthearted mood. Be more humorous and engaging.",
        "reflective": "You are feeling thoughtful and introspective. Share deeper insights and observations.",
        "romantic": "You are feeling affectionate and warm. Express care while maintaining appropriate boundaries.",
    },
    "time_contexts": {
        "morning": "It's morning time. Be energetic and optimistic about the day ahead.",
        "afternoon": "It's afternoon. Be productive and engaging.",
        "evening": "It's evening time. Be more relaxed and wind-down oriented.",
        "night": "It's nighttime. Be calming and supportive.",
    },
    "mood_words": {
        "positive": ["happy", "joy", "love", "excited", "great", "wonderful"],
        "negative": ["sad", "angry", "upset", "frustrated", "worried", "sorry"],
    },
    "trait_line_template": "- {name} ({value}%)",
    "memory_line_template": "- {content}",
    "emotional_state_template": "Your own emotional state: {emotion} (mood {mood:+.2f}, energy {energy:.2f}).",
    "user_emotion_template": "The user seems to feel {emotion} (intensity {intensity:.2f}).",
    "strategy_hint_template": "Response approach: {strategy}. A reply in this spirit could be: \"{template}\"",
    "retry_hint_template": "Your previous draft was rejected: {reason}. Write a different reply that fixes this.",
    "closing_line": (
        "Remember to maintain these personality traits and incorporate relevant memories naturally "
        "into the conversation."
    ),
}

RECENT_TURN_LIMIT = 6
TURN_CHAR_LIMIT = 600


@dataclass(slots=True)
class GenerationPrompt:
    messages: list[dict[str, str]] = field(default_factory=list)

    @property
    def system_text(self) -> str:
        return "\n\n".join(item["content"] for item in self.messages if item.get("role") == "system")


def _cfg() -> dict[str, Any]:
    return load_lexicon("prompts.json", _DEFAULTS)


def time_of_day(now: datetime) -> str:
    hour = now.hour
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 22:
        return "evening"
    return "night"


def choose_mood(message: str, cfg: dict[str, Any] | None = None) -> str | None:
    """`happy` for mostly positive words, `caring` for mostly negative ones, None otherwise."""
    config = cfg or _cfg()
    words = [word for word in re.split(r"\W+", (message or "").lower()) if word]
    mood_words = config.get("mood_words") or {}
    positive = sum(1 for word in words if word in set(mood_words.get("positive") or ()))
    negative = sum(1 for word in words if word in set(mood_words.get("negative") or ()))
    if positive > negative:
        return "happy"
    if negative > positive:
        return "caring"
    return None


def _trait_label(name: str) -> str:
    return name.replace("_", " ").capitalize()


def build_system_prompt(
    *,
    traits: Sequence[tuple[str, float]],
    emotional_state: EmotionalState | None = None,
    memories: Sequence[Memory] = (),
    mood: str | None = None,
    now: datetime | None = None,
    user_emotion: tuple[str, float] | None = None,
    continuity_notes: Sequence[str] = (),
) -> str:
    cfg = _cfg()
    sections: list[str] = [str(cfg["base_system_prompt"]).strip()]

    context_lines: list[str] = []
    if now is not None:
        line = (cfg.get("time_contexts") or {}).get(time_of_day(now))
        if line:
            context_lines.append(str(line))
    if mood:
        line = (cfg.get("mood_prompts") or {}).get(mood)
        if line:
            context_lines.append(str(line))
    if emotional_state is not None:
        context_lines.append(
            str(cfg["emotional_state_template"]).format(
                emotion=emotional_state.dominant_emotion,
                mood=emotional_state.mood,
                energy=emotional_state.energy,
            )
        )
    if user_emotion is not None and user_emotion[0] != "neutral":
        context_lines.append(
            str(cfg["user_emotion_template"]).format(emotion=user_emotion[0], intensity=user_emotion[1])
        )
    context_lines.extend(collapse_spaces(note) for note in continuity_notes if collapse_spaces(note))
    if context_lines:
        sections.append("CURRENT CONTEXT:\n" + "\n".join(context_lines))

    if traits:
        template = str(cfg["trait_line_template"])
        lines = [template.format(name=_trait_label(name), value=round(value)) for name, value in traits]
        sections.append("PERSONALITY TRAITS:\n" + "\n".join(lines))

    if memories:
        template = str(cfg["memory_line_template"])
        lines = [template.format(content=truncate(collapse_spaces(item.content), 240)) for item in memories]
        sections.append("RELEVANT MEMORIES:\n" + "\n".join(lines))

    sections.append(str(cfg["closing_line"]))
    return "\n\n".join(section for section in sections if section.strip())


def build_reply_prompt(
    *,
    user_turn: Turn,
    recent_turns: Sequence[Turn],
    traits: Sequence[tuple[str, float]],
    emotional_state: EmotionalState | None = None,
    memories: Sequence[Memory] = (),
    strategy: str | None = None,
    candidate_template: str = "",
    user_emotion: tuple[str, float] | None = None,
    continuity_notes: Sequence[str] = (),
    retry_reason: str | None = None,
    now: datetime | None = None,
) -> GenerationPrompt:
    """Messages for one generation call: system prompt, recent turns, then the user turn."""
    cfg = _cfg()
    system = build_system_prompt(
        traits=traits,
        emotional_state=emotional_state,
        memories=memories,
        mood=choose_mood(user_turn.content, cfg),
        now=now or user_turn.timestamp,
        user_emotion=user_emotion,
        continuity_notes=continuity_notes,
    )
    messages: list[dict[str, str]] = [{"role": "system", "content": system}]

    history = [turn for turn in recent_turns if turn.id != user_turn.id and not turn.deleted]
    for turn in history[-RECENT_TURN_LIMIT:]:
        messages.append({"role": turn.role, "content": truncate(turn.content, TURN_CHAR_LIMIT)})

    if strategy and candidate_template:
        messages.append(
            {
                "role": "system",
                "content": str(cfg["strategy_hint_template"]).format(strategy=strategy, template=candidate_template),
            }
        )
    if retry_reason:
        messages.append({"role": "system", "content": str(cfg["retry_hint_template"]).format(reason=retry_reason)})

    messages.append({"role": "user", "content": user_turn.content})
    return GenerationPrompt(messages=messages)
