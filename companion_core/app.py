from __future__ import annotations

import asyncio
import contextlib
import logging
import sys

from .config import Settings
from .conversation.handler import AnalyzerProfile
from .conversation.registry import ConversationRegistry
from .errors import CompanionError
from .services.gemini_client import GeminiClient
from .storage.factory import build_store

logger = logging.getLogger("companion_core")

DEFAULT_CONVERSATION_ID = "console"
QUIT_COMMANDS = {"/quit", "/exit"}


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def build_registry(settings: Settings, generator: GeminiClient | None = None) -> ConversationRegistry:
    store = build_store(settings)
    return ConversationRegistry(
        store,
        profile=AnalyzerProfile.from_settings(settings),
        generator=generator,
        generation_timeout=settings.generation_timeout_seconds,
        max_attempts=settings.generation_max_attempts,
    )


async def _read_line(prompt: str) -> str | None:
    try:
        return await asyncio.to_thread(input, prompt)
    except EOFError:
        return None


async def _show(registry: ConversationRegistry, conversation_id: str, command: str) -> bool:
    session = await registry.get(conversation_id)
    if command == "/state":
        snapshot = await session.get_conversation_state()
        print(snapshot.context_summary)
        print(snapshot.personality_snapshot)
        print(snapshot.memory_snapshot)
    elif command == "/topics":
        summary = await session.get_topic_summary()
        print(f"current: {summary.current_topic or '-'}")
        for stat in summary.topic_stats:
            print(f"  {stat['topic']}: seen {stat['frequency']}x")
    elif command == "/interests":
        summary = await session.get_interest_summary()
        for item in summary.top_interests:
            print(f"  {item['topic']}: {item['strength']:.2f}")
        if summary.suggested_topics:
            print(f"try: {', '.join(summary.suggested_topics)}")
    elif command == "/next":
        action = await session.suggest_next_action()
        print(f"{action.action}: {action.explanation}")
    else:
        return False
    return True


async def _chat_loop(settings: Settings, conversation_id: str) -> None:
    generator = GeminiClient.from_settings(settings) if settings.generation_enabled else None
    if generator is not None:
        await generator.start()
    else:
        logger.warning("GEMINI_API_KEY is not set; replies come from the built-in templates.")

    registry = build_registry(settings, generator)
    await registry.store.init()
    logger.info("Conversation store ready (backend=%s)", registry.store.backend_name)
    try:
        while True:
            line = await _read_line("you> ")
            if line is None:
                break
            text = line.strip()
            if not text:
                continue
            if text in QUIT_COMMANDS:
                break
            if text.startswith("/") and await _show(registry, conversation_id, text):
                continue
            try:
                outcome = await registry.handle_message(conversation_id, text)
            except CompanionError as exc:
                logger.error("Turn failed: %s", exc)
                continue
            if outcome.blocked:
                print(f"[blocked] {', '.join(outcome.verdict.warnings) or 'message rejected'}")
                continue
            if outcome.reply is not None:
                print(f"companion> {outcome.reply.content}")
            for item in outcome.recommendations:
                print(f"  suggested media: {item.item.caption or item.item.id} ({item.score:.2f})")
    finally:
        await registry.close()
        if generator is not None:
            await generator.close()


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    settings.validate()
    conversation_id = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_CONVERSATION_ID
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_chat_loop(settings, conversation_id))
    logger.info("Shutdown requested, exiting.")


if __name__ == "__main__":
    main()
