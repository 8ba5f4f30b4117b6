from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from companion_core.errors import ValidationError  # noqa: E402
from companion_core.moderation.moderator import ContentModerator, ModerationConfig  # noqa: E402


def _moderator(**overrides: object) -> ContentModerator:
    return ContentModerator(ModerationConfig.from_lexicon(**overrides))


def test_banned_word_is_masked_and_blocks() -> None:
    moderator = _moderator(banned_words=["xyz123"])

    verdict = moderator.moderate_content("this is xyz123 test")

    assert verdict.is_allowed is False
    assert verdict.filtered_content == "this is ****** test"
    assert verdict.detected_issues.banned_words == ["xyz123"]
    assert verdict.moderation_score == pytest.approx(0.02)


def test_overlong_message_is_blocked_regardless_of_content() -> None:
    moderator = _moderator(max_message_length=20)

    for text in ("a" * 21, "what a lovely day to walk outside", "x" * 500):
        verdict = moderator.moderate_content(text)
        assert verdict.is_allowed is False
        assert verdict.detected_issues.length is True
        assert "Message exceeds maximum length of 20 characters" in verdict.warnings


def test_sensitive_topic_only_warns() -> None:
    moderator = _moderator()

    verdict = moderator.moderate_content("what do you think about politics")

    assert verdict.is_allowed is True
    assert verdict.detected_issues.sensitive_topics is True
    assert verdict.warnings == ["Message contains sensitive topics: politics"]
    assert verdict.moderation_score == pytest.approx(0.2)


def test_toxicity_above_threshold_blocks() -> None:
    moderator = _moderator(toxicity_threshold=0.5)

    verdict = moderator.moderate_content("stupid idiot")

    assert verdict.is_allowed is False
    assert verdict.detected_issues.toxicity is True


def test_profanity_above_threshold_only_warns() -> None:
    moderator = _moderator(warning_words=["darn"], profanity_threshold=0.3)

    verdict = moderator.moderate_content("darn it")

    assert verdict.is_allowed is True
    assert verdict.detected_issues.profanity is True
    assert "Message contains potentially inappropriate language" in verdict.warnings


def test_blocked_messages_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    moderator = _moderator(banned_words=["xyz123"])

    with caplog.at_level(logging.INFO, logger="companion_core.moderation"):
        moderator.moderate_content("xyz123")

    assert "Moderation blocked message" in caplog.text


def test_extend_rules_and_update_config() -> None:
    moderator = _moderator()
    moderator.extend_rules(banned=["Zork"], sensitive=["gambling"])

    assert moderator.moderate_content("zork").is_allowed is False
    assert moderator.moderate_content("gambling tips").detected_issues.sensitive_topics is True

    moderator.update_config(max_message_length=5)
    assert moderator.moderate_content("longer text").detected_issues.length is True
    with pytest.raises(ValidationError):
        moderator.update_config(unknown_field=1)


def test_stats_aggregate_history() -> None:
    moderator = _moderator(banned_words=["xyz123"])
    moderator.moderate_content("hello friend")
    moderator.moderate_content("xyz123 here")

    stats = moderator.get_moderation_stats()

    assert stats.total_moderated == 2
    assert stats.blocked_count == 1
    assert stats.common_issues == {"banned_words": 1}
