from .moderator import ContentModerator, ModerationConfig, ModerationStats

__all__ = ["ContentModerator", "ModerationConfig", "ModerationStats"]
