from .manager import PersonalityConfig, PersonalityManager
from .traits import PersonalityRules, load_personality_rules

__all__ = ["PersonalityConfig", "PersonalityManager", "PersonalityRules", "load_personality_rules"]
