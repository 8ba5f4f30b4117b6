from .manager import MemoryConfig, MemoryLexicon, MemoryManager, load_memory_lexicon

__all__ = ["MemoryConfig", "MemoryLexicon", "MemoryManager", "load_memory_lexicon"]
