from .json_loader import clear_lexicon_cache, freeze_words, load_lexicon

__all__ = ["clear_lexicon_cache", "freeze_words", "load_lexicon"]
