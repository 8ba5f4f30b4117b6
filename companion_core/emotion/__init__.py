from .analyzer import EmotionAnalyzer, EmotionLexicon, load_emotion_lexicon

__all__ = ["EmotionAnalyzer", "EmotionLexicon", "load_emotion_lexicon"]
