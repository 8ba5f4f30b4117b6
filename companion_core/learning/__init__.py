from .interests import InterestLearner, InterestLexicon, InterestSummary, load_interest_lexicon

__all__ = ["InterestLearner", "InterestLexicon", "InterestSummary", "load_interest_lexicon"]
