from .analyzer import ContentAnalyzer, MediaCategories, load_media_categories
from .recommender import MediaRecommender

__all__ = ["ContentAnalyzer", "MediaCategories", "MediaRecommender", "load_media_categories"]
