from .manager import ContextConfig, ContextManager, calculate_topic_distance, load_context_topics

__all__ = ["ContextConfig", "ContextManager", "calculate_topic_distance", "load_context_topics"]
