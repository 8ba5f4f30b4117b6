from .manager import TopicManager, TopicRules, TopicSummary, load_topic_rules

__all__ = ["TopicManager", "TopicRules", "TopicSummary", "load_topic_rules"]
