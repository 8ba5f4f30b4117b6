from .gemini_client import GeminiClient
from .rate_limiter import SlidingWindowRateLimiter

__all__ = ["GeminiClient", "SlidingWindowRateLimiter"]
