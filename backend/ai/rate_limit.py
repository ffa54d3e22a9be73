"""
Per-user sliding-window rate limit for AI calls, kept in the Django cache
"""
import logging
import math
import time

from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)

AI_RATE_LIMIT_KEY_PREFIX = 'ai_rate:'
AI_RATE_LIMIT_PER_MINUTE = getattr(settings, 'AI_RATE_LIMIT_PER_MINUTE', 15)
AI_RATE_LIMIT_WINDOW = getattr(settings, 'AI_RATE_LIMIT_WINDOW', 60)  # seconds


def get_rate_limit_cache_key(user_id) -> str:
    return f"{AI_RATE_LIMIT_KEY_PREFIX}{user_id}"


def check_rate_limit(user_id, limit=None, window=None, now=None):
    """
    Record a request for user_id if the window has room.

    Returns (allowed, retry_after_seconds, remaining).
    """
    limit = limit or AI_RATE_LIMIT_PER_MINUTE
    window = window or AI_RATE_LIMIT_WINDOW
    now = time.time() if now is None else now

    key = get_rate_limit_cache_key(user_id)
    timestamps = [ts for ts in cache.get(key, []) if ts > now - window]

    if len(timestamps) >= limit:
        retry_after = max(math.ceil(timestamps[0] + window - now), 1)
        logger.warning(f"AI rate limit reached for user {user_id} ({len(timestamps)}/{limit}), retry in {retry_after}s")
        cache.set(key, timestamps, window)
        return False, retry_after, 0

    timestamps.append(now)
    cache.set(key, timestamps, window)
    return True, 0, limit - len(timestamps)


def reset_rate_limit(user_id):
    cache.delete(get_rate_limit_cache_key(user_id))
