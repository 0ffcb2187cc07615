"""
Hybrid in-memory + Redis token blacklist.
Logged-out tokens are remembered until their own expiry so they cannot be replayed.
"""

import hashlib
import logging
import time
from threading import Lock
from typing import Optional

import redis

from .config import REDIS_URL

logger = logging.getLogger(__name__)

KEY_PREFIX = "token_blacklist:"
MEMORY_CACHE_CLEANUP_INTERVAL = 60
REDIS_RETRY_INTERVAL = 60

redis_client: Optional[redis.Redis] = None
# No reconnect attempts before this epoch after a failure
redis_retry_after = 0.0

# Format: {token_digest: expires_at_epoch}
memory_blacklist: dict[str, int] = {}
blacklist_lock = Lock()
last_cleanup_time = 0


def get_redis_client() -> Optional[redis.Redis]:
    """
    Get or create the Redis client.
    Returns None when REDIS_URL is not configured. After a failed connection
    the client is not rebuilt for REDIS_RETRY_INTERVAL seconds.
    """
    global redis_client

    if not REDIS_URL:
        return None

    if redis_client is None:
        if time.time() < redis_retry_after:
            raise redis.ConnectionError("Redis unavailable, waiting before reconnecting")

        if "@" in REDIS_URL:
            url_parts = REDIS_URL.split("@")
            protocol = url_parts[0].split(":")[0]
            masked_url = f"{protocol}:****@{url_parts[1]}"
        else:
            masked_url = "****"
        logger.info(f"📡 Using Redis URL connection for token blacklist: {masked_url}")

        try:
            client = redis.from_url(
                REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
            client.ping()
            redis_client = client
            logger.info("Redis connected successfully via URL")
        except Exception as e:
            logger.error(f"❌ Failed to connect to Redis via URL: {str(e)}")
            logger.error("⚠️ Token blacklist will use process memory only")
            _mark_redis_down()
            raise

    return redis_client


def _mark_redis_down():
    """Drop the client and hold off reconnecting"""
    global redis_client, redis_retry_after
    redis_client = None
    redis_retry_after = time.time() + REDIS_RETRY_INTERVAL


def _digest(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def cleanup_expired_tokens():
    """Remove expired entries from the memory blacklist"""
    global last_cleanup_time
    current_time = int(time.time())

    if current_time - last_cleanup_time < MEMORY_CACHE_CLEANUP_INTERVAL:
        return

    with blacklist_lock:
        expired = [k for k, expires_at in memory_blacklist.items() if current_time >= expires_at]
        for k in expired:
            del memory_blacklist[k]

        if expired:
            logger.debug(f"🧹 Cleaned up {len(expired)} expired blacklisted tokens")

    last_cleanup_time = current_time


def blacklist_token(token: str, expires_at: int) -> None:
    """Invalidate a token until its expiry timestamp"""
    digest = _digest(token)
    ttl = max(1, expires_at - int(time.time()))

    with blacklist_lock:
        memory_blacklist[digest] = expires_at

    try:
        client = get_redis_client()
        if client is not None:
            client.set(f"{KEY_PREFIX}{digest}", "1", ex=ttl)
    except (redis.ConnectionError, redis.TimeoutError) as e:
        logger.warning(f"⚠️ Redis unreachable, blacklisted token kept in memory only: {e}")
        if redis_client is not None:
            _mark_redis_down()
    except Exception as e:
        logger.warning(f"⚠️ Failed to store blacklisted token in Redis, memory only: {e}")

    logger.info(f"🚫 Token blacklisted: {token[:10]}...")


def is_token_blacklisted(token: str) -> bool:
    cleanup_expired_tokens()
    digest = _digest(token)

    with blacklist_lock:
        expires_at = memory_blacklist.get(digest)
    if expires_at and expires_at > int(time.time()):
        return True

    try:
        client = get_redis_client()
        if client is not None:
            return bool(client.exists(f"{KEY_PREFIX}{digest}"))
    except (redis.ConnectionError, redis.TimeoutError) as e:
        logger.warning(f"⚠️ Redis unreachable, checking token blacklist in memory only: {e}")
        if redis_client is not None:
            _mark_redis_down()
    except Exception as e:
        logger.warning(f"⚠️ Failed to read token blacklist from Redis: {e}")
    return False


def get_blacklist_size() -> int:
    with blacklist_lock:
        return len(memory_blacklist)


def clear_blacklist() -> None:
    with blacklist_lock:
        size = len(memory_blacklist)
        memory_blacklist.clear()
    logger.info(f"🗑️ Cleared {size} tokens from blacklist")
