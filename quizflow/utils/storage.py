"""
Key-value storage for session handles and auth-redirect snapshots

Two logical namespaces, each scoped to one client (browser) when a client
key is given:
    session:[<client>:]<quizSlug>       -> session recovery handle
    authRedirect:[<client>:]<quizSlug>  -> auth-redirect snapshot (single consume)
"""
import redis
import json
import logging
import threading
import time
from typing import Any, Dict, Optional, Tuple

from quizflow.config import settings

logger = logging.getLogger(__name__)


def _scoped(namespace: str, quiz_slug: str, client_id: Optional[str]) -> str:
    if client_id:
        return f"{namespace}:{client_id}:{quiz_slug}"
    return f"{namespace}:{quiz_slug}"


def session_key(quiz_slug: str, client_id: Optional[str] = None) -> str:
    return _scoped("session", quiz_slug, client_id)


def auth_redirect_key(quiz_slug: str, client_id: Optional[str] = None) -> str:
    return _scoped("authRedirect", quiz_slug, client_id)


class RedisStorage:
    """Redis-backed storage; values are JSON documents with a TTL"""

    def __init__(self, url: str):
        self.redis_client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5
        )
        # Test connection
        self.redis_client.ping()
        logger.info("Redis connection established")

    def get(self, key: str) -> Optional[Any]:
        """
        Get value from storage

        Args:
            key: Storage key

        Returns:
            Stored value or None
        """
        try:
            value = self.redis_client.get(key)
            if value is None:
                logger.debug(f"Storage miss: {key}")
                return None
            return json.loads(value)
        except (redis.RedisError, ValueError) as e:
            logger.error(f"Storage get error: {str(e)}")
            return None

    def set(self, key: str, value: Any, ttl: int) -> bool:
        """
        Set value in storage with a single write

        Args:
            key: Storage key
            value: Value to store (must be JSON serializable)
            ttl: Time to live in seconds

        Returns:
            Success status
        """
        try:
            serialized = json.dumps(value)
            self.redis_client.setex(key, ttl, serialized)
            logger.info(f"Storage set: {key} (TTL: {ttl}s)")
            return True
        except (redis.RedisError, TypeError, ValueError) as e:
            logger.error(f"Storage set error: {str(e)}")
            return False

    def pop(self, key: str) -> Optional[Any]:
        """Read and delete a key in one transaction"""
        try:
            with self.redis_client.pipeline() as pipe:
                pipe.get(key)
                pipe.delete(key)
                value, _ = pipe.execute()
            if value is None:
                return None
            logger.info(f"Storage pop: {key}")
            return json.loads(value)
        except (redis.RedisError, ValueError) as e:
            logger.error(f"Storage pop error: {str(e)}")
            return None

    def delete(self, key: str) -> bool:
        """Delete key from storage"""
        try:
            self.redis_client.delete(key)
            logger.info(f"Storage delete: {key}")
            return True
        except redis.RedisError as e:
            logger.error(f"Storage delete error: {str(e)}")
            return False


class MemoryStorage:
    """
    In-process storage with the same contract as RedisStorage.
    Values are kept serialized so readers never share objects with writers.
    """

    def __init__(self):
        self._data: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        serialized, expires_at = entry
        if expires_at <= time.monotonic():
            del self._data[key]
            return None
        return serialized

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            serialized = self._live(key)
        return json.loads(serialized) if serialized is not None else None

    def set(self, key: str, value: Any, ttl: int) -> bool:
        try:
            serialized = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error(f"Storage set error: {str(e)}")
            return False
        with self._lock:
            self._data[key] = (serialized, time.monotonic() + ttl)
        logger.debug(f"Storage set: {key} (TTL: {ttl}s)")
        return True

    def pop(self, key: str) -> Optional[Any]:
        with self._lock:
            serialized = self._live(key)
            self._data.pop(key, None)
        return json.loads(serialized) if serialized is not None else None

    def delete(self, key: str) -> bool:
        with self._lock:
            self._data.pop(key, None)
        return True


_storage = None


def get_storage():
    """Shared storage instance; falls back to memory when Redis is unreachable"""
    global _storage
    if _storage is None:
        if settings.STORAGE_BACKEND == "redis":
            try:
                _storage = RedisStorage(settings.REDIS_URL)
            except redis.RedisError as e:
                logger.warning(f"Redis connection failed: {str(e)}. Using in-memory storage.")
                _storage = MemoryStorage()
        else:
            _storage = MemoryStorage()
    return _storage


def set_storage(storage) -> None:
    """Replace the shared storage instance"""
    global _storage
    _storage = storage
