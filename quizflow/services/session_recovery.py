"""
Session recovery handle: survives an accidental reload mid-attempt
"""
import logging
from typing import Optional

from quizflow.config import settings
from quizflow.utils.storage import session_key

logger = logging.getLogger(__name__)


class SessionRecovery:
    """Stores the live session id for one client's attempt at one quiz"""

    def __init__(self, storage, quiz_slug: str, ttl: Optional[int] = None, client_id: Optional[str] = None):
        self.storage = storage
        self.quiz_slug = quiz_slug
        self.client_id = client_id
        self.ttl = ttl or settings.SESSION_HANDLE_TTL

    @property
    def key(self) -> str:
        return session_key(self.quiz_slug, self.client_id)

    def persist_handle(self, session_id: str) -> None:
        self.storage.set(self.key, session_id, self.ttl)

    def load_handle(self) -> Optional[str]:
        handle = self.storage.get(self.key)
        if handle is None:
            return None
        if not isinstance(handle, str) or not handle:
            logger.warning(f"Discarding malformed session handle for {self.quiz_slug}")
            self.clear()
            return None
        return handle

    def clear(self) -> None:
        self.storage.delete(self.key)
