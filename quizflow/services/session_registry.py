"""
Server-side registry of live quiz sessions
"""
import logging
import threading
import time
from typing import Dict, Optional

from quizflow.config import settings
from quizflow.services.auth_bridge import AuthRedirectBridge
from quizflow.services.quiz_service import DatabaseQuizSource
from quizflow.services.session_machine import SessionStateMachine
from quizflow.services.session_recovery import SessionRecovery
from quizflow.services.submission_service import DatabaseSubmissionBackend
from quizflow.utils.storage import get_storage

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Owns one state machine per live attempt.

    Each client (browser) identifies itself with a client key. The recovery
    handle under ``session:<client>:<slug>`` lets a client that reloaded
    mid-attempt get its own session back instead of a second one; other
    clients on the same quiz never see it.

    Sessions untouched for longer than ``ttl`` seconds are evicted, matching
    the lifetime of their recovery handle.
    """

    def __init__(self, storage=None, quiz_source=None, submission_backend=None, sign_in=None, ttl=None):
        self._storage = storage
        self.quiz_source = quiz_source or DatabaseQuizSource()
        self.submission_backend = submission_backend or DatabaseSubmissionBackend()
        self._sign_in = sign_in
        self.ttl = ttl if ttl is not None else settings.SESSION_HANDLE_TTL
        self._sessions: Dict[str, SessionStateMachine] = {}
        self._touched: Dict[str, float] = {}
        self._lock = threading.Lock()

    @property
    def storage(self):
        if self._storage is None:
            self._storage = get_storage()
        return self._storage

    @property
    def auth_bridge(self) -> AuthRedirectBridge:
        return AuthRedirectBridge(self.storage, sign_in=self._sign_in)

    def create(self, client_id: Optional[str] = None) -> SessionStateMachine:
        machine = SessionStateMachine(
            quiz_source=self.quiz_source,
            submission_backend=self.submission_backend,
            storage=self.storage,
            auth_bridge=self.auth_bridge,
            client_id=client_id,
        )
        with self._lock:
            self._prune()
            self._sessions[machine.session_id] = machine
            self._touched[machine.session_id] = time.monotonic()
        logger.info(f"Session created: {machine.session_id}")
        return machine

    def get(self, session_id: str) -> Optional[SessionStateMachine]:
        with self._lock:
            self._prune()
            machine = self._sessions.get(session_id)
            if machine is not None:
                self._touched[session_id] = time.monotonic()
            return machine

    def resume_or_create(self, quiz_slug: str, client_id: Optional[str] = None) -> SessionStateMachine:
        """This client's live session for a quiz, if its recovery handle still points at one"""
        handle = SessionRecovery(self.storage, quiz_slug, client_id=client_id).load_handle()
        if handle:
            machine = self.get(handle)
            if machine is not None and machine.quiz_slug == quiz_slug and machine.client_id == client_id:
                logger.info(f"Resuming session {handle} for {quiz_slug}")
                return machine
        return self.create(client_id)

    def discard(self, session_id: str) -> None:
        """Reset a session and forget it"""
        with self._lock:
            machine = self._sessions.pop(session_id, None)
            self._touched.pop(session_id, None)
        if machine is not None:
            machine.reset()
            logger.info(f"Session discarded: {session_id}")

    def _prune(self) -> None:
        now = time.monotonic()
        expired = [sid for sid, touched in self._touched.items() if now - touched >= self.ttl]
        for session_id in expired:
            self._sessions.pop(session_id, None)
            self._touched.pop(session_id, None)
        if expired:
            logger.info(f"Evicted {len(expired)} idle sessions")

    def __len__(self) -> int:
        return len(self._sessions)


# Global instance
session_registry = SessionRegistry()
