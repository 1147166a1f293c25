"""
Auth-redirect bridge
Carries an in-progress attempt across a redirect to the sign-in provider.
"""
import logging
from typing import Optional
from urllib.parse import urlencode

from pydantic import ValidationError

from quizflow.config import settings
from quizflow.errors import RestoreFailure
from quizflow.schemas.result import AuthRedirectSnapshot, Result
from quizflow.utils.storage import auth_redirect_key

logger = logging.getLogger(__name__)


class CallbackUrlSignIn:
    """Sign-in provider that is handed a return URL as ``callbackUrl``"""

    def __init__(self, sign_in_url: Optional[str] = None):
        self.sign_in_url = sign_in_url or settings.SIGN_IN_URL

    def redirect_url(self, return_path: str) -> str:
        separator = "&" if "?" in self.sign_in_url else "?"
        return f"{self.sign_in_url}{separator}{urlencode({'callbackUrl': return_path})}"


class AuthRedirectBridge:
    """Persists a session snapshot before sign-in and hands it back afterwards"""

    def __init__(self, storage, sign_in=None, ttl: Optional[int] = None):
        self.storage = storage
        self.sign_in = sign_in or CallbackUrlSignIn()
        self.ttl = ttl or settings.AUTH_REDIRECT_TTL

    def save_for_redirect(self, session, temp_result: Optional[Result], return_path: str) -> Optional[str]:
        """
        Snapshot the session and hand off to the sign-in provider

        Args:
            session: SessionStateMachine awaiting authentication
            temp_result: Preview result computed before sign-in
            return_path: Where the provider should send the user back

        Returns:
            Sign-in redirect URL, or None if the snapshot could not be
            stored (the user must stay on the preview)
        """
        snapshot = AuthRedirectSnapshot(
            quiz_slug=session.quiz_slug,
            quiz_type=session.quiz_type,
            answers=session.answers.all(),
            current_index=session.current_index,
            temp_result=temp_result,
            return_path=return_path,
        )
        key = auth_redirect_key(snapshot.quiz_slug, session.client_id)

        # One write, before navigation: a half-written snapshot is never readable
        if not self.storage.set(key, snapshot.model_dump(mode="json"), self.ttl):
            logger.error(f"Failed to persist auth-redirect snapshot for {snapshot.quiz_slug}; not redirecting")
            return None

        logger.info(
            f"Auth-redirect snapshot saved: {snapshot.quiz_slug} "
            f"({len(snapshot.answers)} answers, return to {return_path})"
        )
        return self.sign_in.redirect_url(return_path)

    def restore_after_redirect(
        self, quiz_slug: str, client_id: Optional[str] = None
    ) -> Optional[AuthRedirectSnapshot]:
        """
        Consume the snapshot a client saved for a quiz

        Returns:
            The snapshot the first time it is read, None afterwards or when
            it is missing or corrupt
        """
        try:
            return self._consume(quiz_slug, client_id)
        except RestoreFailure as e:
            logger.warning(f"Auth-redirect restore skipped: {e.message}")
            return None

    def discard(self, quiz_slug: str, client_id: Optional[str] = None) -> None:
        self.storage.delete(auth_redirect_key(quiz_slug, client_id))

    def _consume(self, quiz_slug: str, client_id: Optional[str]) -> AuthRedirectSnapshot:
        data = self.storage.pop(auth_redirect_key(quiz_slug, client_id))
        if data is None:
            raise RestoreFailure(f"No auth-redirect snapshot for {quiz_slug}")

        try:
            snapshot = AuthRedirectSnapshot.model_validate(data)
        except ValidationError as e:
            raise RestoreFailure(f"Corrupt auth-redirect snapshot for {quiz_slug}: {e.error_count()} errors")

        if snapshot.quiz_slug != quiz_slug:
            raise RestoreFailure(f"Snapshot for {snapshot.quiz_slug} stored under {quiz_slug}")

        logger.info(f"Auth-redirect snapshot restored: {quiz_slug}")
        return snapshot
