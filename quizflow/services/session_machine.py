"""
Quiz session state machine

    idle -> loading -> ready -> answering -> completingPreview
         -> {awaitingAuth | submitting} -> submitted

``error`` is reachable from loading and submitting; ``reset()`` returns to
idle from anywhere. Operations run one at a time on a single event loop.
Async calls (fetch, submit) coalesce re-entrant callers onto the in-flight
future and drop responses whose generation no longer matches.
"""
import asyncio
import logging
import time
from enum import Enum
from typing import Any, Iterable, List, Optional, Tuple, Union
from uuid import uuid4

from quizflow.errors import InvalidTransitionError, LoadFailure, SubmissionFailure, ValidationFailure
from quizflow.schemas.quiz import Question, QuizType
from quizflow.schemas.result import Answer, AuthRedirectSnapshot, Result, ResultSource, SubmissionPayload
from quizflow.services.answer_store import AnswerStore, answer_key
from quizflow.services.correctness_service import correctness_service
from quizflow.services.quiz_service import parse_questions
from quizflow.services.results_service import results_service, round_half_up
from quizflow.services.session_recovery import SessionRecovery

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ANSWERING = "answering"
    COMPLETING_PREVIEW = "completingPreview"
    AWAITING_AUTH = "awaitingAuth"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    ERROR = "error"


# States in which the user has finished answering
COMPLETED_STATES = (
    SessionStatus.COMPLETING_PREVIEW,
    SessionStatus.AWAITING_AUTH,
    SessionStatus.SUBMITTING,
    SessionStatus.SUBMITTED,
)

# States in which an auth-redirect snapshot may be applied
RESTORABLE_STATES = (
    SessionStatus.READY,
    SessionStatus.ANSWERING,
    SessionStatus.COMPLETING_PREVIEW,
    SessionStatus.AWAITING_AUTH,
)


class SessionStateMachine:
    """
    One quiz attempt.

    Collaborators are duck-typed:
        quiz_source.fetch_quiz(slug, quiz_type) -> QuizPayload   (async)
        submission_backend.submit(payload) -> Result              (async)
        storage: key-value store for the recovery handle
        auth_bridge: AuthRedirectBridge, used to discard snapshots on reset
    """

    def __init__(
        self,
        quiz_source=None,
        submission_backend=None,
        storage=None,
        auth_bridge=None,
        session_id: Optional[str] = None,
        client_id: Optional[str] = None,
    ):
        self.session_id = session_id or uuid4().hex
        # Scopes the recovery handle and auth-redirect snapshot to one client
        self.client_id = client_id
        self.quiz_source = quiz_source
        self.submission_backend = submission_backend
        self.storage = storage
        self.auth_bridge = auth_bridge

        # Bumped on every reset; async responses from older generations are dropped
        self.generation = 0

        self.answers = AnswerStore()
        self._clear()

    def _clear(self) -> None:
        self.quiz_slug: Optional[str] = None
        self.quiz_type: Optional[QuizType] = None
        self.quiz_title = ""
        self.quiz_id: Optional[str] = None
        self.questions: List[Question] = []
        self.answers.clear()
        self.answers.bind([])
        self.current_index = 0
        self.status = SessionStatus.IDLE
        self.pending_auth_required = False
        self.error: Optional[str] = None
        self.temp_result: Optional[Result] = None
        self.restored_result: Optional[Result] = None
        self.result: Optional[Result] = None
        self.recovery: Optional[SessionRecovery] = None
        self._error_origin: Optional[SessionStatus] = None
        self._last_fetch: Optional[Tuple[str, QuizType]] = None
        self._loading: Optional[asyncio.Future] = None
        self._submission: Optional[asyncio.Future] = None

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def is_loading(self) -> bool:
        return self.status == SessionStatus.LOADING

    @property
    def is_submitting(self) -> bool:
        return self.status == SessionStatus.SUBMITTING

    @property
    def is_complete(self) -> bool:
        return self.status in COMPLETED_STATES

    @property
    def has_error(self) -> bool:
        return self.status == SessionStatus.ERROR

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    @property
    def answered_count(self) -> int:
        return self.answers.count()

    @property
    def progress_percent(self) -> int:
        if not self.questions:
            return 0
        return round_half_up(100 * self.answered_count / len(self.questions))

    @property
    def is_last_question(self) -> bool:
        return bool(self.questions) and self.current_index >= len(self.questions) - 1

    @property
    def can_submit(self) -> bool:
        return self.status in (SessionStatus.COMPLETING_PREVIEW, SessionStatus.AWAITING_AUTH)

    @property
    def error_origin(self) -> Optional[SessionStatus]:
        """State that failed into ``error`` (loading or submitting)"""
        return self._error_origin if self.has_error else None

    @property
    def failed_submission(self) -> bool:
        """In ``error`` after a submission failed; the preview is still held"""
        return self.error_origin == SessionStatus.SUBMITTING

    @property
    def _holds_attempt(self) -> bool:
        return self.status not in (SessionStatus.IDLE, SessionStatus.ERROR) or self.failed_submission

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(
        self,
        quiz_slug: str,
        quiz_type: Union[QuizType, str],
        questions: Iterable[Any],
        title: str = "",
        quiz_id: Optional[str] = None,
    ) -> None:
        """
        Start an attempt with an already fetched question list

        Loading the slug of the live attempt again keeps that attempt as is,
        including one whose submission failed.
        """
        if self._holds_attempt:
            if quiz_slug == self.quiz_slug:
                logger.info(f"Session {self.session_id}: reusing live attempt for {quiz_slug}")
                return
            raise InvalidTransitionError("load", self.status.value)

        self._populate(quiz_slug, QuizType(quiz_type), questions, title, quiz_id)

    async def fetch(self, quiz_slug: str, quiz_type: Union[QuizType, str]) -> bool:
        """
        Load a quiz through the quiz source

        Returns:
            True once the session is ready or already holds an attempt at
            this quiz, False if loading failed or the response was
            discarded by a reset
        """
        if self.status == SessionStatus.LOADING and self._loading is not None:
            return await asyncio.shield(self._loading)
        if self._holds_attempt:
            if quiz_slug == self.quiz_slug:
                logger.info(f"Session {self.session_id}: reusing live attempt for {quiz_slug}")
                return True
            raise InvalidTransitionError("load", self.status.value)

        quiz_type = QuizType(quiz_type)
        self._last_fetch = (quiz_slug, quiz_type)
        self.error = None
        self._set_status(SessionStatus.LOADING)
        self._loading = asyncio.ensure_future(self._fetch(self.generation, quiz_slug, quiz_type))
        return await asyncio.shield(self._loading)

    async def _fetch(self, generation: int, quiz_slug: str, quiz_type: QuizType) -> bool:
        failure = None
        payload = None
        try:
            if self.quiz_source is None:
                raise LoadFailure("No quiz source configured")
            payload = await self.quiz_source.fetch_quiz(quiz_slug, quiz_type)
        except LoadFailure as e:
            failure = e.message
        except Exception as e:
            logger.error(f"Quiz source error for {quiz_slug}: {str(e)}", exc_info=True)
            failure = f"Failed to load quiz: {str(e)}"

        if generation != self.generation:
            logger.info(f"Session {self.session_id}: discarding stale load of {quiz_slug}")
            return False

        self._loading = None
        if failure:
            self._fail(failure, SessionStatus.LOADING)
            return False

        self._populate(
            payload.slug or quiz_slug,
            payload.quiz_type or quiz_type,
            payload.questions,
            payload.title,
            payload.quiz_id,
        )
        return True

    def _populate(
        self,
        quiz_slug: str,
        quiz_type: QuizType,
        questions: Iterable[Any],
        title: str,
        quiz_id: Optional[str],
    ) -> None:
        self.quiz_slug = quiz_slug
        self.quiz_type = quiz_type
        self.quiz_title = title or ""
        self.quiz_id = quiz_id
        self.questions = parse_questions(questions, default_type=quiz_type)
        self.answers.clear()
        self.answers.bind(self.questions)
        self.current_index = 0
        self.pending_auth_required = False
        self.error = None
        self._error_origin = None
        self.temp_result = None
        self.restored_result = None
        self.result = None
        self._set_status(SessionStatus.READY)

        if self.storage is not None:
            self.recovery = SessionRecovery(self.storage, quiz_slug, client_id=self.client_id)
            self.recovery.persist_handle(self.session_id)

        logger.info(
            f"Session {self.session_id}: loaded {quiz_slug} "
            f"({quiz_type.value}, {len(self.questions)} questions)"
        )

    # ------------------------------------------------------------------
    # Answering
    # ------------------------------------------------------------------

    def answer(
        self,
        question_id: Any,
        raw_value: Any,
        time_spent_seconds: int = 0,
        hints_used: Optional[int] = None,
    ) -> Optional[Answer]:
        """
        Record the answer to a question, replacing any earlier one

        Returns:
            The stored answer, or None if the question id is unknown
        """
        self._require("answer", SessionStatus.READY, SessionStatus.ANSWERING)

        question = self._find_question(question_id)
        if question is None:
            failure = ValidationFailure(f"Unknown question id {question_id!r} for {self.quiz_slug}")
            logger.warning(f"Session {self.session_id}: {failure.message}; answer skipped")
            return None

        resolution = correctness_service.resolve(question, raw_value, hints_used)
        answer = Answer(
            question_id=question.id,
            type=question.type,
            raw_value=resolution.normalized_user_answer,
            is_correct=resolution.is_correct,
            similarity=resolution.similarity,
            hints_used=hints_used,
            time_spent_seconds=max(0, int(time_spent_seconds or 0)),
            answered_at_epoch_ms=int(time.time() * 1000),
        )
        self.answers.put(answer)
        self._set_status(SessionStatus.ANSWERING)
        return answer

    def advance(self) -> Optional[Result]:
        """
        Move to the next question

        Returns:
            The preview result when advancing past the last question
        """
        self._require("advance", SessionStatus.ANSWERING)

        if self.current_index < len(self.questions) - 1:
            self.current_index += 1
            return None
        return self.complete()

    def complete(self) -> Result:
        """Finish answering and build the preview result"""
        self._require("complete", SessionStatus.READY, SessionStatus.ANSWERING)

        self.current_index = len(self.questions)
        self.temp_result = self._aggregate()
        self._set_status(SessionStatus.COMPLETING_PREVIEW)
        return self.temp_result

    def require_auth(self) -> Optional[Result]:
        """Park the finished attempt until the user has signed in"""
        self._require("require auth", SessionStatus.COMPLETING_PREVIEW)

        self.pending_auth_required = True
        self._set_status(SessionStatus.AWAITING_AUTH)
        return self.temp_result

    def restore(self, snapshot: AuthRedirectSnapshot) -> bool:
        """
        Re-apply state carried across a sign-in redirect

        Returns:
            False if the snapshot belongs to another quiz or the session is
            not loaded; True once the session is awaiting submission
        """
        if self.status not in RESTORABLE_STATES:
            logger.warning(f"Session {self.session_id}: cannot restore while {self.status.value}")
            return False
        if snapshot.quiz_slug != self.quiz_slug:
            logger.warning(
                f"Session {self.session_id}: snapshot for {snapshot.quiz_slug} "
                f"does not match {self.quiz_slug}"
            )
            return False

        self.answers.clear()
        skipped = 0
        for answer in snapshot.answers:
            question = self._find_question(answer.question_id)
            if question is None:
                skipped += 1
                logger.warning(
                    f"Session {self.session_id}: snapshot answer for unknown "
                    f"question {answer.question_id!r} skipped"
                )
                continue
            self.answers.put(answer.model_copy(update={"question_id": question.id}))

        self.current_index = min(snapshot.current_index, len(self.questions))

        if snapshot.temp_result is not None and not skipped:
            self.temp_result = snapshot.temp_result
        else:
            self.temp_result = self._aggregate()
        self.restored_result = snapshot.temp_result

        self.pending_auth_required = True
        self._set_status(SessionStatus.AWAITING_AUTH)
        logger.info(f"Session {self.session_id}: restored {self.answers.count()} answers for {self.quiz_slug}")
        return True

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def build_submission(self, user_id: Optional[str] = None) -> SubmissionPayload:
        answers = self.answers.all()
        return SubmissionPayload(
            slug=self.quiz_slug,
            quiz_id=self.quiz_id or self.quiz_slug,
            quiz_type=self.quiz_type,
            answers=answers,
            time_taken_seconds=sum(a.time_spent_seconds for a in answers),
            user_id=user_id,
        )

    async def submit(self, user_id: Optional[str] = None) -> Optional[Result]:
        """
        Send the finished attempt to the submission backend, at most once

        Concurrent callers share the in-flight submission; after success the
        stored result is returned without contacting the backend again.

        Returns:
            Canonical result, or None if submission failed or was discarded
        """
        if self.status == SessionStatus.SUBMITTED:
            return self.result
        if self.status == SessionStatus.SUBMITTING and self._submission is not None:
            return await asyncio.shield(self._submission)
        self._require("submit", SessionStatus.COMPLETING_PREVIEW, SessionStatus.AWAITING_AUTH)

        if self.temp_result is None:
            self.temp_result = self._aggregate()

        payload = self.build_submission(user_id)
        self.error = None
        self._set_status(SessionStatus.SUBMITTING)
        self._submission = asyncio.ensure_future(self._send(self.generation, payload))
        return await asyncio.shield(self._submission)

    async def _send(self, generation: int, payload: SubmissionPayload) -> Optional[Result]:
        failure = None
        result = None
        try:
            if self.submission_backend is None:
                raise SubmissionFailure("No submission backend configured")
            result = await self.submission_backend.submit(payload)
        except SubmissionFailure as e:
            failure = e.message
        except Exception as e:
            logger.error(f"Submission error for {payload.slug}: {str(e)}", exc_info=True)
            failure = f"Failed to submit quiz: {str(e)}"

        if generation != self.generation:
            logger.info(f"Session {self.session_id}: discarding stale submission of {payload.slug}")
            return None

        self._submission = None
        if failure:
            # temp_result is kept so a retry resubmits the same scores
            self._fail(failure, SessionStatus.SUBMITTING)
            return None

        self.result = result
        self.pending_auth_required = False
        self._set_status(SessionStatus.SUBMITTED)
        if self.recovery is not None:
            self.recovery.clear()

        logger.info(
            f"Session {self.session_id}: submitted {payload.slug} "
            f"({result.score}/{result.max_score})"
        )
        return result

    async def retry(self, user_id: Optional[str] = None) -> Optional[Result]:
        """
        Recover from the error state

        Resubmits the retained preview after a failed submission, or repeats
        the last fetch after a failed load.
        """
        self._require("retry", SessionStatus.ERROR)

        if self._error_origin == SessionStatus.SUBMITTING and self.temp_result is not None:
            self.error = None
            self._set_status(
                SessionStatus.AWAITING_AUTH if self.pending_auth_required else SessionStatus.COMPLETING_PREVIEW
            )
            return await self.submit(user_id)

        if self._last_fetch is not None:
            await self.fetch(*self._last_fetch)
            return None

        raise InvalidTransitionError("retry without a previous load", self.status.value)

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Drop the attempt and return to idle; in-flight responses are discarded"""
        self.generation += 1
        if self.recovery is not None:
            self.recovery.clear()
        if self.auth_bridge is not None and self.quiz_slug:
            self.auth_bridge.discard(self.quiz_slug, self.client_id)

        previous = self.status
        self._clear()
        logger.info(f"Session {self.session_id}: reset from {previous.value} (generation {self.generation})")

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def current_result(self, fetched: Optional[Result] = None) -> Optional[Tuple[Result, ResultSource]]:
        """
        Best available result: submitted or fetched from the backend first,
        then the in-memory preview, then the one restored from a snapshot
        """
        return results_service.reconcile(
            computed=self.temp_result,
            restored=self.restored_result,
            fetched=fetched or self.result,
        )

    def display_percentage(self, result: Optional[Result] = None) -> int:
        result = result or self.result or self.temp_result
        if result is None:
            return 0
        return results_service.display_percentage(result, self.answers.all())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _aggregate(self) -> Result:
        return results_service.aggregate(
            self.questions,
            self.answers.all(),
            self.quiz_type,
            self.quiz_title,
            self.quiz_slug,
        )

    def _find_question(self, question_id: Any) -> Optional[Question]:
        key = answer_key(question_id)
        for question in self.questions:
            if answer_key(question.id) == key:
                return question
        return None

    def _require(self, operation: str, *allowed: SessionStatus) -> None:
        if self.status not in allowed:
            raise InvalidTransitionError(operation, self.status.value)

    def _fail(self, message: str, origin: SessionStatus) -> None:
        self.error = message
        self._error_origin = origin
        self._set_status(SessionStatus.ERROR)
        logger.error(f"Session {self.session_id}: {message}")

    def _set_status(self, status: SessionStatus) -> None:
        if status != self.status:
            logger.debug(f"Session {self.session_id}: {self.status.value} -> {status.value}")
        self.status = status
