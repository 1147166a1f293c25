"""
Quiz session API endpoints
Drive server-side session state machines for clients that do not run the
engine themselves.
"""
from fastapi import APIRouter, HTTPException
from typing import Optional
import logging

from quizflow.schemas.quiz import QuizType
from quizflow.schemas.session import (
    AnswerRequest,
    AnswerResponse,
    AuthReturn,
    AuthReturnResponse,
    CompleteRequest,
    CompletionResponse,
    OptionView,
    QuestionView,
    ResultResponse,
    SessionStart,
    SessionView,
    SubmitRequest,
)
from quizflow.services.results_service import results_service
from quizflow.services.session_machine import SessionStateMachine, SessionStatus
from quizflow.services.session_registry import session_registry
from quizflow.services.similarity_service import similarity_service

router = APIRouter(prefix="/api/sessions", tags=["sessions"])
logger = logging.getLogger(__name__)


def session_view(machine: SessionStateMachine) -> SessionView:
    question = machine.current_question
    current = None
    if question is not None:
        current = QuestionView(
            id=question.id,
            prompt=question.prompt,
            type=question.type,
            options=[OptionView(id=o.id, text=o.text) for o in question.options],
            code_snippet=question.code_snippet,
            tags=list(question.tags),
        )

    return SessionView(
        session_id=machine.session_id,
        quiz_slug=machine.quiz_slug,
        quiz_type=machine.quiz_type,
        quiz_title=machine.quiz_title,
        status=machine.status.value,
        current_index=machine.current_index,
        total_questions=len(machine.questions),
        answered_count=machine.answered_count,
        progress_percent=machine.progress_percent,
        current_question=current,
        is_loading=machine.is_loading,
        is_submitting=machine.is_submitting,
        is_complete=machine.is_complete,
        has_error=machine.has_error,
        error=machine.error,
        pending_auth_required=machine.pending_auth_required,
        temp_result=machine.temp_result,
    )


def _get_session_or_404(session_id: str) -> SessionStateMachine:
    machine = session_registry.get(session_id)
    if machine is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return machine


def _default_return_path(machine: SessionStateMachine) -> str:
    return f"/dashboard/{machine.quiz_type.value}/{machine.quiz_slug}/results"


def _needs_load(machine: SessionStateMachine) -> bool:
    # A failed submission keeps its answers and preview; only a failed load is refetched
    return machine.status == SessionStatus.IDLE or (
        machine.has_error and machine.error_origin == SessionStatus.LOADING
    )


@router.post("", response_model=SessionView, status_code=201)
async def start_session(request: SessionStart):
    """
    Start an attempt, or resume the live one for this quiz

    A failed load leaves the session in ``error`` with a message; POST
    ``/retry`` to load again. A session whose submission failed is
    returned as is, with its preview, for the same retry.
    """
    machine = session_registry.resume_or_create(request.quiz_slug, request.client_id)
    if _needs_load(machine):
        await machine.fetch(request.quiz_slug, request.quiz_type)
    return session_view(machine)


@router.post("/auth-return", response_model=AuthReturnResponse)
async def auth_return(request: AuthReturn):
    """
    Resume an attempt after sign-in and submit it

    Only the snapshot saved by the same client is used. Without one the
    attempt is treated as unfinished and unauthenticated: the session is
    returned as is, nothing is submitted.
    """
    machine = session_registry.resume_or_create(request.quiz_slug, request.client_id)
    if _needs_load(machine):
        await machine.fetch(request.quiz_slug, request.quiz_type)
    if machine.has_error:
        # Leave the snapshot in place so a later return can still use it
        return AuthReturnResponse(restored=False, session=session_view(machine))

    snapshot = session_registry.auth_bridge.restore_after_redirect(request.quiz_slug, request.client_id)
    if snapshot is None or not machine.restore(snapshot):
        logger.info(f"No usable auth-redirect state for {request.quiz_slug}")
        return AuthReturnResponse(restored=False, session=session_view(machine))

    result = await machine.submit(request.user_id)
    return AuthReturnResponse(restored=True, session=session_view(machine), result=result)


@router.get("/{session_id}", response_model=SessionView)
async def get_session(session_id: str):
    return session_view(_get_session_or_404(session_id))


@router.post("/{session_id}/answers", response_model=AnswerResponse)
async def answer_question(session_id: str, request: AnswerRequest):
    """Record or replace the answer to one question"""
    machine = _get_session_or_404(session_id)
    answer = machine.answer(
        request.question_id,
        request.value,
        time_spent_seconds=request.time_spent_seconds,
        hints_used=request.hints_used,
    )
    feedback = None
    free_text = answer is not None and answer.type in (QuizType.BLANKS, QuizType.OPENENDED)
    if free_text and answer.similarity is not None:
        feedback = similarity_service.describe(answer.similarity)

    return AnswerResponse(
        accepted=answer is not None,
        answer=answer,
        feedback=feedback,
        session=session_view(machine),
    )


@router.post("/{session_id}/advance", response_model=SessionView)
async def advance(session_id: str):
    machine = _get_session_or_404(session_id)
    machine.advance()
    return session_view(machine)


@router.post("/{session_id}/complete", response_model=CompletionResponse)
async def complete(session_id: str, request: CompleteRequest):
    """
    Finish the attempt

    - Signed in (user_id given): submit immediately
    - Anonymous: keep the preview, save the attempt for the sign-in round
      trip and return the sign-in URL
    """
    machine = _get_session_or_404(session_id)
    if machine.status in (SessionStatus.READY, SessionStatus.ANSWERING):
        machine.complete()

    if request.user_id:
        result = await machine.submit(request.user_id)
        return CompletionResponse(session=session_view(machine), result=result)

    if machine.status == SessionStatus.COMPLETING_PREVIEW:
        machine.require_auth()
    sign_in_url = None
    if machine.status == SessionStatus.AWAITING_AUTH:
        sign_in_url = session_registry.auth_bridge.save_for_redirect(
            machine,
            machine.temp_result,
            request.return_path or _default_return_path(machine),
        )
        if sign_in_url is None:
            logger.warning(f"Session {machine.session_id}: sign-in handoff unavailable, staying on preview")
    return CompletionResponse(session=session_view(machine), sign_in_url=sign_in_url)


@router.post("/{session_id}/submit", response_model=CompletionResponse)
async def submit(session_id: str, request: SubmitRequest):
    machine = _get_session_or_404(session_id)
    result = await machine.submit(request.user_id)
    return CompletionResponse(session=session_view(machine), result=result)


@router.post("/{session_id}/retry", response_model=CompletionResponse)
async def retry(session_id: str, request: SubmitRequest):
    """Retry the failed load or submission"""
    machine = _get_session_or_404(session_id)
    result = await machine.retry(request.user_id)
    return CompletionResponse(session=session_view(machine), result=result)


@router.post("/{session_id}/reset", response_model=SessionView)
async def reset(session_id: str):
    """
    Drop answers and results; used for retakes

    The session is forgotten afterwards; a retake starts a new one.
    """
    machine = _get_session_or_404(session_id)
    session_registry.discard(session_id)
    return session_view(machine)


@router.get("/{session_id}/result", response_model=ResultResponse)
async def get_result(session_id: str, user_id: Optional[str] = None):
    """
    Best available result for the attempt

    Order: submitted result, in-memory preview, restored snapshot result,
    then the latest stored attempt for ``user_id``.
    """
    machine = _get_session_or_404(session_id)

    reconciled = machine.current_result()
    if reconciled is None and user_id and machine.quiz_slug:
        fetched = await session_registry.submission_backend.fetch_result(machine.quiz_slug, user_id)
        reconciled = machine.current_result(fetched=fetched)
    if reconciled is None:
        raise HTTPException(status_code=404, detail="No result available")

    result, source = reconciled
    weak_tags = results_service.weak_tags(machine.questions, result)
    return ResultResponse(
        result=result,
        source=source,
        display_percentage=machine.display_percentage(result),
        feedback=results_service.generate_feedback(result, weak_tags),
    )
