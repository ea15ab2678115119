"""
Studianta - Exam API
Endpoints for generating, answering and reviewing AI-generated exams
"""
import logging
import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status

from studianta.api.deps import CurrentUserId, get_exam_service
from studianta.core.errors import ExamPipelineError
from studianta.schemas.exam import (
    AnswerItem,
    ExamDetailResponse,
    ExamFinishResponse,
    ExamGenerateRequest,
    ExamGenerateResponse,
    ExamQuestionItem,
    ExamResultResponse,
    ExamSummary,
    FlashcardItem,
    ResponsesSubmitRequest,
)
from studianta.services.exam import ExamService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/exams", tags=["Exams"])

ExamServiceDep = Annotated[ExamService, Depends(get_exam_service)]

GENERATION_FAILED_MESSAGE = "Error al generar el examen. Por favor, intenta nuevamente."


def _http_error(error: ExamPipelineError) -> HTTPException:
    """Translate a pipeline error; technical detail stays in the log."""
    if error.status_code >= 500:
        logger.error("%r: %s", error, error.detail)
    else:
        logger.info("%r: %s", error, error.detail)
    return HTTPException(status_code=error.status_code, detail=error.message)


@router.post("/generate", response_model=ExamGenerateResponse, status_code=status.HTTP_201_CREATED)
async def generate_exam(
    request: ExamGenerateRequest,
    user_id: CurrentUserId,
    service: ExamServiceDep,
):
    """
    Generate an exam from the selected study materials of a subject.
    Extracts the PDFs, asks the examiner for questions and stores the result.
    """
    try:
        exam, questions = await service.generate_exam(user_id, request)
    except ExamPipelineError as e:
        raise _http_error(e)
    except Exception:
        logger.exception("Exam generation failed for user %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=GENERATION_FAILED_MESSAGE,
        )

    return ExamGenerateResponse(
        exam=ExamSummary.model_validate(exam),
        questions=[ExamQuestionItem.model_validate(q) for q in questions],
    )


@router.get("", response_model=list[ExamSummary])
async def list_exams(
    user_id: CurrentUserId,
    service: ExamServiceDep,
    subject_id: Optional[uuid.UUID] = None,
):
    """Exam history of the current user, newest first."""
    try:
        exams = await service.list_exams(user_id, subject_id=subject_id)
    except ExamPipelineError as e:
        raise _http_error(e)
    return [ExamSummary.model_validate(exam) for exam in exams]


@router.get("/{exam_id}", response_model=ExamDetailResponse)
async def get_exam(
    exam_id: uuid.UUID,
    user_id: CurrentUserId,
    service: ExamServiceDep,
):
    """Questions and stored answers of an exam, plus its result when finished."""
    try:
        loaded = await service.load_exam(user_id, exam_id)
    except ExamPipelineError as e:
        raise _http_error(e)

    return ExamDetailResponse(
        exam=ExamSummary.model_validate(loaded.exam),
        questions=[ExamQuestionItem.model_validate(q) for q in loaded.questions],
        responses=[AnswerItem.model_validate(r) for r in loaded.responses],
        result=ExamResultResponse.model_validate(loaded.result) if loaded.result else None,
        flashcards=[FlashcardItem.model_validate(f) for f in loaded.flashcards],
    )


@router.post("/{exam_id}/responses", response_model=list[AnswerItem])
async def save_responses(
    exam_id: uuid.UUID,
    request: ResponsesSubmitRequest,
    user_id: CurrentUserId,
    service: ExamServiceDep,
):
    """Save answers of an exam in progress (later answers replace earlier ones)."""
    try:
        responses = await service.save_responses(user_id, exam_id, request.responses)
    except ExamPipelineError as e:
        raise _http_error(e)
    return [AnswerItem.model_validate(r) for r in responses]


@router.post("/{exam_id}/finish", response_model=ExamFinishResponse)
async def finish_exam(
    exam_id: uuid.UUID,
    request: ResponsesSubmitRequest,
    user_id: CurrentUserId,
    service: ExamServiceDep,
):
    """Score the exam, mark it completed and create flashcards for missed questions."""
    try:
        finished = await service.finish_exam(user_id, exam_id, request.responses)
    except ExamPipelineError as e:
        raise _http_error(e)

    return ExamFinishResponse(
        result=ExamResultResponse.model_validate(finished.result),
        responses=[AnswerItem.model_validate(r) for r in finished.responses],
        flashcards=[FlashcardItem.model_validate(f) for f in finished.flashcards],
    )


@router.delete("/{exam_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_exam(
    exam_id: uuid.UUID,
    user_id: CurrentUserId,
    service: ExamServiceDep,
):
    """Delete an exam and everything derived from it."""
    try:
        await service.delete_exam(user_id, exam_id)
    except ExamPipelineError as e:
        raise _http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/flashcards/{flashcard_id}/review", response_model=FlashcardItem)
async def review_flashcard(
    flashcard_id: uuid.UUID,
    user_id: CurrentUserId,
    service: ExamServiceDep,
):
    """Count one review of a flashcard."""
    try:
        flashcard = await service.review_flashcard(user_id, flashcard_id)
    except ExamPipelineError as e:
        raise _http_error(e)
    return FlashcardItem.model_validate(flashcard)
