"""Studianta - Services initialization."""
from studianta.services.exam import ExamService, FinishedExam, LoadedExam
from studianta.services.exam_repository import ExamRepository
from studianta.services.exam_session import (
    ExamSessionState,
    ExamSessionStateMachine,
    InvalidTransition,
    SessionPhase,
)
from studianta.services.flashcards import FlashcardGenerator
from studianta.services.material_extractor import (
    DocumentExtractionError,
    DocumentExtractor,
    MaterialTextExtractor,
)
from studianta.services.scoring import (
    calculate_mastery_level,
    is_answer_correct,
    score_responses,
)

__all__ = [
    "ExamService",
    "FinishedExam",
    "LoadedExam",
    "ExamRepository",
    "ExamSessionState",
    "ExamSessionStateMachine",
    "InvalidTransition",
    "SessionPhase",
    "FlashcardGenerator",
    "DocumentExtractionError",
    "DocumentExtractor",
    "MaterialTextExtractor",
    "calculate_mastery_level",
    "is_answer_correct",
    "score_responses",
]
