"""Studianta - Models initialization."""
from studianta.models.subject import Subject, StudyMaterial
from studianta.models.exam import (
    Exam,
    ExamQuestion,
    ExamResponse,
    ExamResult,
    ExamFlashcard,
    ExamType,
    ExamDifficulty,
    ExamMode,
    QuestionDifficulty,
    MasteryLevel,
    TRUE_FALSE_OPTIONS,
)


__all__ = [
    # Subject models
    "Subject",
    "StudyMaterial",
    # Exam models
    "Exam",
    "ExamQuestion",
    "ExamResponse",
    "ExamResult",
    "ExamFlashcard",
    # Exam enums
    "ExamType",
    "ExamDifficulty",
    "ExamMode",
    "QuestionDifficulty",
    "MasteryLevel",
    "TRUE_FALSE_OPTIONS",
]
