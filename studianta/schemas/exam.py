"""
Studianta - Exam Schemas
Pydantic schemas for exam generation, taking and results
"""
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from studianta.core.config import settings
from studianta.models.exam import (
    ExamDifficulty,
    ExamMode,
    ExamType,
    MasteryLevel,
    QuestionDifficulty,
)


# ============================================================================
# AI generation contract
# ============================================================================

class GeneratedQuestion(BaseModel):
    """A normalized question as produced by the generator."""
    model_config = ConfigDict(populate_by_name=True)

    number: int
    type: ExamType
    text: str
    options: list[str] | None = None
    correct_answer: str = Field(..., alias="correctAnswer")
    explanation: str | None = None
    rationale: str | None = None
    source_material: str | None = Field(None, alias="sourceMaterial")
    difficulty: QuestionDifficulty = QuestionDifficulty.INTERMEDIATE


class GeneratedExam(BaseModel):
    """Normalized `{exam: {title, questions}}` payload."""
    title: str
    questions: list[GeneratedQuestion]

    def to_wire(self) -> dict:
        """Serialize in the `{exam: {...}}` shape with camelCase question keys."""
        return {"exam": self.model_dump(mode="json", by_alias=True)}


class ExamGenerationRequest(BaseModel):
    """Inputs of one exam generation. camelCase on the AI proxy wire."""
    model_config = ConfigDict(populate_by_name=True)

    subject_name: str = Field(..., min_length=1, alias="subjectName")
    materials_text: str = Field(..., min_length=1, alias="materialsText")
    exam_type: ExamType = Field(..., alias="examType")
    question_count: int = Field(
        ...,
        ge=settings.EXAM_MIN_QUESTIONS,
        le=settings.EXAM_MAX_QUESTIONS,
        alias="questionCount",
    )
    difficulty: ExamDifficulty


# ============================================================================
# Exam API
# ============================================================================

class ExamGenerateRequest(BaseModel):
    """Request to generate an exam from study materials."""
    subject_id: uuid.UUID
    material_ids: list[uuid.UUID] = Field(..., min_length=1, description="Selected material IDs")
    exam_type: ExamType = ExamType.MULTIPLE_CHOICE
    question_count: int = Field(
        default=10,
        ge=settings.EXAM_MIN_QUESTIONS,
        le=settings.EXAM_MAX_QUESTIONS,
        description="Number of questions (5-50)",
    )
    difficulty: ExamDifficulty = ExamDifficulty.MIXED
    mode: ExamMode = ExamMode.GUIDED


class ExamSummary(BaseModel):
    """Exam row as listed in the history."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    subject_id: uuid.UUID
    title: str
    exam_type: ExamType
    difficulty: ExamDifficulty
    question_count: int
    mode: ExamMode
    material_ids: list[str]
    created_at: datetime | None = None
    completed_at: datetime | None = None


class ExamQuestionItem(BaseModel):
    """A stored question."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    question_number: int
    question_type: ExamType
    question_text: str
    options: list[str] | None = None
    correct_answer: str
    explanation: str | None = None
    rationale: str | None = None
    source_material: str | None = None
    difficulty_level: QuestionDifficulty


class ResponseSubmission(BaseModel):
    """One answer sent by the client."""
    question_id: uuid.UUID
    user_answer: str = ""
    time_spent_seconds: int = Field(default=0, ge=0)

    @field_validator("user_answer", mode="before")
    @classmethod
    def coerce_answer(cls, value):
        # Choice answers may arrive as bare integers
        if value is None:
            return ""
        return str(value)


class ResponsesSubmitRequest(BaseModel):
    """Batch of answers for an exam."""
    responses: list[ResponseSubmission]


class AnswerItem(BaseModel):
    """A stored response."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    question_id: uuid.UUID
    user_answer: str
    is_correct: bool
    time_spent_seconds: int


class ExamResultResponse(BaseModel):
    """Scoring summary of a finished exam."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    exam_id: uuid.UUID
    total_questions: int
    correct_answers: int
    score_percentage: float
    time_spent_total: int
    mastery_level: MasteryLevel
    created_at: datetime | None = None


class FlashcardItem(BaseModel):
    """Review card derived from a failed question."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    exam_id: uuid.UUID
    question_id: uuid.UUID
    front_text: str
    back_text: str
    reviewed_count: int
    last_reviewed_at: datetime | None = None


class ExamGenerateResponse(BaseModel):
    """Response after generating an exam."""
    exam: ExamSummary
    questions: list[ExamQuestionItem]


class ExamDetailResponse(BaseModel):
    """Everything needed to resume or review an exam."""
    exam: ExamSummary
    questions: list[ExamQuestionItem]
    responses: list[AnswerItem]
    result: ExamResultResponse | None = None
    flashcards: list[FlashcardItem] = []


class ExamFinishResponse(BaseModel):
    """Response after finishing an exam."""
    result: ExamResultResponse
    responses: list[AnswerItem]
    flashcards: list[FlashcardItem]
