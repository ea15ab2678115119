"""
Studianta - Exam Models
SQLAlchemy models for AI-generated exams, their questions, answers, results
and review flashcards.
"""
import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studianta.core.database import Base

# JSONB on Postgres, plain JSON elsewhere (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class ExamType(str, Enum):
    """Question format of an exam."""
    MULTIPLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"
    OPEN_ENDED = "open-ended"
    CLOZE = "cloze"
    CASE_STUDY = "case-study"

    @property
    def is_choice(self) -> bool:
        return self in (ExamType.MULTIPLE_CHOICE, ExamType.TRUE_FALSE)


class ExamDifficulty(str, Enum):
    """Requested difficulty for a whole exam."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    MIXED = "mixed"


class QuestionDifficulty(str, Enum):
    """Difficulty label of a single question."""
    EASY = "easy"
    INTERMEDIATE = "intermediate"
    HARD = "hard"


class ExamMode(str, Enum):
    """Real exams withhold feedback; guided exams reveal it per question."""
    REAL = "real"
    GUIDED = "guided"


class MasteryLevel(str, Enum):
    """Competency bucket derived from the score percentage."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


TRUE_FALSE_OPTIONS = ["Verdadero", "Falso"]


class Exam(Base):
    """One generation event. Root of questions, responses, results and flashcards."""

    __tablename__ = "exams"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    subject_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("subjects.id", ondelete="CASCADE"),
        index=True
    )

    title: Mapped[str] = mapped_column(String(300))
    exam_type: Mapped[ExamType] = mapped_column(String(30))
    difficulty: Mapped[ExamDifficulty] = mapped_column(String(20))
    question_count: Mapped[int] = mapped_column(Integer)
    mode: Mapped[ExamMode] = mapped_column(String(20), default=ExamMode.GUIDED)

    # Source material ids (list of UUIDs as strings)
    material_ids: Mapped[list] = mapped_column(JSONType, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )
    # Set exactly once, together with the ExamResult
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    # Relationships (children are removed by ON DELETE CASCADE)
    questions: Mapped[list["ExamQuestion"]] = relationship(
        "ExamQuestion",
        back_populates="exam",
        passive_deletes=True,
        order_by="ExamQuestion.question_number",
    )

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


class ExamQuestion(Base):
    """A single generated question. Never mutated after creation."""

    __tablename__ = "exam_questions"
    __table_args__ = (
        UniqueConstraint("exam_id", "question_number", name="uq_exam_question_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    exam_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("exams.id", ondelete="CASCADE"),
        index=True
    )

    question_number: Mapped[int] = mapped_column(Integer)  # 1-based
    question_type: Mapped[ExamType] = mapped_column(String(30))
    question_text: Mapped[str] = mapped_column(Text)
    options: Mapped[list | None] = mapped_column(JSONType, nullable=True)

    # Option index as text for choice questions, expected text otherwise
    correct_answer: Mapped[str] = mapped_column(Text)

    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    rationale: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_material: Mapped[str | None] = mapped_column(Text, nullable=True)
    difficulty_level: Mapped[QuestionDifficulty] = mapped_column(
        String(20),
        default=QuestionDifficulty.INTERMEDIATE
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    exam: Mapped["Exam"] = relationship("Exam", back_populates="questions")


class ExamResponse(Base):
    """The latest answer of a user to one question of an exam."""

    __tablename__ = "exam_responses"
    __table_args__ = (
        UniqueConstraint("exam_id", "question_id", name="uq_exam_response_question"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    exam_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("exams.id", ondelete="CASCADE"),
        index=True
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("exam_questions.id", ondelete="CASCADE"),
        index=True
    )

    user_answer: Mapped[str] = mapped_column(Text, default="")
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False)
    time_spent_seconds: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )


class ExamResult(Base):
    """Scoring summary. At most one per exam."""

    __tablename__ = "exam_results"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    exam_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("exams.id", ondelete="CASCADE"),
        unique=True,
        index=True
    )

    total_questions: Mapped[int] = mapped_column(Integer)
    correct_answers: Mapped[int] = mapped_column(Integer)
    score_percentage: Mapped[float] = mapped_column(Float)  # 0.0 to 100.0
    time_spent_total: Mapped[int] = mapped_column(Integer, default=0)
    mastery_level: Mapped[MasteryLevel] = mapped_column(String(20))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )


class ExamFlashcard(Base):
    """Review card derived from an incorrectly answered question."""

    __tablename__ = "exam_flashcards"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    exam_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("exams.id", ondelete="CASCADE"),
        index=True
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("exam_questions.id", ondelete="CASCADE"),
        index=True
    )

    front_text: Mapped[str] = mapped_column(Text)
    back_text: Mapped[str] = mapped_column(Text)

    reviewed_count: Mapped[int] = mapped_column(Integer, default=0)
    last_reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
