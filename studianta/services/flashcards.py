"""
Studianta - Flashcard Generator
Review cards for the questions a student got wrong.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from studianta.models.exam import Exam, ExamFlashcard, ExamQuestion, ExamResponse

logger = logging.getLogger(__name__)

FALLBACK_BACK_TEXT = "Respuesta correcta"


def select_failed_questions(
    questions: Iterable[ExamQuestion],
    responses: Iterable[ExamResponse],
) -> list[ExamQuestion]:
    """Questions whose latest response is incorrect, in question order."""
    correctness = {response.question_id: response.is_correct for response in responses}
    return [
        question for question in sorted(questions, key=lambda q: q.question_number)
        if correctness.get(question.id) is False
    ]


def build_flashcard_back(question: ExamQuestion) -> str:
    return f"{question.explanation or FALLBACK_BACK_TEXT}\n\n{question.rationale or ''}"


class FlashcardGenerator:
    """Creates one flashcard per failed question, tolerating individual insert failures."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def generate(
        self,
        exam: Exam,
        questions: Iterable[ExamQuestion],
        responses: Iterable[ExamResponse],
    ) -> list[ExamFlashcard]:
        created = []

        for question in select_failed_questions(questions, responses):
            flashcard = ExamFlashcard(
                exam_id=exam.id,
                question_id=question.id,
                front_text=question.question_text,
                back_text=build_flashcard_back(question),
                reviewed_count=0,
            )
            try:
                async with self.db.begin_nested():
                    self.db.add(flashcard)
            except SQLAlchemyError:
                logger.exception(
                    "Could not create flashcard for question %s of exam %s",
                    question.id, exam.id,
                )
                continue
            created.append(flashcard)

        logger.info("Created %d flashcards for exam %s", len(created), exam.id)
        return created


def mark_reviewed(flashcard: ExamFlashcard) -> ExamFlashcard:
    flashcard.reviewed_count = (flashcard.reviewed_count or 0) + 1
    flashcard.last_reviewed_at = datetime.now(timezone.utc)
    return flashcard
