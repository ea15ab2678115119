"""
Studianta - Exam Service
Generation, answering, scoring and review of AI-generated exams.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studianta.ai.agents.examiner import ExaminerAgent, examiner_agent
from studianta.core.errors import (
    ExamAlreadyCompleted,
    ExamPipelineError,
    NoValidSourceMaterial,
    NotFound,
)
from studianta.models.exam import (
    Exam,
    ExamFlashcard,
    ExamQuestion,
    ExamResponse,
    ExamResult,
)
from studianta.models.subject import StudyMaterial, Subject
from studianta.schemas.exam import (
    ExamGenerateRequest,
    ExamGenerationRequest,
    ResponseSubmission,
)
from studianta.services.exam_repository import ExamRepository
from studianta.services.flashcards import FlashcardGenerator, mark_reviewed
from studianta.services.material_extractor import (
    MaterialTextExtractor,
    resolve_material_references,
)
from studianta.services.scoring import is_answer_correct, score_responses

logger = logging.getLogger(__name__)


@dataclass
class FinishedExam:
    """Outcome of finishing an exam."""
    exam: Exam
    result: ExamResult
    responses: list[ExamResponse]
    flashcards: list[ExamFlashcard]


@dataclass
class LoadedExam:
    """Everything stored for one exam."""
    exam: Exam
    questions: list[ExamQuestion]
    responses: list[ExamResponse]
    result: Optional[ExamResult] = None
    flashcards: list[ExamFlashcard] = field(default_factory=list)


class ExamService:
    """
    Service layer for exams.

    Handles:
    - Exam generation from a subject's study materials
    - Response grading and storage
    - Scoring, completion and flashcard creation
    - History reads, flashcard reviews and deletion
    """

    def __init__(
        self,
        db: AsyncSession,
        extractor: Optional[MaterialTextExtractor] = None,
        examiner: Optional[ExaminerAgent] = None,
    ):
        self.db = db
        self.repository = ExamRepository(db)
        self.extractor = extractor or MaterialTextExtractor()
        self.examiner = examiner or examiner_agent

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate_exam(
        self,
        user_id: uuid.UUID,
        config: ExamGenerateRequest,
    ) -> tuple[Exam, list[ExamQuestion]]:
        """
        Generate and store an exam from the selected materials.

        The exam and its questions are committed together; a failure leaves
        nothing behind.

        Raises:
            NotFound: subject or materials not found for this user
            NoValidSourceMaterial: no material could be turned into text
            EmptyGenerationResponse / MalformedGenerationResponse / InvalidExamShape
            PersistenceFailure
        """
        subject = await self._get_owned_subject(user_id, config.subject_id)

        result = await self.db.execute(
            select(StudyMaterial)
            .where(
                StudyMaterial.subject_id == subject.id,
                StudyMaterial.id.in_(config.material_ids),
            )
            .order_by(StudyMaterial.created_at)
        )
        materials = list(result.scalars().all())
        if not materials:
            raise NotFound("No se encontraron los materiales seleccionados")

        references = resolve_material_references(materials)
        if not references:
            raise NoValidSourceMaterial(
                detail=", ".join(f"{m.name} ({m.type})" for m in materials)
            )

        batch = await self.extractor.extract_many(references)

        generated = await self.examiner.generate_exam(
            ExamGenerationRequest(
                subject_name=subject.name,
                materials_text=batch.text,
                exam_type=config.exam_type,
                question_count=config.question_count,
                difficulty=config.difficulty,
            )
        )

        try:
            exam = await self.repository.insert_one(
                Exam,
                user_id=user_id,
                subject_id=subject.id,
                title=generated.title,
                exam_type=config.exam_type.value,
                difficulty=config.difficulty.value,
                question_count=len(generated.questions),
                mode=config.mode.value,
                material_ids=[str(material_id) for material_id in config.material_ids],
            )
            questions = await self.repository.insert_many(
                ExamQuestion,
                [
                    {
                        "exam_id": exam.id,
                        "question_number": question.number,
                        "question_type": question.type.value,
                        "question_text": question.text,
                        "options": question.options,
                        "correct_answer": question.correct_answer,
                        "explanation": question.explanation,
                        "rationale": question.rationale,
                        "source_material": question.source_material,
                        "difficulty_level": question.difficulty.value,
                    }
                    for question in generated.questions
                ],
            )
            await self.db.commit()
        except ExamPipelineError:
            await self.db.rollback()
            raise

        logger.info(
            "Exam %s generated for user %s: %d questions (%s, %s)",
            exam.id, user_id, len(questions), exam.exam_type, exam.mode,
        )
        return exam, questions

    # ------------------------------------------------------------------
    # Answering and scoring
    # ------------------------------------------------------------------

    async def save_responses(
        self,
        user_id: uuid.UUID,
        exam_id: uuid.UUID,
        submissions: Iterable[ResponseSubmission],
    ) -> list[ExamResponse]:
        """
        Grade and store answers, replacing earlier answers to the same questions.

        Raises:
            NotFound / ExamAlreadyCompleted / PersistenceFailure
        """
        exam = await self._get_owned_exam(user_id, exam_id)
        if exam.is_completed:
            raise ExamAlreadyCompleted()

        questions = await self._get_questions(exam.id)
        try:
            responses = await self._store_responses(exam, questions, submissions)
            await self.db.commit()
        except ExamPipelineError:
            await self.db.rollback()
            raise
        return responses

    async def finish_exam(
        self,
        user_id: uuid.UUID,
        exam_id: uuid.UUID,
        submissions: Iterable[ResponseSubmission] = (),
    ) -> FinishedExam:
        """
        Store the final answers, score the exam and create flashcards.

        The result row and `completed_at` are committed together. Flashcards
        are created afterwards; a failing flashcard is skipped.

        Raises:
            NotFound / ExamAlreadyCompleted / ScoringPrecondition / PersistenceFailure
        """
        exam = await self._get_owned_exam(user_id, exam_id)
        if exam.is_completed:
            raise ExamAlreadyCompleted()

        questions = await self._get_questions(exam.id)
        try:
            responses = await self._store_responses(
                exam, questions, submissions, fill_unanswered=True
            )
            summary = score_responses(responses)

            result = await self.repository.insert_one(
                ExamResult,
                exam_id=exam.id,
                total_questions=summary.total_questions,
                correct_answers=summary.correct_answers,
                score_percentage=summary.score_percentage,
                time_spent_total=summary.time_spent_total,
                mastery_level=summary.mastery_level.value,
            )
            await self.repository.update_by_id(
                Exam, exam.id, completed_at=datetime.now(timezone.utc)
            )
            await self.db.commit()
        except ExamPipelineError:
            await self.db.rollback()
            raise

        flashcards = await FlashcardGenerator(self.db).generate(exam, questions, responses)
        await self.db.commit()

        logger.info(
            "Exam %s finished: %d/%d (%.1f%%, %s), %d flashcards",
            exam.id, summary.correct_answers, summary.total_questions,
            summary.score_percentage, summary.mastery_level.value, len(flashcards),
        )
        return FinishedExam(exam=exam, result=result, responses=responses, flashcards=flashcards)

    async def _store_responses(
        self,
        exam: Exam,
        questions: list[ExamQuestion],
        submissions: Iterable[ResponseSubmission],
        fill_unanswered: bool = False,
    ) -> list[ExamResponse]:
        """
        Upsert graded responses (one per question) and return all of the exam's responses.

        With `fill_unanswered`, every question still without a response gets an
        empty, incorrect one so the exam ends with exactly one per question.
        """
        questions_by_id = {question.id: question for question in questions}
        existing = {
            response.question_id: response
            for response in await self.repository.select_by_filter(ExamResponse, exam_id=exam.id)
        }

        # Last submission per question wins
        latest = {submission.question_id: submission for submission in submissions}

        for question_id, submission in latest.items():
            question = questions_by_id.get(question_id)
            if question is None:
                raise NotFound(f"La pregunta {question_id} no pertenece al examen")

            fields = {
                "user_answer": submission.user_answer,
                "is_correct": is_answer_correct(
                    submission.user_answer, question.correct_answer, question.question_type
                ),
                "time_spent_seconds": submission.time_spent_seconds,
            }
            if question_id in existing:
                await self.repository.update_by_id(ExamResponse, existing[question_id].id, **fields)
            else:
                existing[question_id] = await self.repository.insert_one(
                    ExamResponse, exam_id=exam.id, question_id=question_id, **fields
                )

        if fill_unanswered:
            for question in questions:
                if question.id not in existing:
                    existing[question.id] = await self.repository.insert_one(
                        ExamResponse,
                        exam_id=exam.id,
                        question_id=question.id,
                        user_answer="",
                        is_correct=False,
                        time_spent_seconds=0,
                    )

        order = {question.id: question.question_number for question in questions}
        return sorted(existing.values(), key=lambda response: order.get(response.question_id, 0))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_exams(
        self,
        user_id: uuid.UUID,
        subject_id: Optional[uuid.UUID] = None,
    ) -> list[Exam]:
        """Exam history, newest first."""
        filters = {"user_id": user_id}
        if subject_id is not None:
            filters["subject_id"] = subject_id
        return await self.repository.select_by_filter(
            Exam, order_by=[Exam.created_at.desc()], **filters
        )

    async def get_exam_with_questions(
        self,
        user_id: uuid.UUID,
        exam_id: uuid.UUID,
    ) -> tuple[Exam, list[ExamQuestion]]:
        exam = await self._get_owned_exam(user_id, exam_id)
        return exam, await self._get_questions(exam.id)

    async def get_responses(self, user_id: uuid.UUID, exam_id: uuid.UUID) -> list[ExamResponse]:
        exam, questions = await self.get_exam_with_questions(user_id, exam_id)
        order = {question.id: question.question_number for question in questions}
        responses = await self.repository.select_by_filter(ExamResponse, exam_id=exam.id)
        return sorted(responses, key=lambda response: order.get(response.question_id, 0))

    async def get_result(self, user_id: uuid.UUID, exam_id: uuid.UUID) -> Optional[ExamResult]:
        exam = await self._get_owned_exam(user_id, exam_id)
        results = await self.repository.select_by_filter(ExamResult, exam_id=exam.id)
        return results[0] if results else None

    async def get_flashcards(self, user_id: uuid.UUID, exam_id: uuid.UUID) -> list[ExamFlashcard]:
        exam = await self._get_owned_exam(user_id, exam_id)
        return await self.repository.select_by_filter(
            ExamFlashcard, order_by=[ExamFlashcard.created_at], exam_id=exam.id
        )

    async def load_exam(self, user_id: uuid.UUID, exam_id: uuid.UUID) -> LoadedExam:
        """Exam, questions and stored answers, plus result and flashcards when finished."""
        exam, questions = await self.get_exam_with_questions(user_id, exam_id)
        loaded = LoadedExam(
            exam=exam,
            questions=questions,
            responses=await self.get_responses(user_id, exam_id),
        )
        if exam.is_completed:
            loaded.result = await self.get_result(user_id, exam_id)
            loaded.flashcards = await self.get_flashcards(user_id, exam_id)
        return loaded

    # ------------------------------------------------------------------
    # Flashcards and deletion
    # ------------------------------------------------------------------

    async def review_flashcard(self, user_id: uuid.UUID, flashcard_id: uuid.UUID) -> ExamFlashcard:
        flashcard = await self.repository.get_by_id(ExamFlashcard, flashcard_id)
        if flashcard is None:
            raise NotFound("Flashcard no encontrada")
        await self._get_owned_exam(user_id, flashcard.exam_id)

        mark_reviewed(flashcard)
        await self.db.commit()
        return flashcard

    async def delete_exam(self, user_id: uuid.UUID, exam_id: uuid.UUID) -> None:
        """Delete an exam with its questions, responses, result and flashcards."""
        exam = await self._get_owned_exam(user_id, exam_id)
        await self.repository.delete_by_filter(Exam, id=exam.id)
        await self.db.commit()
        logger.info("Exam %s deleted by user %s", exam_id, user_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_owned_subject(self, user_id: uuid.UUID, subject_id: uuid.UUID) -> Subject:
        subject = await self.repository.get_by_id(Subject, subject_id)
        if subject is None or subject.user_id != user_id:
            raise NotFound("Asignatura no encontrada")
        return subject

    async def _get_owned_exam(self, user_id: uuid.UUID, exam_id: uuid.UUID) -> Exam:
        exam = await self.repository.get_by_id(Exam, exam_id)
        if exam is None or exam.user_id != user_id:
            raise NotFound("Examen no encontrado")
        return exam

    async def _get_questions(self, exam_id: uuid.UUID) -> list[ExamQuestion]:
        return await self.repository.select_by_filter(
            ExamQuestion, order_by=[ExamQuestion.question_number], exam_id=exam_id
        )
