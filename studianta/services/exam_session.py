"""
Studianta - Exam Session
Drives one user's exam-taking flow: configuration, generation, answering,
finishing, results, flashcard review and history.

All session data lives in an `ExamSessionState` injected into the machine.
The machine owns two asyncio resources that exist only while IN_PROGRESS:
the one-second elapsed-time tick and the guided-mode auto-advance timer.
Every transition out of IN_PROGRESS releases both.

Must be driven from inside a running event loop.
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from studianta.ai.exam_parser import AnswerKey, answer_key
from studianta.core.config import settings
from studianta.core.errors import ExamPipelineError
from studianta.models.exam import (
    Exam,
    ExamDifficulty,
    ExamFlashcard,
    ExamMode,
    ExamQuestion,
    ExamResponse,
    ExamResult,
    ExamType,
)
from studianta.schemas.exam import ExamGenerateRequest, ResponseSubmission
from studianta.services.exam import ExamService
from studianta.services.scoring import is_answer_correct

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR_MESSAGE = "Ocurrió un error inesperado. Por favor, intenta nuevamente."


class SessionPhase(str, Enum):
    """Views of the exam module."""
    CONFIG = "config"
    GENERATING = "generating"
    IN_PROGRESS = "in_progress"
    FINISHING = "finishing"
    RESULTS = "results"
    FLASHCARDS = "flashcards"
    HISTORY = "history"


class InvalidTransition(Exception):
    """Operation not available in the current phase."""


@dataclass
class RecordedResponse:
    """In-memory answer to one question."""
    question_id: uuid.UUID
    user_answer: str
    is_correct: bool
    time_spent_seconds: int

    @classmethod
    def from_model(cls, response: ExamResponse) -> "RecordedResponse":
        return cls(
            question_id=response.question_id,
            user_answer=response.user_answer,
            is_correct=response.is_correct,
            time_spent_seconds=response.time_spent_seconds,
        )

    def to_submission(self) -> ResponseSubmission:
        return ResponseSubmission(
            question_id=self.question_id,
            user_answer=self.user_answer,
            time_spent_seconds=self.time_spent_seconds,
        )


@dataclass
class QuestionFeedback:
    """What guided mode reveals after an answer."""
    is_correct: bool
    correct_answer: AnswerKey
    explanation: Optional[str]
    rationale: Optional[str]
    source_material: Optional[str]


@dataclass
class ExamSessionState:
    """Single owner of all session data."""
    phase: SessionPhase = SessionPhase.CONFIG

    # Configuration
    subject_id: Optional[uuid.UUID] = None
    material_ids: list[uuid.UUID] = field(default_factory=list)
    exam_type: ExamType = ExamType.MULTIPLE_CHOICE
    question_count: int = 10
    difficulty: ExamDifficulty = ExamDifficulty.MIXED
    mode: ExamMode = ExamMode.GUIDED

    # Current exam
    exam: Optional[Exam] = None
    questions: list[ExamQuestion] = field(default_factory=list)
    responses: dict[uuid.UUID, RecordedResponse] = field(default_factory=dict)
    current_index: int = 0
    elapsed_seconds: int = 0

    # Results and review
    result: Optional[ExamResult] = None
    flashcards: list[ExamFlashcard] = field(default_factory=list)
    flashcard_index: int = 0
    flashcard_flipped: bool = False

    history: list[Exam] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def current_question(self) -> Optional[ExamQuestion]:
        if 0 <= self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    @property
    def current_response(self) -> Optional[RecordedResponse]:
        question = self.current_question
        return self.responses.get(question.id) if question else None

    @property
    def is_last_question(self) -> bool:
        return self.current_index >= len(self.questions) - 1

    @property
    def current_flashcard(self) -> Optional[ExamFlashcard]:
        if 0 <= self.flashcard_index < len(self.flashcards):
            return self.flashcards[self.flashcard_index]
        return None

    def clear_exam(self) -> None:
        self.exam = None
        self.questions = []
        self.responses = {}
        self.current_index = 0
        self.elapsed_seconds = 0
        self.result = None
        self.flashcards = []
        self.flashcard_index = 0
        self.flashcard_flipped = False


class ExamSessionStateMachine:
    """
    Exam-taking controller.

    CONFIG -> GENERATING -> IN_PROGRESS -> FINISHING -> RESULTS <-> FLASHCARDS
    HISTORY -> IN_PROGRESS (resume) | RESULTS (completed exam)
    """

    def __init__(
        self,
        service: ExamService,
        user_id: uuid.UUID,
        state: Optional[ExamSessionState] = None,
        *,
        tick_interval: float = 1.0,
        auto_advance_delay: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service = service
        self.user_id = user_id
        self.state = state or ExamSessionState()
        self.tick_interval = tick_interval
        self.auto_advance_delay = (
            settings.EXAM_AUTO_ADVANCE_SECONDS if auto_advance_delay is None else auto_advance_delay
        )
        self.clock = clock

        self._tick_task: Optional[asyncio.Task] = None
        self._auto_advance: Optional[asyncio.TimerHandle] = None
        self._question_started_at = clock()

    @property
    def phase(self) -> SessionPhase:
        return self.state.phase

    @property
    def auto_advance_pending(self) -> bool:
        return self._auto_advance is not None

    @property
    def ticking(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    def _require(self, *phases: SessionPhase) -> None:
        if self.state.phase not in phases:
            raise InvalidTransition(
                f"not available in {self.state.phase.value} "
                f"(expected {', '.join(p.value for p in phases)})"
            )

    # ------------------------------------------------------------------
    # IN_PROGRESS resources
    # ------------------------------------------------------------------

    def _set_phase(self, phase: SessionPhase) -> None:
        if self.state.phase == SessionPhase.IN_PROGRESS and phase != SessionPhase.IN_PROGRESS:
            self._release_resources()
        self.state.phase = phase

    def _enter_in_progress(self, index: int = 0, reset_timer: bool = True) -> None:
        self.state.phase = SessionPhase.IN_PROGRESS
        self.state.current_index = index
        if reset_timer:
            self.state.elapsed_seconds = 0
        self._question_started_at = self.clock()
        if not self.ticking:
            self._tick_task = asyncio.get_running_loop().create_task(self._tick())

    def _release_resources(self) -> None:
        self._cancel_auto_advance()
        if self._tick_task is not None:
            self._tick_task.cancel()
            self._tick_task = None

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            self.state.elapsed_seconds += 1

    def _schedule_auto_advance(self) -> None:
        self._cancel_auto_advance()
        self._auto_advance = asyncio.get_running_loop().call_later(
            self.auto_advance_delay, self._run_auto_advance, self.state.current_index
        )

    def _cancel_auto_advance(self) -> None:
        if self._auto_advance is not None:
            self._auto_advance.cancel()
            self._auto_advance = None

    def _run_auto_advance(self, from_index: int) -> None:
        self._auto_advance = None
        if (
            self.state.phase == SessionPhase.IN_PROGRESS
            and self.state.current_index == from_index
            and not self.state.is_last_question
        ):
            self._go_to(from_index + 1)

    def _go_to(self, index: int) -> None:
        self._cancel_auto_advance()
        self.state.current_index = index
        self._question_started_at = self.clock()

    # ------------------------------------------------------------------
    # CONFIG
    # ------------------------------------------------------------------

    def configure(
        self,
        exam_type: Optional[ExamType] = None,
        question_count: Optional[int] = None,
        difficulty: Optional[ExamDifficulty] = None,
        mode: Optional[ExamMode] = None,
    ) -> None:
        self._require(SessionPhase.CONFIG)
        if question_count is not None:
            if not settings.EXAM_MIN_QUESTIONS <= question_count <= settings.EXAM_MAX_QUESTIONS:
                raise ValueError(
                    f"question_count must be between {settings.EXAM_MIN_QUESTIONS} "
                    f"and {settings.EXAM_MAX_QUESTIONS}"
                )
            self.state.question_count = question_count
        if exam_type is not None:
            self.state.exam_type = ExamType(exam_type)
        if difficulty is not None:
            self.state.difficulty = ExamDifficulty(difficulty)
        if mode is not None:
            self.state.mode = ExamMode(mode)

    def select_subject(self, subject_id: uuid.UUID) -> None:
        self._require(SessionPhase.CONFIG)
        self.state.subject_id = subject_id
        self.state.material_ids = []

    def toggle_material(self, material_id: uuid.UUID) -> None:
        self._require(SessionPhase.CONFIG)
        if material_id in self.state.material_ids:
            self.state.material_ids.remove(material_id)
        else:
            self.state.material_ids.append(material_id)

    @property
    def can_generate(self) -> bool:
        return (
            self.state.phase == SessionPhase.CONFIG
            and self.state.subject_id is not None
            and len(self.state.material_ids) > 0
        )

    async def generate(self) -> bool:
        """CONFIG -> GENERATING -> IN_PROGRESS, or back to CONFIG with `error` set."""
        self._require(SessionPhase.CONFIG)
        if self.state.subject_id is None:
            self.state.error = "Por favor, selecciona una asignatura"
            return False
        if not self.state.material_ids:
            self.state.error = "Por favor, selecciona al menos un material"
            return False

        self.state.error = None
        self._set_phase(SessionPhase.GENERATING)
        try:
            exam, questions = await self.service.generate_exam(
                self.user_id,
                ExamGenerateRequest(
                    subject_id=self.state.subject_id,
                    material_ids=list(self.state.material_ids),
                    exam_type=self.state.exam_type,
                    question_count=self.state.question_count,
                    difficulty=self.state.difficulty,
                    mode=self.state.mode,
                ),
            )
        except ExamPipelineError as e:
            logger.warning("Exam generation failed: %r (%s)", e, e.detail)
            self.state.error = e.message
            self._set_phase(SessionPhase.CONFIG)
            return False
        except Exception:
            logger.exception("Unexpected error generating exam")
            self.state.error = UNEXPECTED_ERROR_MESSAGE
            self._set_phase(SessionPhase.CONFIG)
            return False

        self.state.clear_exam()
        self.state.exam = exam
        self.state.questions = list(questions)
        self._enter_in_progress(index=0)
        return True

    # ------------------------------------------------------------------
    # IN_PROGRESS
    # ------------------------------------------------------------------

    def _record(self, question: ExamQuestion, answer: str) -> RecordedResponse:
        response = RecordedResponse(
            question_id=question.id,
            user_answer=answer,
            is_correct=is_answer_correct(answer, question.correct_answer, question.question_type),
            time_spent_seconds=max(0, int(self.clock() - self._question_started_at)),
        )
        self.state.responses[question.id] = response
        return response

    def answer(self, value) -> bool:
        """
        Pick an option of a choice question (index as int or str).

        Options lock once answered. Guided mode schedules the auto-advance;
        real mode moves on right away. Neither moves past the last question.
        """
        self._require(SessionPhase.IN_PROGRESS)
        question = self.state.current_question
        if question is None:
            return False
        is_choice = ExamType(question.question_type).is_choice
        if is_choice and question.id in self.state.responses:
            return False

        self._record(question, str(value))

        if self.state.is_last_question:
            return True
        if self.state.mode == ExamMode.GUIDED:
            if is_choice:
                self._schedule_auto_advance()
        else:
            self._go_to(self.state.current_index + 1)
        return True

    def type_answer(self, text: str) -> None:
        """Guided-mode live save of a free-text answer (no navigation)."""
        self._require(SessionPhase.IN_PROGRESS)
        question = self.state.current_question
        if question is not None:
            self._record(question, text)

    def submit_text(self, text: str) -> bool:
        """Submit a free-text answer; real mode then moves to the next question."""
        self._require(SessionPhase.IN_PROGRESS)
        question = self.state.current_question
        if question is None:
            return False

        self._record(question, text)
        if self.state.mode == ExamMode.REAL and not self.state.is_last_question:
            self._go_to(self.state.current_index + 1)
        return True

    def feedback(self) -> Optional[QuestionFeedback]:
        """Correctness of the current answer, only in guided mode."""
        if self.state.phase != SessionPhase.IN_PROGRESS or self.state.mode != ExamMode.GUIDED:
            return None
        question = self.state.current_question
        response = self.state.current_response
        if question is None or response is None:
            return None

        return QuestionFeedback(
            is_correct=response.is_correct,
            correct_answer=answer_key(question.question_type, question.correct_answer),
            explanation=question.explanation,
            rationale=question.rationale,
            source_material=question.source_material,
        )

    @property
    def can_go_next(self) -> bool:
        if self.state.phase != SessionPhase.IN_PROGRESS or self.state.is_last_question:
            return False
        if self.state.mode == ExamMode.REAL:
            return self.state.current_response is not None
        return True

    def next(self) -> bool:
        """Move forward. Real mode requires an answer to the current question."""
        self._require(SessionPhase.IN_PROGRESS)
        if not self.can_go_next:
            return False
        self._go_to(self.state.current_index + 1)
        return True

    def previous(self) -> bool:
        """Move back. Recorded answers are kept."""
        self._require(SessionPhase.IN_PROGRESS)
        if self.state.current_index == 0:
            return False
        self._go_to(self.state.current_index - 1)
        return True

    async def finish(self) -> bool:
        """
        IN_PROGRESS -> FINISHING -> RESULTS.

        An unanswered current question gets an empty answer first; skipped
        questions are stored as empty answers by the service. On failure the
        session returns to IN_PROGRESS with its answers intact.
        """
        self._require(SessionPhase.IN_PROGRESS)
        question = self.state.current_question
        if question is not None and question.id not in self.state.responses:
            self._record(question, "")

        submissions = [response.to_submission() for response in self.state.responses.values()]
        self.state.error = None
        self._set_phase(SessionPhase.FINISHING)

        try:
            finished = await self.service.finish_exam(self.user_id, self.state.exam.id, submissions)
        except ExamPipelineError as e:
            logger.warning("Finishing exam %s failed: %r (%s)", self.state.exam.id, e, e.detail)
            self.state.error = e.message
            self._enter_in_progress(index=self.state.current_index, reset_timer=False)
            return False
        except Exception:
            logger.exception("Unexpected error finishing exam %s", self.state.exam.id)
            self.state.error = UNEXPECTED_ERROR_MESSAGE
            self._enter_in_progress(index=self.state.current_index, reset_timer=False)
            return False

        self.state.exam = finished.exam
        self.state.responses = {
            response.question_id: RecordedResponse.from_model(response)
            for response in finished.responses
        }
        self.state.result = finished.result
        self.state.flashcards = list(finished.flashcards)
        self._set_phase(SessionPhase.RESULTS)
        return True

    async def _save_progress(self) -> bool:
        if not self.state.responses:
            return True
        try:
            await self.service.save_responses(
                self.user_id,
                self.state.exam.id,
                [response.to_submission() for response in self.state.responses.values()],
            )
        except ExamPipelineError as e:
            logger.warning("Saving progress of exam %s failed: %r", self.state.exam.id, e)
            self.state.error = e.message
            return False
        return True

    async def suspend(self) -> bool:
        """Persist the answers given so far and return to CONFIG; the exam stays resumable."""
        self._require(SessionPhase.IN_PROGRESS)
        self._cancel_auto_advance()
        if not await self._save_progress():
            return False
        self.reset()
        return True

    # ------------------------------------------------------------------
    # RESULTS / FLASHCARDS
    # ------------------------------------------------------------------

    def open_flashcards(self) -> bool:
        self._require(SessionPhase.RESULTS)
        if not self.state.flashcards:
            return False
        self.state.flashcard_index = 0
        self.state.flashcard_flipped = False
        self._set_phase(SessionPhase.FLASHCARDS)
        return True

    def flip(self) -> None:
        self._require(SessionPhase.FLASHCARDS)
        self.state.flashcard_flipped = not self.state.flashcard_flipped

    def next_flashcard(self) -> bool:
        self._require(SessionPhase.FLASHCARDS)
        if self.state.flashcard_index >= len(self.state.flashcards) - 1:
            return False
        self.state.flashcard_index += 1
        self.state.flashcard_flipped = False
        return True

    def previous_flashcard(self) -> bool:
        self._require(SessionPhase.FLASHCARDS)
        if self.state.flashcard_index == 0:
            return False
        self.state.flashcard_index -= 1
        self.state.flashcard_flipped = False
        return True

    async def review_current_flashcard(self) -> ExamFlashcard:
        self._require(SessionPhase.FLASHCARDS)
        card = await self.service.review_flashcard(self.user_id, self.state.current_flashcard.id)
        self.state.flashcards[self.state.flashcard_index] = card
        return card

    def close_flashcards(self) -> None:
        self._require(SessionPhase.FLASHCARDS)
        self._set_phase(SessionPhase.RESULTS)

    # ------------------------------------------------------------------
    # HISTORY
    # ------------------------------------------------------------------

    async def open_history(self) -> None:
        """
        Show past exams.

        Leaving an exam in progress saves its answers first, so it can be
        resumed from the list. If saving fails the exam stays open.
        """
        self._require(
            SessionPhase.CONFIG,
            SessionPhase.IN_PROGRESS,
            SessionPhase.RESULTS,
            SessionPhase.HISTORY,
        )
        if self.state.phase == SessionPhase.IN_PROGRESS:
            self._cancel_auto_advance()
            if not await self._save_progress():
                return
        self._set_phase(SessionPhase.HISTORY)
        try:
            self.state.history = await self.service.list_exams(self.user_id)
        except ExamPipelineError as e:
            logger.warning("Loading exam history failed: %r (%s)", e, e.detail)
            self.state.error = e.message
            self.state.history = []

    async def open_exam(self, exam_id: uuid.UUID) -> bool:
        """Resume an unfinished exam or view the results of a finished one."""
        self._require(SessionPhase.HISTORY)
        try:
            loaded = await self.service.load_exam(self.user_id, exam_id)
        except ExamPipelineError as e:
            logger.warning("Loading exam %s failed: %r", exam_id, e)
            self.state.error = e.message
            return False

        self.state.clear_exam()
        self.state.error = None
        self.state.exam = loaded.exam
        self.state.mode = ExamMode(loaded.exam.mode)
        self.state.questions = loaded.questions
        self.state.responses = {
            response.question_id: RecordedResponse.from_model(response)
            for response in loaded.responses
        }

        if loaded.exam.is_completed:
            self.state.result = loaded.result
            self.state.flashcards = loaded.flashcards
            self._set_phase(SessionPhase.RESULTS)
        else:
            self._enter_in_progress(index=self._first_unanswered_index())
        return True

    def _first_unanswered_index(self) -> int:
        for index, question in enumerate(self.state.questions):
            if question.id not in self.state.responses:
                return index
        return max(len(self.state.questions) - 1, 0)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Drop the current exam and go back to CONFIG, keeping the configuration."""
        self._set_phase(SessionPhase.CONFIG)
        self.state.clear_exam()
        self.state.error = None

    def close(self) -> None:
        """Release timers; call when the session is discarded."""
        self._release_resources()
