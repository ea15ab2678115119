"""
Studianta - Exam Session Tests
"""
import asyncio

import pytest
import pytest_asyncio

from studianta.ai.exam_parser import ChoiceKey
from studianta.models.exam import ExamMode
from studianta.services.exam import ExamService
from studianta.services.exam_session import (
    ExamSessionStateMachine,
    InvalidTransition,
    SessionPhase,
)

AUTO_ADVANCE_DELAY = 0.05


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def machine(db_session, material_extractor, examiner, user_id, subject, clock):
    """State machine configured with the seeded subject and all its materials."""
    service = ExamService(db_session, extractor=material_extractor, examiner=examiner)
    machine = ExamSessionStateMachine(
        service,
        user_id,
        tick_interval=0.01,
        auto_advance_delay=AUTO_ADVANCE_DELAY,
        clock=clock,
    )
    machine.select_subject(subject.id)
    for material in subject.materials:
        machine.toggle_material(material.id)
    machine.configure(question_count=5)

    yield machine

    machine.close()


def _wrong(question) -> str:
    return str((int(question.correct_answer) + 1) % len(question.options))


class TestConfiguration:
    """CONFIG phase."""

    @pytest.mark.asyncio
    async def test_requires_subject(self, db_session, user_id):
        machine = ExamSessionStateMachine(ExamService(db_session), user_id)

        assert machine.can_generate is False
        assert await machine.generate() is False
        assert machine.state.error == "Por favor, selecciona una asignatura"
        assert machine.phase == SessionPhase.CONFIG

    @pytest.mark.asyncio
    async def test_requires_materials(self, machine, subject):
        machine.select_subject(subject.id)

        assert await machine.generate() is False
        assert machine.state.error == "Por favor, selecciona al menos un material"

    @pytest.mark.asyncio
    async def test_question_count_bounds(self, machine):
        with pytest.raises(ValueError):
            machine.configure(question_count=4)
        with pytest.raises(ValueError):
            machine.configure(question_count=51)

    @pytest.mark.asyncio
    async def test_answer_outside_exam(self, machine):
        with pytest.raises(InvalidTransition):
            machine.answer(0)

    @pytest.mark.asyncio
    async def test_generation_failure_returns_to_config(
        self, db_session, material_extractor, make_examiner, user_id, subject
    ):
        service = ExamService(db_session, extractor=material_extractor, examiner=make_examiner("{}"))
        machine = ExamSessionStateMachine(service, user_id)
        machine.select_subject(subject.id)
        machine.toggle_material(subject.materials[0].id)

        assert await machine.generate() is False
        assert machine.phase == SessionPhase.CONFIG
        assert "formato esperado" in machine.state.error
        assert machine.ticking is False


class TestRealMode:
    """Answers without feedback, strict navigation."""

    @pytest.mark.asyncio
    async def test_navigation_requires_answer(self, machine):
        machine.configure(mode=ExamMode.REAL)
        assert await machine.generate() is True
        assert machine.phase == SessionPhase.IN_PROGRESS
        assert machine.ticking is True

        assert machine.can_go_next is False
        assert machine.next() is False

        first = machine.state.current_question
        assert machine.answer(first.correct_answer) is True
        assert machine.state.current_index == 1
        assert machine.feedback() is None

        assert machine.previous() is True
        assert machine.can_go_next is True
        assert machine.answer(_wrong(first)) is False
        assert machine.state.responses[first.id].is_correct is True

    @pytest.mark.asyncio
    async def test_time_spent_per_question(self, machine, clock):
        machine.configure(mode=ExamMode.REAL)
        await machine.generate()

        clock.now += 12
        first = machine.state.current_question
        machine.answer(first.correct_answer)

        assert machine.state.responses[first.id].time_spent_seconds == 12

    @pytest.mark.asyncio
    async def test_elapsed_timer_ticks(self, machine):
        await machine.generate()

        await asyncio.sleep(0.1)

        assert machine.state.elapsed_seconds >= 1


class TestGuidedMode:
    """Per-question feedback and auto-advance."""

    @pytest.mark.asyncio
    async def test_feedback_and_auto_advance(self, machine):
        await machine.generate()
        first = machine.state.current_question

        machine.answer(_wrong(first))

        feedback = machine.feedback()
        assert feedback.is_correct is False
        assert feedback.correct_answer == ChoiceKey(int(first.correct_answer))
        assert feedback.explanation == first.explanation
        assert machine.auto_advance_pending is True
        assert machine.state.current_index == 0

        await asyncio.sleep(AUTO_ADVANCE_DELAY * 4)

        assert machine.state.current_index == 1
        assert machine.auto_advance_pending is False

    @pytest.mark.asyncio
    async def test_manual_next_cancels_auto_advance(self, machine):
        await machine.generate()
        machine.answer(machine.state.current_question.correct_answer)

        assert machine.next() is True
        assert machine.auto_advance_pending is False

        await asyncio.sleep(AUTO_ADVANCE_DELAY * 4)

        assert machine.state.current_index == 1

    @pytest.mark.asyncio
    async def test_no_auto_advance_past_last_question(self, machine):
        await machine.generate()
        for _ in range(4):
            machine.next()
        last = machine.state.current_question

        machine.answer(last.correct_answer)

        assert machine.auto_advance_pending is False
        assert machine.state.current_index == 4
        assert machine.phase == SessionPhase.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_leaving_releases_timers(self, machine):
        await machine.generate()
        machine.answer(machine.state.current_question.correct_answer)
        assert machine.auto_advance_pending is True

        await machine.open_history()

        assert machine.phase == SessionPhase.HISTORY
        assert machine.ticking is False
        assert machine.auto_advance_pending is False


class TestFinishing:
    """Finishing, results and flashcards."""

    @pytest.mark.asyncio
    async def test_unanswered_current_question_gets_empty_answer(self, machine):
        machine.configure(mode=ExamMode.REAL)
        await machine.generate()
        for _ in range(4):
            machine.answer(machine.state.current_question.correct_answer)
        last = machine.state.current_question

        assert await machine.finish() is True

        assert machine.phase == SessionPhase.RESULTS
        assert machine.ticking is False
        assert machine.state.responses[last.id].user_answer == ""
        assert machine.state.result.total_questions == 5
        assert machine.state.result.correct_answers == 4
        assert machine.state.result.score_percentage == 80.0
        assert len(machine.state.flashcards) == 1

    @pytest.mark.asyncio
    async def test_flashcard_review(self, machine):
        machine.configure(mode=ExamMode.REAL)
        await machine.generate()
        for _ in range(4):
            machine.answer(_wrong(machine.state.current_question))
        await machine.finish()

        assert machine.open_flashcards() is True
        assert machine.phase == SessionPhase.FLASHCARDS

        machine.flip()
        assert machine.state.flashcard_flipped is True
        assert machine.next_flashcard() is True
        assert machine.state.flashcard_index == 1
        assert machine.state.flashcard_flipped is False

        card = await machine.review_current_flashcard()
        assert card.reviewed_count == 1

        machine.close_flashcards()
        assert machine.phase == SessionPhase.RESULTS

    @pytest.mark.asyncio
    async def test_no_flashcards_when_all_correct(self, machine):
        machine.configure(mode=ExamMode.REAL)
        await machine.generate()
        for _ in range(5):
            machine.answer(machine.state.current_question.correct_answer)
        await machine.finish()

        assert machine.state.result.mastery_level == "expert"
        assert machine.open_flashcards() is False
        assert machine.phase == SessionPhase.RESULTS


    @pytest.mark.asyncio
    async def test_skipped_questions_are_scored(self, machine):
        await machine.generate()
        questions = machine.state.questions

        machine.answer(machine.state.current_question.correct_answer)
        for _ in range(4):
            assert machine.next() is True
        machine.answer(machine.state.current_question.correct_answer)

        assert await machine.finish() is True

        result = machine.state.result
        assert result.total_questions == len(questions)
        assert result.correct_answers == 2
        assert result.score_percentage == 40.0
        assert len(machine.state.responses) == len(questions)
        assert [machine.state.responses[q.id].user_answer for q in questions[1:4]] == ["", "", ""]
        assert len(machine.state.flashcards) == 3


class TestHistory:
    """Suspending, resuming and reviewing past exams."""

    @pytest.mark.asyncio
    async def test_resume_unfinished_exam(self, machine):
        machine.configure(mode=ExamMode.REAL)
        await machine.generate()
        exam_id = machine.state.exam.id
        machine.answer(machine.state.current_question.correct_answer)
        machine.answer(machine.state.current_question.correct_answer)

        assert await machine.suspend() is True
        assert machine.phase == SessionPhase.CONFIG
        assert machine.state.exam is None

        await machine.open_history()
        assert [exam.id for exam in machine.state.history] == [exam_id]

        assert await machine.open_exam(exam_id) is True
        assert machine.phase == SessionPhase.IN_PROGRESS
        assert machine.state.mode == ExamMode.REAL
        assert machine.state.current_index == 2
        assert machine.state.elapsed_seconds == 0
        assert len(machine.state.responses) == 2
        assert machine.ticking is True

    @pytest.mark.asyncio
    async def test_leaving_for_history_keeps_progress(self, machine):
        machine.configure(mode=ExamMode.REAL)
        await machine.generate()
        exam_id = machine.state.exam.id
        answered = []
        for _ in range(2):
            answered.append(machine.state.current_question.id)
            machine.answer(machine.state.current_question.correct_answer)

        await machine.open_history()
        assert machine.phase == SessionPhase.HISTORY
        assert await machine.open_exam(exam_id) is True

        assert machine.phase == SessionPhase.IN_PROGRESS
        assert sorted(machine.state.responses) == sorted(answered)
        assert all(response.is_correct for response in machine.state.responses.values())
        assert machine.state.current_index == 2
        assert machine.can_go_next is False

    @pytest.mark.asyncio
    async def test_open_finished_exam(self, machine):
        machine.configure(mode=ExamMode.REAL)
        await machine.generate()
        exam_id = machine.state.exam.id
        for _ in range(5):
            machine.answer(machine.state.current_question.correct_answer)
        await machine.finish()

        await machine.open_history()
        assert await machine.open_exam(exam_id) is True

        assert machine.phase == SessionPhase.RESULTS
        assert machine.state.result.score_percentage == 100.0
        assert machine.ticking is False
