"""
Studianta - Examiner Agent Tests
"""
import json

import pytest

from studianta.ai.agents.base import AgentContext
from studianta.ai.agents.examiner import (
    ExaminerAgent,
    build_system_instruction,
    build_user_prompt,
)
from studianta.core.config import settings
from studianta.core.errors import (
    EmptyGenerationResponse,
    InvalidExamShape,
    MalformedGenerationResponse,
)
from studianta.models.exam import ExamDifficulty, ExamType
from studianta.schemas.exam import ExamGenerationRequest


def _request(**overrides) -> ExamGenerationRequest:
    fields = {
        "subject_name": "Biología Celular",
        "materials_text": "--- Material 1 ---\nLa mitocondria produce ATP.",
        "exam_type": ExamType.MULTIPLE_CHOICE,
        "question_count": 5,
        "difficulty": ExamDifficulty.MEDIUM,
    }
    fields.update(overrides)
    return ExamGenerationRequest(**fields)


class TestPrompts:
    """Prompt construction."""

    def test_system_instruction_demands_json(self):
        instruction = build_system_instruction()
        assert "JSON" in instruction
        assert "correctAnswer" in instruction

    def test_user_prompt_carries_request(self):
        prompt = build_user_prompt(_request(exam_type=ExamType.TRUE_FALSE, question_count=12))

        assert "Biología Celular" in prompt
        assert "12" in prompt
        assert "MENOS" in prompt
        assert "MATERIAL DE ESTUDIO:\n--- Material 1 ---\nLa mitocondria produce ATP." in prompt

    def test_request_accepts_wire_aliases(self):
        request = ExamGenerationRequest.model_validate({
            "subjectName": "Química",
            "materialsText": "Enlaces covalentes",
            "examType": "cloze",
            "questionCount": 8,
            "difficulty": "hard",
        })
        assert request.exam_type == ExamType.CLOZE
        assert request.question_count == 8


class TestExaminerAgent:
    """Generation through a fake chat model."""

    def test_generation_settings(self):
        agent = ExaminerAgent()
        assert agent.llm.json_mode is True
        assert agent.llm.temperature == settings.EXAM_TEMPERATURE

    @pytest.mark.asyncio
    async def test_plan_is_pure(self, examiner):
        request = _request()
        context = AgentContext(session_id="test", user_input="", metadata={"request": request})

        plan = await examiner.plan(context)

        assert plan["action"] == "generate_exam"
        assert plan["prompt"] == build_user_prompt(request)

    @pytest.mark.asyncio
    async def test_generate_exam(self, examiner):
        exam = await examiner.generate_exam(_request())

        assert exam.title == "Examen de Biología Celular"
        assert len(exam.questions) == 5
        assert [q.correct_answer for q in exam.questions] == ["1", "2", "3", "0", "1"]

    @pytest.mark.asyncio
    async def test_fewer_questions_than_requested(self, make_examiner, make_exam_payload):
        examiner = make_examiner(json.dumps(make_exam_payload(count=3)))

        exam = await examiner.generate_exam(_request(question_count=10))

        assert len(exam.questions) == 3

    @pytest.mark.asyncio
    async def test_empty_response(self, make_examiner):
        with pytest.raises(EmptyGenerationResponse):
            await make_examiner("").generate_exam(_request())

    @pytest.mark.asyncio
    async def test_prose_response(self, make_examiner):
        with pytest.raises(MalformedGenerationResponse):
            await make_examiner("No tengo suficiente información.").generate_exam(_request())

    @pytest.mark.asyncio
    async def test_empty_object(self, make_examiner):
        with pytest.raises(InvalidExamShape):
            await make_examiner("{}").generate_exam(_request())
