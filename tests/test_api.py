"""
Studianta - API Tests
"""
import uuid

import pytest
from httpx import AsyncClient

from studianta.ai.agents.examiner import ExaminerAgent
from studianta.ai.core.llm import LLMClient
from studianta.api.deps import get_examiner
from studianta.core.config import settings
from studianta.core.security import create_access_token
from studianta.main import app

API = settings.API_V1_PREFIX


def _generate_body(subject, **overrides) -> dict:
    body = {
        "subject_id": str(subject.id),
        "material_ids": [str(material.id) for material in subject.materials],
        "exam_type": "multiple-choice",
        "question_count": 5,
        "difficulty": "mixed",
        "mode": "guided",
    }
    body.update(overrides)
    return body


def _proxy_body(**overrides) -> dict:
    body = {
        "type": "exam-generation",
        "subjectName": "Biología Celular",
        "materialsText": "--- Material 1 ---\nLa mitocondria produce ATP.",
        "examType": "multiple-choice",
        "questionCount": 5,
        "difficulty": "medium",
    }
    body.update(overrides)
    return body


async def _generate(client: AsyncClient, auth_headers, subject) -> dict:
    response = await client.post(f"{API}/exams/generate", json=_generate_body(subject), headers=auth_headers)
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    """Test health check endpoint."""
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestExamEndpoints:
    """Exam generation, answering and review."""

    @pytest.mark.asyncio
    async def test_requires_token(self, client: AsyncClient):
        response = await client.get(f"{API}/exams")
        assert response.status_code in (401, 403)

    @pytest.mark.asyncio
    async def test_rejects_invalid_token(self, client: AsyncClient):
        response = await client.get(f"{API}/exams", headers={"Authorization": "Bearer invalid"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_generate(self, client: AsyncClient, auth_headers, subject):
        data = await _generate(client, auth_headers, subject)

        assert data["exam"]["title"] == "Examen de Biología Celular"
        assert data["exam"]["question_count"] == 5
        assert data["exam"]["completed_at"] is None
        assert len(data["questions"]) == 5
        assert data["questions"][0]["correct_answer"] == "1"

    @pytest.mark.asyncio
    async def test_generate_validates_question_count(self, client: AsyncClient, auth_headers, subject):
        response = await client.post(
            f"{API}/exams/generate",
            json=_generate_body(subject, question_count=60),
            headers=auth_headers,
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_generate_unknown_subject(self, client: AsyncClient, auth_headers, subject):
        response = await client.post(
            f"{API}/exams/generate",
            json=_generate_body(subject, subject_id=str(uuid.uuid4())),
            headers=auth_headers,
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "Asignatura no encontrada"

    @pytest.mark.asyncio
    async def test_generate_with_unreadable_materials(
        self, client: AsyncClient, auth_headers, subject, document_extractor
    ):
        for material in subject.materials:
            document_extractor.failures[material.file_url] = "El PDF no contiene texto extraíble."

        response = await client.post(f"{API}/exams/generate", json=_generate_body(subject), headers=auth_headers)

        assert response.status_code == 400
        assert "PDFs válidos" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_generate_malformed_model_output(
        self, client: AsyncClient, auth_headers, subject, make_examiner
    ):
        app.dependency_overrides[get_examiner] = lambda: make_examiner("esto no es JSON")

        response = await client.post(f"{API}/exams/generate", json=_generate_body(subject), headers=auth_headers)

        assert response.status_code == 500
        assert "esto no es JSON" not in response.text

    @pytest.mark.asyncio
    async def test_take_and_finish(self, client: AsyncClient, auth_headers, subject):
        data = await _generate(client, auth_headers, subject)
        exam_id = data["exam"]["id"]
        questions = data["questions"]

        # Save progress on the first two questions, then finish with the rest
        progress = [
            {"question_id": q["id"], "user_answer": q["correct_answer"], "time_spent_seconds": 8}
            for q in questions[:2]
        ]
        response = await client.post(
            f"{API}/exams/{exam_id}/responses",
            json={"responses": progress},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert all(item["is_correct"] for item in response.json())

        final = [
            {"question_id": questions[2]["id"], "user_answer": int(questions[2]["correct_answer"])},
            {"question_id": questions[3]["id"], "user_answer": "3"},
            {"question_id": questions[4]["id"], "user_answer": ""},
        ]
        response = await client.post(
            f"{API}/exams/{exam_id}/finish",
            json={"responses": final},
            headers=auth_headers,
        )
        assert response.status_code == 200

        finished = response.json()
        assert finished["result"]["correct_answers"] == 3
        assert finished["result"]["score_percentage"] == 60.0
        assert finished["result"]["mastery_level"] == "intermediate"
        assert finished["result"]["time_spent_total"] == 16
        assert len(finished["flashcards"]) == 2

        response = await client.post(
            f"{API}/exams/{exam_id}/finish",
            json={"responses": final},
            headers=auth_headers,
        )
        assert response.status_code == 409

        response = await client.get(f"{API}/exams/{exam_id}", headers=auth_headers)
        detail = response.json()
        assert detail["exam"]["completed_at"] is not None
        assert detail["result"]["score_percentage"] == 60.0
        assert len(detail["responses"]) == 5

        flashcard_id = finished["flashcards"][0]["id"]
        response = await client.post(
            f"{API}/exams/flashcards/{flashcard_id}/review",
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["reviewed_count"] == 1

    @pytest.mark.asyncio
    async def test_list_and_delete(self, client: AsyncClient, auth_headers, subject):
        data = await _generate(client, auth_headers, subject)
        exam_id = data["exam"]["id"]

        response = await client.get(f"{API}/exams", params={"subject_id": str(subject.id)}, headers=auth_headers)
        assert [exam["id"] for exam in response.json()] == [exam_id]

        response = await client.delete(f"{API}/exams/{exam_id}", headers=auth_headers)
        assert response.status_code == 204

        response = await client.get(f"{API}/exams/{exam_id}", headers=auth_headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_exam_of_another_user(self, client: AsyncClient, auth_headers, subject):
        data = await _generate(client, auth_headers, subject)
        other = {"Authorization": f"Bearer {create_access_token(str(uuid.uuid4()))}"}

        response = await client.get(f"{API}/exams/{data['exam']['id']}", headers=other)

        assert response.status_code == 404


class TestAIProxy:
    """Server-side AI proxy."""

    @pytest.mark.asyncio
    async def test_generates_exam(self, client: AsyncClient, auth_headers):
        response = await client.post(f"{API}/ai", json=_proxy_body(), headers=auth_headers)

        assert response.status_code == 200
        exam = response.json()["exam"]
        assert exam["title"] == "Examen de Biología Celular"
        assert len(exam["questions"]) == 5
        assert exam["questions"][0]["correctAnswer"] == "1"
        assert exam["questions"][0]["sourceMaterial"] == "Material 1"

    @pytest.mark.asyncio
    async def test_missing_type(self, client: AsyncClient, auth_headers):
        body = _proxy_body()
        del body["type"]

        response = await client.post(f"{API}/ai", json=body, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Tipo de consulta requerido"

    @pytest.mark.asyncio
    async def test_unknown_type(self, client: AsyncClient, auth_headers):
        response = await client.post(f"{API}/ai", json=_proxy_body(type="chat"), headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Tipo de consulta no válido"

    @pytest.mark.asyncio
    async def test_invalid_parameters(self, client: AsyncClient, auth_headers):
        response = await client.post(f"{API}/ai", json=_proxy_body(questionCount=3), headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Parámetros inválidos"
        assert "questionCount" in response.json()["message"]

    @pytest.mark.asyncio
    async def test_malformed_model_output(self, client: AsyncClient, auth_headers, make_examiner):
        app.dependency_overrides[get_examiner] = lambda: make_examiner("Lo siento, no puedo.")

        response = await client.post(f"{API}/ai", json=_proxy_body(), headers=auth_headers)

        assert response.status_code == 500
        assert response.json()["error"] == "Error al generar el examen"

    @pytest.mark.asyncio
    async def test_missing_api_key(self, client: AsyncClient, auth_headers, monkeypatch):
        monkeypatch.setattr(settings, "GEMINI_API_KEY", "")
        examiner = ExaminerAgent(llm_client=LLMClient(provider="google"))
        app.dependency_overrides[get_examiner] = lambda: examiner

        response = await client.post(f"{API}/ai", json=_proxy_body(), headers=auth_headers)

        assert response.status_code == 500
        assert response.json()["error"] == "API key no configurada"

    @pytest.mark.asyncio
    async def test_invalid_parameters_without_api_key(self, client: AsyncClient, auth_headers, monkeypatch):
        monkeypatch.setattr(settings, "GEMINI_API_KEY", "")
        examiner = ExaminerAgent(llm_client=LLMClient(provider="google"))
        app.dependency_overrides[get_examiner] = lambda: examiner

        response = await client.post(f"{API}/ai", json=_proxy_body(questionCount=3), headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Parámetros inválidos"
