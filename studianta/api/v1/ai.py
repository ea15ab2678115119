"""
Studianta - AI Proxy API
Server-side entry point to the generative-AI service. The provider API key
never leaves the server; clients post `{type, ...params}`.
"""
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from studianta.ai.agents.examiner import ExaminerAgent
from studianta.api.deps import CurrentUserId, get_examiner
from studianta.core.errors import ExamPipelineError
from studianta.schemas.exam import ExamGenerationRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["AI"])

EXAM_GENERATION = "exam-generation"
SUPPORTED_TYPES = (EXAM_GENERATION,)


def _error(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message})


def _validation_message(error: ValidationError) -> str:
    fields = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        fields.append(f"{location}: {item['msg']}")
    return "; ".join(fields)


@router.post("")
async def ai_proxy(
    user_id: CurrentUserId,
    examiner: Annotated[ExaminerAgent, Depends(get_examiner)],
    payload: Annotated[dict[str, Any], Body()],
):
    """
    Forward a typed request to the AI service.

    `exam-generation` expects subjectName, materialsText, examType,
    questionCount and difficulty, and answers `{exam: {title, questions}}`.
    """
    params = dict(payload)
    request_type = params.pop("type", None)

    if not request_type:
        return _error(status.HTTP_400_BAD_REQUEST, "Tipo de consulta requerido", "Falta el campo 'type'")
    if request_type not in SUPPORTED_TYPES:
        return _error(
            status.HTTP_400_BAD_REQUEST,
            "Tipo de consulta no válido",
            f"Tipos soportados: {', '.join(SUPPORTED_TYPES)}",
        )

    try:
        request = ExamGenerationRequest.model_validate(params)
    except ValidationError as e:
        return _error(status.HTTP_400_BAD_REQUEST, "Parámetros inválidos", _validation_message(e))

    if not examiner.llm.has_credentials:
        logger.error("AI proxy called without an API key for provider %s", examiner.llm.provider)
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "API key no configurada",
            "El servicio de IA no está configurado en el servidor.",
        )

    try:
        exam = await examiner.generate_exam(request, session_id=str(user_id))
    except ExamPipelineError as e:
        logger.error("AI proxy %s failed: %r (%s)", request_type, e, e.detail)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Error al generar el examen", e.message)
    except Exception:
        logger.exception("AI proxy %s failed", request_type)
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Error al procesar la consulta",
            "No se pudo generar el examen. Por favor, intenta nuevamente.",
        )

    return exam.to_wire()
