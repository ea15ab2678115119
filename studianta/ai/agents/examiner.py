"""
Studianta - Examiner Agent
Builds the exam-generation request from extracted study material and turns the
model's answer into a validated exam draft.
"""
import logging
from typing import Any, Dict, Optional

from studianta.ai.agents.base import AgentContext, AgentResult, AgentState, BaseAgent
from studianta.ai.core.llm import LLMClient
from studianta.ai.core.telemetry import agent_span
from studianta.ai.exam_parser import parse_exam_response
from studianta.core.config import settings
from studianta.core.errors import EmptyGenerationResponse
from studianta.models.exam import ExamDifficulty, ExamType
from studianta.schemas.exam import ExamGenerationRequest, GeneratedExam

logger = logging.getLogger(__name__)


SYSTEM_INSTRUCTION = """Eres un profesor universitario experto en evaluación. Creas exámenes a partir
del material de estudio que te entrega el estudiante.

REGLAS OBLIGATORIAS:
1. FIDELIDAD: usa ÚNICAMENTE la información del material proporcionado. No inventes datos,
   fechas, autores ni conceptos que no aparezcan en el texto.
2. DIFICULTAD: salvo que se pida un nivel concreto, reparte las preguntas aproximadamente
   20% fáciles, 60% intermedias y 20% difíciles.
3. DISTRACTORES: en preguntas de opción múltiple, las opciones incorrectas deben ser
   plausibles y del mismo ámbito que la correcta, pero claramente incorrectas según el material.
4. JUSTIFICACIÓN: cada pregunta DEBE incluir "explanation" (por qué la respuesta es correcta),
   "rationale" (qué concepto evalúa y por qué las demás opciones fallan) y "sourceMaterial"
   (la sección o material del que proviene, por ejemplo "Material 2").
5. FORMATO: responde con UN ÚNICO objeto JSON válido, sin markdown ni texto adicional.

ESTRUCTURA JSON:
{
  "exam": {
    "title": "Título del examen",
    "questions": [
      {
        "number": 1,
        "type": "multiple-choice",
        "text": "Enunciado de la pregunta",
        "options": ["Opción A", "Opción B", "Opción C", "Opción D"],
        "correctAnswer": "0",
        "explanation": "Por qué la respuesta es correcta",
        "rationale": "Qué concepto evalúa la pregunta",
        "sourceMaterial": "Material 1",
        "difficulty": "easy | intermediate | hard"
      }
    ]
  }
}"""

TYPE_GUIDANCE = {
    ExamType.MULTIPLE_CHOICE: (
        'Opción múltiple: exactamente 4 opciones en "options"; "correctAnswer" es el índice '
        'de la opción correcta como texto ("0" a "3").'
    ),
    ExamType.TRUE_FALSE: (
        'Verdadero/Falso: "options" es exactamente ["Verdadero", "Falso"]; "correctAnswer" '
        'es "0" si la afirmación es verdadera y "1" si es falsa.'
    ),
    ExamType.OPEN_ENDED: (
        'Respuesta abierta: "options" es null; "correctAnswer" es la respuesta esperada, '
        'breve y literal (una palabra o frase corta).'
    ),
    ExamType.CLOZE: (
        'Completar espacios: el enunciado contiene un hueco marcado con "____"; "options" es null; '
        '"correctAnswer" es la palabra o expresión exacta que completa el hueco.'
    ),
    ExamType.CASE_STUDY: (
        'Caso práctico: el enunciado describe una situación breve basada en el material y termina '
        'con una pregunta; "options" es null; "correctAnswer" es la respuesta clave, breve.'
    ),
}

DIFFICULTY_GUIDANCE = {
    ExamDifficulty.EASY: "Todas las preguntas deben ser de nivel fácil (difficulty: easy).",
    ExamDifficulty.MEDIUM: "Todas las preguntas deben ser de nivel intermedio (difficulty: intermediate).",
    ExamDifficulty.HARD: "Todas las preguntas deben ser de nivel difícil (difficulty: hard).",
    ExamDifficulty.MIXED: "Mezcla niveles con la distribución 20% easy, 60% intermediate, 20% hard.",
}


def build_system_instruction() -> str:
    """Fixed instruction sent with every exam-generation call."""
    return SYSTEM_INSTRUCTION


def build_user_prompt(request: ExamGenerationRequest) -> str:
    """Embed the request parameters and the source text."""
    exam_type = ExamType(request.exam_type)
    difficulty = ExamDifficulty(request.difficulty)

    return f"""Genera un examen de la asignatura "{request.subject_name}".

PARÁMETROS:
- Número de preguntas: {request.question_count}
- Tipo de pregunta: {exam_type.value}
- Dificultad: {difficulty.value}

FORMATO DEL TIPO DE PREGUNTA:
{TYPE_GUIDANCE[exam_type]}

DIFICULTAD:
{DIFFICULTY_GUIDANCE[difficulty]}

Si el material no alcanza para {request.question_count} preguntas de calidad, genera MENOS
preguntas en lugar de inventar contenido que no esté en el texto.

MATERIAL DE ESTUDIO:
{request.materials_text}"""


class ExaminerAgent(BaseAgent):
    """
    The Examiner Agent.

    Generates a full exam from the concatenated study material in one call.

    Uses the Plan-Execute pattern:
    - Plan: build the system instruction and user prompt (pure)
    - Execute: call the model in JSON mode and parse the answer
    """

    name = "ExaminerAgent"
    description = "Generates exams from study materials"
    version = "1.0.0"

    def __init__(self, llm_client: Optional[LLMClient] = None):
        super().__init__(
            llm_client=llm_client,
            temperature=settings.EXAM_TEMPERATURE,
            json_mode=True,
        )

    async def plan(self, context: AgentContext) -> Dict[str, Any]:
        request: ExamGenerationRequest = context.metadata["request"]

        return {
            "action": "generate_exam",
            "request": request,
            "system_prompt": build_system_instruction(),
            "prompt": build_user_prompt(request),
        }

    async def execute(self, context: AgentContext, plan: Dict[str, Any]) -> AgentResult:
        request: ExamGenerationRequest = plan["request"]

        with agent_span(
            "generate_exam",
            self.name,
            {
                "exam.subject": request.subject_name,
                "exam.type": ExamType(request.exam_type).value,
                "exam.question_count": request.question_count,
                "exam.materials_length": len(request.materials_text),
            },
        ) as span:
            response = await self.llm.generate(
                prompt=plan["prompt"],
                system_prompt=plan["system_prompt"],
                agent_name=self.name,
            )

            if not response.content or not response.content.strip():
                raise EmptyGenerationResponse(detail=f"{response.model} returned no text")

            exam = parse_exam_response(
                response.content,
                subject_name=request.subject_name,
                exam_type=request.exam_type,
            )

            if len(exam.questions) < request.question_count:
                logger.info(
                    "Generated %d of %d requested questions for %r",
                    len(exam.questions), request.question_count, request.subject_name,
                )
            span.set_attribute("exam.questions_generated", len(exam.questions))

            return AgentResult(
                success=True,
                output=exam,
                state=AgentState.COMPLETED,
                metadata={
                    "model": response.model,
                    "tokens_total": response.tokens_total,
                },
            )

    async def generate_exam(
        self,
        request: ExamGenerationRequest,
        session_id: Optional[str] = None,
    ) -> GeneratedExam:
        """
        Generate and validate an exam.

        Raises:
            EmptyGenerationResponse: the model returned no text
            MalformedGenerationResponse: the text is not recoverable JSON
            InvalidExamShape: the JSON carries no usable questions
        """
        result = await self.run(
            user_input=f"Generate a {request.question_count}-question exam about {request.subject_name}",
            session_id=session_id,
            metadata={"request": request},
        )
        return result.unwrap()


# Singleton instance
examiner_agent = ExaminerAgent()
