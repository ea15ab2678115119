"""
Studianta - Exam Pipeline Errors
Error taxonomy shared by extraction, generation, persistence and scoring.
"""
from enum import Enum


class ErrorKind(str, Enum):
    """Stable identifiers for pipeline failures."""
    NO_VALID_SOURCE_MATERIAL = "NoValidSourceMaterial"
    EMPTY_GENERATION_RESPONSE = "EmptyGenerationResponse"
    MALFORMED_GENERATION_RESPONSE = "MalformedGenerationResponse"
    INVALID_EXAM_SHAPE = "InvalidExamShape"
    PERSISTENCE_FAILURE = "PersistenceFailure"
    SCORING_PRECONDITION = "ScoringPrecondition"
    NOT_FOUND = "NotFound"
    EXAM_ALREADY_COMPLETED = "ExamAlreadyCompleted"


class ExamPipelineError(Exception):
    """
    Base error for the exam pipeline.

    `message` is safe to show to the end user. `detail` holds the technical
    context (raw model output, driver message) and is only ever logged.
    """
    kind: ErrorKind
    status_code: int = 500
    default_message: str = "Error al procesar el examen"

    def __init__(self, message: str | None = None, *, detail: str | None = None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} kind={self.kind.value} message={self.message!r}>"


class NoValidSourceMaterial(ExamPipelineError):
    """No usable extracted text to generate from."""
    kind = ErrorKind.NO_VALID_SOURCE_MATERIAL
    status_code = 400
    default_message = (
        "No se encontraron PDFs válidos en los materiales seleccionados. "
        "Selecciona otros materiales e inténtalo de nuevo."
    )


class EmptyGenerationResponse(ExamPipelineError):
    """The AI collaborator returned no text."""
    kind = ErrorKind.EMPTY_GENERATION_RESPONSE
    default_message = "No se pudo generar el examen. Por favor, intenta nuevamente."


class MalformedGenerationResponse(ExamPipelineError):
    """The returned text could not be recovered as JSON."""
    kind = ErrorKind.MALFORMED_GENERATION_RESPONSE
    default_message = "La respuesta del generador no es válida. Por favor, intenta nuevamente."


class InvalidExamShape(ExamPipelineError):
    """Parsed JSON does not carry a usable question list."""
    kind = ErrorKind.INVALID_EXAM_SHAPE
    default_message = (
        "La respuesta del examen no tiene el formato esperado. "
        "Por favor, intenta nuevamente."
    )


class PersistenceFailure(ExamPipelineError):
    """An insert/update against the store failed."""
    kind = ErrorKind.PERSISTENCE_FAILURE
    default_message = "No se pudo guardar la información del examen."


class ScoringPrecondition(ExamPipelineError):
    """Scoring invoked without responses. Indicates a logic error upstream."""
    kind = ErrorKind.SCORING_PRECONDITION
    default_message = "No hay respuestas para calificar."


class NotFound(ExamPipelineError):
    """Requested record does not exist or is not owned by the caller."""
    kind = ErrorKind.NOT_FOUND
    status_code = 404
    default_message = "Recurso no encontrado"


class ExamAlreadyCompleted(ExamPipelineError):
    """The exam already has a result."""
    kind = ErrorKind.EXAM_ALREADY_COMPLETED
    status_code = 409
    default_message = "El examen ya fue finalizado"
