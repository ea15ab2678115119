"""
Studianta - Exam Response Parser
Recovers and validates the exam JSON returned by the generator.

Accepted shapes (normalized to the first one):
    {"exam": {"title": ..., "questions": [...]}}
    {"title": ..., "questions": [...]}
    {"questions": [...]}
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from studianta.core.errors import InvalidExamShape, MalformedGenerationResponse
from studianta.models.exam import TRUE_FALSE_OPTIONS, ExamType, QuestionDifficulty
from studianta.schemas.exam import GeneratedExam, GeneratedQuestion

logger = logging.getLogger(__name__)

GREEDY_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
OPTION_LETTER_RE = re.compile(r"^([A-Fa-f])[\).:]?$")

TRUE_KEYS = {"0", "verdadero", "true", "v", "cierto"}
FALSE_KEYS = {"1", "falso", "false", "f"}

DIFFICULTY_ALIASES = {
    "easy": QuestionDifficulty.EASY,
    "facil": QuestionDifficulty.EASY,
    "fácil": QuestionDifficulty.EASY,
    "medium": QuestionDifficulty.INTERMEDIATE,
    "intermediate": QuestionDifficulty.INTERMEDIATE,
    "media": QuestionDifficulty.INTERMEDIATE,
    "intermedia": QuestionDifficulty.INTERMEDIATE,
    "hard": QuestionDifficulty.HARD,
    "difficult": QuestionDifficulty.HARD,
    "dificil": QuestionDifficulty.HARD,
    "difícil": QuestionDifficulty.HARD,
}

# Raw model output is logged truncated
LOG_SNIPPET_CHARS = 2000


class QuestionRejected(ValueError):
    """A single generated question cannot be used."""


# ============================================================================
# JSON recovery
# ============================================================================

def _strip_code_fences(text: str) -> str:
    content = text.strip()
    if content.startswith("```json"):
        content = content[7:]
    elif content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()


def _balanced_object_spans(text: str) -> list[str]:
    """Top-level `{...}` spans with balanced braces, ignoring braces inside strings."""
    spans = []
    depth = 0
    start = 0
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"' and depth > 0:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                spans.append(text[start:i + 1])

    return spans


def extract_json_object(raw: str | None) -> Any:
    """
    Parse the generator output.

    Tries a direct parse first, then the largest balanced `{...}` substring,
    then the greedy first-brace-to-last-brace span.

    Raises:
        MalformedGenerationResponse: empty input or nothing parseable
    """
    if raw is None or not raw.strip():
        raise MalformedGenerationResponse(detail="empty generation response")

    content = _strip_code_fences(raw)
    try:
        return json.loads(content)
    except ValueError:
        pass

    candidates = sorted(_balanced_object_spans(content), key=len, reverse=True)
    greedy = GREEDY_OBJECT_RE.search(content)
    if greedy and greedy.group(0) not in candidates:
        candidates.append(greedy.group(0))

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except ValueError:
            continue

    snippet = raw[:LOG_SNIPPET_CHARS]
    logger.error("Unparseable generation response (%d chars): %s", len(raw), snippet)
    raise MalformedGenerationResponse(detail=snippet)


# ============================================================================
# Question normalization
# ============================================================================

def _first_text(raw: dict, *keys: str) -> str | None:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _coerce_type(value: Any, default: ExamType) -> ExamType:
    if isinstance(value, str):
        try:
            return ExamType(value.strip().lower().replace("_", "-"))
        except ValueError:
            pass
    return default


def _coerce_difficulty(value: Any) -> QuestionDifficulty:
    if isinstance(value, str):
        return DIFFICULTY_ALIASES.get(value.strip().lower(), QuestionDifficulty.INTERMEDIATE)
    return QuestionDifficulty.INTERMEDIATE


def _clean_options(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(option).strip() for option in value if option is not None and str(option).strip()]


def _true_false_key(answer: Any) -> str:
    if isinstance(answer, bool):
        return "0" if answer else "1"
    normalized = str(answer).strip().lower() if answer is not None else ""
    if normalized in TRUE_KEYS:
        return "0"
    if normalized in FALSE_KEYS:
        return "1"
    raise QuestionRejected(f"unusable true/false answer {answer!r}")


def _choice_key(answer: Any, options: list[str]) -> str:
    index = None

    if isinstance(answer, bool) or answer is None:
        raise QuestionRejected(f"unusable choice answer {answer!r}")

    if isinstance(answer, int):
        index = answer
    else:
        text = str(answer).strip()
        if text.isdigit() and int(text) < len(options):
            index = int(text)
        else:
            lowered = [option.casefold() for option in options]
            if text.casefold() in lowered:
                index = lowered.index(text.casefold())
            else:
                letter = OPTION_LETTER_RE.match(text)
                if letter:
                    index = ord(letter.group(1).upper()) - ord("A")

    if index is None or not 0 <= index < len(options):
        raise QuestionRejected(f"answer {answer!r} is not a valid option index")
    return str(index)


def normalize_question(raw: Any, default_type: ExamType, number: int) -> GeneratedQuestion:
    """
    Normalize one generated question.

    Raises:
        QuestionRejected: the question has no text or no usable answer key
    """
    if not isinstance(raw, dict):
        raise QuestionRejected("question is not an object")

    text = _first_text(raw, "text", "question", "question_text")
    if not text:
        raise QuestionRejected("question has no text")

    question_type = _coerce_type(raw.get("type") or raw.get("question_type"), default_type)
    answer = raw.get("correctAnswer", raw.get("correct_answer", raw.get("answer")))

    if question_type == ExamType.TRUE_FALSE:
        options = list(TRUE_FALSE_OPTIONS)
        correct_answer = _true_false_key(answer)
    elif question_type == ExamType.MULTIPLE_CHOICE:
        options = _clean_options(raw.get("options"))
        if len(options) < 2:
            raise QuestionRejected("multiple-choice question needs at least two options")
        correct_answer = _choice_key(answer, options)
    else:
        options = _clean_options(raw.get("options")) or None
        if answer is None or not str(answer).strip():
            raise QuestionRejected("free-response question has no expected answer")
        correct_answer = str(answer).strip()

    return GeneratedQuestion(
        number=number,
        type=question_type,
        text=text,
        options=options,
        correct_answer=correct_answer,
        explanation=_first_text(raw, "explanation"),
        rationale=_first_text(raw, "rationale"),
        source_material=_first_text(raw, "sourceMaterial", "source_material", "source"),
        difficulty=_coerce_difficulty(raw.get("difficulty")),
    )


def normalize_exam_payload(
    data: Any,
    subject_name: str,
    exam_type: ExamType | str,
) -> GeneratedExam:
    """
    Normalize any accepted shape into a GeneratedExam.

    Raises:
        InvalidExamShape: empty object, unknown shape, or no usable questions
    """
    if not data or not isinstance(data, dict):
        raise InvalidExamShape(detail=f"unexpected payload type {type(data).__name__}")

    body = data["exam"] if "exam" in data else data
    if not body or not isinstance(body, dict):
        raise InvalidExamShape(detail="'exam' is empty or not an object")

    questions = body.get("questions")
    if not isinstance(questions, list):
        raise InvalidExamShape(detail=f"'questions' missing or not a list (keys: {sorted(body)})")

    title = body.get("title")
    if not isinstance(title, str) or not title.strip():
        title = f"Examen de {subject_name}"

    default_type = ExamType(exam_type)
    normalized: list[GeneratedQuestion] = []
    for position, raw_question in enumerate(questions, start=1):
        try:
            normalized.append(
                normalize_question(raw_question, default_type, number=len(normalized) + 1)
            )
        except QuestionRejected as e:
            logger.warning("Dropping generated question #%d: %s", position, e)

    if not normalized:
        raise InvalidExamShape(
            "No se generaron preguntas. El material puede ser insuficiente o el formato no es válido.",
            detail=f"{len(questions)} questions received, none usable",
        )

    return GeneratedExam(title=title.strip(), questions=normalized)


def parse_exam_response(
    raw: str | None,
    subject_name: str,
    exam_type: ExamType | str,
) -> GeneratedExam:
    """Text in, validated exam draft out. No side effects besides logging."""
    return normalize_exam_payload(extract_json_object(raw), subject_name, exam_type)


# ============================================================================
# Answer keys
# ============================================================================

@dataclass(frozen=True)
class ChoiceKey:
    """Correct option of a multiple-choice or true-false question."""
    index: int

    def __str__(self) -> str:
        return str(self.index)


@dataclass(frozen=True)
class TextKey:
    """Expected answer of a free-response question."""
    text: str

    def __str__(self) -> str:
        return self.text


AnswerKey = ChoiceKey | TextKey


def parse_choice_index(value: Any) -> int | None:
    """Option index from an int or a numeric string (`2`, `"2"`, `" 02 "`)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip() if value is not None else ""
    return int(text) if text.isdigit() else None


def answer_key(question_type: ExamType | str, correct_answer: str) -> AnswerKey:
    """Typed view of the stored `correct_answer` string."""
    if ExamType(question_type).is_choice:
        index = parse_choice_index(correct_answer)
        if index is not None:
            return ChoiceKey(index)
    return TextKey(str(correct_answer).strip())
