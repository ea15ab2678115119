"""
Studianta - Scoring Engine
Answer correctness, exam score and mastery level.
"""
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

from studianta.ai.exam_parser import ChoiceKey, answer_key, parse_choice_index
from studianta.core.errors import ScoringPrecondition
from studianta.models.exam import ExamType, MasteryLevel

# Lower bound (inclusive) of each mastery level, highest first
MASTERY_THRESHOLDS = (
    (90.0, MasteryLevel.EXPERT),
    (75.0, MasteryLevel.ADVANCED),
    (60.0, MasteryLevel.INTERMEDIATE),
)


class ScoredResponse(Protocol):
    is_correct: bool
    time_spent_seconds: int


@dataclass(frozen=True)
class ScoreSummary:
    """Aggregate of one exam's responses."""
    total_questions: int
    correct_answers: int
    score_percentage: float
    time_spent_total: int
    mastery_level: MasteryLevel


def is_answer_correct(user_answer: Any, correct_answer: str, question_type: ExamType | str) -> bool:
    """
    Grade one answer.

    Choice questions compare option indices, so `"02"` and `2` both match a
    stored `"2"`. Free-response questions compare trimmed text ignoring case.
    """
    key = answer_key(question_type, correct_answer)

    if isinstance(key, ChoiceKey):
        index = parse_choice_index(user_answer)
        if index is not None:
            return index == key.index

    if ExamType(question_type).is_choice:
        submitted = "" if user_answer is None else str(user_answer).strip()
        return submitted == str(correct_answer).strip()

    submitted = "" if user_answer is None else str(user_answer)
    return submitted.strip().casefold() == str(key).casefold()


def calculate_mastery_level(score_percentage: float) -> MasteryLevel:
    for threshold, level in MASTERY_THRESHOLDS:
        if score_percentage >= threshold:
            return level
    return MasteryLevel.BEGINNER


def score_responses(responses: Iterable[ScoredResponse]) -> ScoreSummary:
    """
    Score a finished exam (one response per question).

    Raises:
        ScoringPrecondition: no responses to score
    """
    responses = list(responses)
    total = len(responses)
    if total == 0:
        raise ScoringPrecondition(detail="score_responses called with zero responses")

    correct = sum(1 for response in responses if response.is_correct)
    percentage = 100 * correct / total

    return ScoreSummary(
        total_questions=total,
        correct_answers=correct,
        score_percentage=percentage,
        time_spent_total=sum(response.time_spent_seconds or 0 for response in responses),
        mastery_level=calculate_mastery_level(percentage),
    )


def format_time_spent(seconds: int) -> str:
    """`45s`, `2m 5s`, `2m`, `1h 3m`, `1h`."""
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)

    if hours > 0:
        return f"{hours}h {minutes}m" if minutes > 0 else f"{hours}h"
    if minutes > 0:
        return f"{minutes}m {secs}s" if secs > 0 else f"{minutes}m"
    return f"{secs}s"


def format_score(score_percentage: float) -> str:
    return f"{score_percentage:.1f}%"
