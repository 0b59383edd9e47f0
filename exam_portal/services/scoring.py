"""Score arithmetic shared by grading, result lists and report cards.

Everything here is pure: callers pass already-loaded rows and get numbers back.
Percentages round half up, so 87.5 becomes 88 and 2.5 becomes 3.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence

from exam_portal.config import PASS_MARK

# (threshold, letter), checked top to bottom
GRADE_BOUNDARIES = (
    (90, "A"),
    (80, "B"),
    (70, "C"),
    (60, "D"),
)
FAIL_GRADE = "F"


def answer_score(marks_awarded: Optional[float], question_marks: int) -> float:
    """Marks for one answer, clamped to ``[0, question_marks]``; ungraded counts as 0."""
    if marks_awarded is None:
        return 0
    return min(max(marks_awarded, 0), question_marks)


def submission_total(pairs: Iterable[tuple[Optional[float], int]]) -> float:
    """Sum of clamped marks over ``(marks_awarded, question_marks)`` pairs."""
    return sum(answer_score(marks, max_marks) for marks, max_marks in pairs)


def submission_max_score(question_marks: Iterable[int]) -> int:
    return sum(question_marks)


def percentage(total_score: float, max_score: float) -> int:
    """``round(total / max * 100)`` with half-up rounding; 0 when max is 0."""
    if not max_score:
        return 0
    raw = Decimal(str(total_score)) * 100 / Decimal(str(max_score))
    return int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def letter_grade(pct: int) -> str:
    for threshold, letter in GRADE_BOUNDARIES:
        if pct >= threshold:
            return letter
    return FAIL_GRADE


def is_pass(pct: int) -> bool:
    return pct >= PASS_MARK


def auto_mark(question_type: str, correct_answer: Optional[str], answer_text: Optional[str]) -> Optional[bool]:
    """Correctness of a multiple-choice answer, or None when it cannot be decided."""
    if question_type != "multiple_choice" or correct_answer is None:
        return None
    if answer_text is None or not answer_text.strip():
        return False
    return answer_text.strip().casefold() == correct_answer.strip().casefold()


@dataclass(frozen=True)
class ScoredResult:
    """The inputs aggregation needs from one graded, published submission."""

    total_score: float
    max_score: int
    subject: str


@dataclass(frozen=True)
class Aggregate:
    total_obtained: float
    total_max: int
    percentage: int
    grade: Optional[str]
    passed: Optional[bool]
    exam_count: int
    subject_count: int


def aggregate(results: Sequence[ScoredResult]) -> Aggregate:
    """Report-card totals: a weighted sum over all results, not a mean of percentages.

    With no results there is nothing to grade, so ``grade`` and ``passed`` are None.
    """
    total_obtained = sum(r.total_score for r in results)
    total_max = sum(r.max_score for r in results)
    pct = percentage(total_obtained, total_max)
    return Aggregate(
        total_obtained=total_obtained,
        total_max=total_max,
        percentage=pct,
        grade=letter_grade(pct) if results else None,
        passed=is_pass(pct) if results else None,
        exam_count=len(results),
        subject_count=len({r.subject for r in results}),
    )
