"""
GPA calculator.

Turns a student's per-subject marks into per-subject grades and a
credit-weighted GPA. Pure computation: nothing here touches the database.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from numbers import Real
from typing import Iterable, List, Optional

from services.errors import InvalidInput
from services.grading import grade_for

TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class GradedItem:
    marks_obtained: float
    full_marks: float = 100.0
    credit: float = 3.0
    subject_name: Optional[str] = None


@dataclass(frozen=True)
class SubjectGrade:
    subject_name: Optional[str]
    marks_obtained: float
    percentage: float
    grade: str
    grade_point: float
    credit: float


@dataclass(frozen=True)
class GPAResult:
    gpa: float
    total_credits: float
    subject_grades: List[SubjectGrade] = field(default_factory=list)


def to_decimal(value) -> Decimal:
    # str() keeps 0.1 as Decimal("0.1") instead of its binary expansion
    return Decimal(str(value))


def round_half_up(value, places: Decimal = TWO_PLACES) -> float:
    return float(to_decimal(value).quantize(places, rounding=ROUND_HALF_UP))


def _validate(item: GradedItem):
    for name in ("marks_obtained", "full_marks", "credit"):
        value = getattr(item, name)
        if isinstance(value, bool) or not isinstance(value, Real):
            raise InvalidInput(f"{name} must be a number, got {value!r}")
    if item.full_marks <= 0:
        raise InvalidInput(f"full_marks must be positive, got {item.full_marks}")
    if item.credit <= 0:
        raise InvalidInput(f"credit must be positive, got {item.credit}")
    if item.marks_obtained < 0 or item.marks_obtained > item.full_marks:
        raise InvalidInput(
            f"marks_obtained must be between 0 and {item.full_marks}, got {item.marks_obtained}"
        )


def percentage_of(marks_obtained, full_marks) -> float:
    return float(to_decimal(marks_obtained) * 100 / to_decimal(full_marks))


def compute_gpa(items: Iterable[GradedItem]) -> GPAResult:
    """
    Grade each item and return the credit-weighted GPA.

    An empty input is not an error: it means no graded subjects yet and
    yields a GPA of 0 over 0 credits.
    """
    weighted_points = Decimal("0")
    total_credits = Decimal("0")
    subject_grades = []

    for item in items:
        _validate(item)
        percentage = percentage_of(item.marks_obtained, item.full_marks)
        tier = grade_for(percentage)

        credit = to_decimal(item.credit)
        weighted_points += to_decimal(tier.point) * credit
        total_credits += credit

        subject_grades.append(SubjectGrade(
            subject_name=item.subject_name,
            marks_obtained=item.marks_obtained,
            percentage=round_half_up(percentage),
            grade=tier.label,
            grade_point=tier.point,
            credit=item.credit,
        ))

    gpa = weighted_points / total_credits if total_credits > 0 else Decimal("0")
    return GPAResult(
        gpa=round_half_up(gpa),
        total_credits=float(total_credits),
        subject_grades=subject_grades,
    )
