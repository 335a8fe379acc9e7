"""
Grade table: percentage thresholds to letter grade and grade point.

This is the only place the tiers are defined; everything that needs a
grade reads GRADE_TABLE through ``grade_for`` / ``grade_for_gpa``.
"""

from numbers import Real
from typing import NamedTuple

from services.errors import InvalidInput


class GradeTier(NamedTuple):
    min_percentage: float
    label: str
    point: float


# Highest threshold first; the first tier whose bound is met wins.
GRADE_TABLE = (
    GradeTier(90, "A+", 4.0),
    GradeTier(80, "A", 3.6),
    GradeTier(70, "B+", 3.2),
    GradeTier(60, "B", 2.8),
    GradeTier(50, "C+", 2.4),
    GradeTier(40, "C", 2.0),
    GradeTier(35, "D", 1.6),
    GradeTier(0, "F", 0.0),
)

GRADE_LABELS = tuple(tier.label for tier in GRADE_TABLE)
MAX_GRADE_POINT = GRADE_TABLE[0].point


def _check_number(value, name):
    # bool is an int subclass but never a valid score
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidInput(f"{name} must be a number, got {value!r}")
    if value != value:
        raise InvalidInput(f"{name} must not be NaN")


def grade_for(percentage) -> GradeTier:
    """Return the tier for a percentage in [0, 100]."""
    _check_number(percentage, "percentage")
    if percentage < 0 or percentage > 100:
        raise InvalidInput(f"percentage must be between 0 and 100, got {percentage}")

    for tier in GRADE_TABLE:
        if percentage >= tier.min_percentage:
            return tier
    return GRADE_TABLE[-1]


def grade_for_gpa(gpa) -> GradeTier:
    """
    Return the tier with the highest grade point not above *gpa*.

    A 3.28 GPA sits between B+ (3.2) and A (3.6) and is labelled B+.
    """
    _check_number(gpa, "gpa")
    if gpa < 0 or gpa > MAX_GRADE_POINT:
        raise InvalidInput(f"gpa must be between 0 and {MAX_GRADE_POINT}, got {gpa}")

    for tier in GRADE_TABLE:
        if gpa >= tier.point:
            return tier
    return GRADE_TABLE[-1]
