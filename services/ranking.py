"""
Ranking engine.

Orders the results of one cohort by GPA (descending), then total marks
(descending), and writes the rank back onto each row. Only results that
have left the pending state are ranked; pending rows in the cohort have
their rank cleared.

Two tie policies exist and one is chosen for the whole process through
the RANKING_POLICY setting:

- COMPETITION: rows with equal (gpa, total_marks) share a rank and the
  next distinct row skips ahead (1, 1, 3).
- POSITIONAL: every row gets its position in the sorted order (1, 2, 3).

Rows that tie on both keys are ordered by student id so recomputation
is deterministic.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, NamedTuple, Optional

from sqlalchemy.orm import Session

from config import get_settings
from logger import get_logger
from models.results import Result
from models.students import Student

log = get_logger(__name__)

GPA_TOLERANCE = 0.001
MARKS_TOLERANCE = 0.01


class RankingPolicy(str, Enum):
    COMPETITION = "competition"
    POSITIONAL = "positional"


class Cohort(NamedTuple):
    semester: int
    exam_year: int
    program: str


@dataclass(frozen=True)
class RankEntry:
    result_id: int
    student_id: int
    gpa: float
    total_marks: float


@dataclass(frozen=True)
class RankedEntry:
    result_id: int
    student_id: int
    gpa: float
    total_marks: float
    rank: int


def current_policy() -> RankingPolicy:
    return RankingPolicy(get_settings().RANKING_POLICY)


def sort_key(entry):
    return (-(entry.gpa or 0.0), -(entry.total_marks or 0.0), entry.student_id)


def _is_tie(a: RankEntry, b: RankEntry) -> bool:
    return (
        abs((a.gpa or 0.0) - (b.gpa or 0.0)) < GPA_TOLERANCE
        and abs((a.total_marks or 0.0) - (b.total_marks or 0.0)) < MARKS_TOLERANCE
    )


def assign_ranks(entries: Iterable[RankEntry], policy: RankingPolicy) -> List[RankedEntry]:
    """Pure ranking of *entries*; returns them sorted with ranks attached."""
    policy = RankingPolicy(policy)
    ordered = sorted(entries, key=sort_key)

    ranked = []
    previous = None
    previous_rank = 0
    for position, entry in enumerate(ordered, start=1):
        if policy is RankingPolicy.COMPETITION and previous is not None and _is_tie(entry, previous):
            rank = previous_rank
        else:
            rank = position
        ranked.append(RankedEntry(
            result_id=entry.result_id,
            student_id=entry.student_id,
            gpa=entry.gpa,
            total_marks=entry.total_marks,
            rank=rank,
        ))
        previous, previous_rank = entry, rank
    return ranked


def cohort_results(db: Session, cohort: Cohort) -> List[Result]:
    return (
        db.query(Result)
        .join(Student, Student.id == Result.student_id)
        .filter(
            Result.semester == cohort.semester,
            Result.exam_year == cohort.exam_year,
            Student.program == cohort.program,
        )
        .all()
    )


def rank_cohort(db: Session, cohort: Cohort, policy: Optional[RankingPolicy] = None) -> int:
    """
    Recompute ranks for one cohort and stage the writes on *db*.

    The caller owns the transaction. Returns the number of ranked rows;
    an empty cohort is a no-op.
    """
    policy = RankingPolicy(policy) if policy else current_policy()
    rows = cohort_results(db, cohort)
    if not rows:
        log.debug("Cohort %s has no results, nothing to rank", cohort)
        return 0

    eligible = {}
    for row in rows:
        if row.status == "pending":
            row.rank = None
        else:
            eligible[row.id] = row

    ranked = assign_ranks(
        (RankEntry(r.id, r.student_id, r.gpa, r.total_marks) for r in eligible.values()),
        policy,
    )
    for entry in ranked:
        eligible[entry.result_id].rank = entry.rank

    db.flush()
    log.info(
        "Ranked %d of %d results in cohort %s (%s)",
        len(ranked), len(rows), cohort, policy.value,
    )
    return len(ranked)
