"""
Result lifecycle: publishing and read access.

A Result is pending until an admin publishes it. Publishing stamps the
approver and time and re-ranks every cohort it touched. Writing a final
mark for the student sends the Result back to pending (see
services.aggregator).
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, func
from sqlalchemy.orm import Session, joinedload

from config import get_settings
from database import transaction
from logger import get_logger
from models.exams import Mark, Subject
from models.results import Result, RESULT_STATUSES
from models.students import Student
from models.teachers import Teacher
from services.errors import InvalidInput, NotFound, storage_phase
from services.gpa import GradedItem, compute_gpa, round_half_up
from services.grading import GRADE_LABELS
from services.locks import cohort_locks
from services.ranking import Cohort, RankingPolicy, rank_cohort, sort_key

log = get_logger(__name__)

# Division buckets on GPA: (name, lower bound inclusive)
DIVISIONS = (
    ("distinction", 3.6),
    ("first_division", 2.8),
    ("second_division", 2.0),
    ("fail", 0.0),
)


@dataclass
class ResultFilters:
    semester: Optional[int] = None
    exam_year: Optional[int] = None
    program: Optional[str] = None
    status: Optional[str] = None


@dataclass
class Page:
    items: List[Result]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass
class PublishOutcome:
    affected_count: int
    cohorts: List[Cohort] = field(default_factory=list)


def _filtered(db: Session, filters: ResultFilters):
    if filters.status is not None and filters.status not in RESULT_STATUSES:
        raise InvalidInput(f"status must be one of {', '.join(RESULT_STATUSES)}")

    query = db.query(Result).join(Student, Student.id == Result.student_id)
    if filters.semester is not None:
        query = query.filter(Result.semester == filters.semester)
    if filters.exam_year is not None:
        query = query.filter(Result.exam_year == filters.exam_year)
    if filters.program:
        query = query.filter(Student.program == filters.program)
    if filters.status:
        query = query.filter(Result.status == filters.status)
    return query


# ===========================
#   PUBLISH
# ===========================

def publish_results(db: Session, approver_id: int,
                    semester: Optional[int] = None,
                    exam_year: Optional[int] = None,
                    program: Optional[str] = None,
                    policy: Optional[RankingPolicy] = None) -> PublishOutcome:
    """
    Move matching pending results to published and re-rank their cohorts.

    Every filter is optional; with none, every pending result is published.
    Results that are already published are not counted.
    """
    if approver_id is None:
        raise InvalidInput("approver_id is required")

    filters = ResultFilters(semester, exam_year, program, status="pending")
    pending = _filtered(db, filters).options(joinedload(Result.student)).all()
    if not pending:
        log.info("Publish %s: no pending results", filters)
        return PublishOutcome(affected_count=0)

    cohorts = sorted({Cohort(r.semester, r.exam_year, r.student.program) for r in pending})
    now = datetime.now()
    affected = 0

    with cohort_locks.hold(*cohorts), transaction(db):
        with storage_phase("publish"):
            # Re-read under the lock; rows of cohorts not locked here wait for the next call
            for result in _filtered(db, filters).options(joinedload(Result.student)).all():
                if Cohort(result.semester, result.exam_year, result.student.program) not in cohorts:
                    continue
                result.status = "published"
                result.published_at = now
                result.approved_by = approver_id
                affected += 1
            db.flush()
        with storage_phase("rank"):
            for cohort in cohorts:
                rank_cohort(db, cohort, policy)

    log.info("Published %d results across %d cohorts (approver %s)", affected, len(cohorts), approver_id)
    return PublishOutcome(affected_count=affected, cohorts=cohorts)


# ===========================
#   QUERIES
# ===========================

def list_results(db: Session, filters: ResultFilters,
                 page: int = 1, limit: Optional[int] = None) -> Page:
    settings = get_settings()
    limit = settings.DEFAULT_PAGE_SIZE if limit is None else limit
    if page < 1:
        raise InvalidInput("page must be at least 1")
    if limit < 1 or limit > settings.MAX_PAGE_SIZE:
        raise InvalidInput(f"limit must be between 1 and {settings.MAX_PAGE_SIZE}")

    query = _filtered(db, filters)
    total = query.count()
    items = (
        query.options(joinedload(Result.student))
        .order_by(
            Result.rank.is_(None),
            Result.rank,
            Result.gpa.desc(),
            Result.total_marks.desc(),
            Result.id,
        )
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return Page(items=items, total=total, page=page, limit=limit)


def get_result(db: Session, result_id: int) -> Result:
    result = db.query(Result).options(joinedload(Result.student)).filter(Result.id == result_id).first()
    if not result:
        raise NotFound(f"Result {result_id} not found")
    return result


def get_result_detail(db: Session, result_id: int) -> dict:
    """Result row plus its final marks and a per-subject grade breakdown."""
    result = get_result(db, result_id)
    marks = (
        db.query(Mark)
        .join(Subject, Subject.id == Mark.subject_id)
        .filter(
            Mark.student_id == result.student_id,
            Mark.exam_year == result.exam_year,
            Mark.semester == result.semester,
            Mark.exam_type == "final",
        )
        .order_by(Subject.code)
        .all()
    )
    breakdown = compute_gpa(
        GradedItem(m.marks_obtained, m.full_marks, m.credit, m.subject_name) for m in marks
    )
    return {
        "result": result,
        "marks": marks,
        "breakdown": breakdown.subject_grades,
        "calculated_gpa": breakdown.gpa,
        "total_credits": breakdown.total_credits,
    }


def result_statistics(db: Session, semester: Optional[int] = None,
                      exam_year: Optional[int] = None,
                      program: Optional[str] = None,
                      top_limit: Optional[int] = None) -> dict:
    """Aggregate figures over published results matching the filters."""
    top_limit = top_limit or get_settings().TOP_STUDENTS_LIMIT
    filters = ResultFilters(semester, exam_year, program, status="published")
    rows = _filtered(db, filters).options(joinedload(Result.student)).all()

    grade_counts = {label: 0 for label in GRADE_LABELS}
    division_counts = {name: 0 for name, _ in DIVISIONS}
    for row in rows:
        if row.grade in grade_counts:
            grade_counts[row.grade] += 1
        for name, lower in DIVISIONS:
            if (row.gpa or 0.0) >= lower:
                division_counts[name] += 1
                break

    gpas = [row.gpa or 0.0 for row in rows]
    overall = {
        "total_students": len(rows),
        "average_gpa": round_half_up(sum(gpas) / len(gpas)) if gpas else 0.0,
        "min_gpa": min(gpas) if gpas else 0.0,
        "max_gpa": max(gpas) if gpas else 0.0,
        "grade_distribution": grade_counts,
        "divisions": division_counts,
    }

    top_students = sorted(rows, key=sort_key)[:top_limit]

    subject_query = (
        db.query(
            Subject.id,
            Subject.name,
            Subject.code,
            func.avg(Mark.marks_obtained),
            func.count(func.distinct(Mark.student_id)),
            func.min(Mark.marks_obtained),
            func.max(Mark.marks_obtained),
        )
        .join(Mark, Mark.subject_id == Subject.id)
        .join(Result, and_(
            Result.student_id == Mark.student_id,
            Result.exam_year == Mark.exam_year,
            Result.semester == Mark.semester,
        ))
        .join(Student, Student.id == Result.student_id)
        .filter(Mark.exam_type == "final", Result.status == "published")
    )
    if semester is not None:
        subject_query = subject_query.filter(Result.semester == semester)
    if exam_year is not None:
        subject_query = subject_query.filter(Result.exam_year == exam_year)
    if program:
        subject_query = subject_query.filter(Student.program == program)

    subject_averages = [
        {
            "subject_name": name,
            "code": code,
            "average_marks": round_half_up(avg) if avg is not None else 0.0,
            "total_students": students,
            "min_marks": low,
            "max_marks": high,
        }
        for _, name, code, avg, students, low, high in subject_query
        .group_by(Subject.id, Subject.name, Subject.code)
        .order_by(Subject.code)
        .all()
    ]

    return {
        "overall": overall,
        "top_students": top_students,
        "subject_averages": subject_averages,
    }


def dashboard_counts(db: Session) -> dict:
    return {
        "students": db.query(Student).count(),
        "teachers": db.query(Teacher).count(),
        "subjects": db.query(Subject).count(),
        "published_results": db.query(Result).filter(Result.status == "published").count(),
        "pending_results": db.query(Result).filter(Result.status == "pending").count(),
    }
