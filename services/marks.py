"""
Mark writes.

Every create or update of a final-type mark recomputes the student's
Result and re-ranks the cohort, all under the cohort lock and inside
one transaction with the mark write itself.
"""

from dataclasses import dataclass
from numbers import Real
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import transaction
from logger import get_logger
from models.exams import Mark, Subject, EXAM_TYPES
from models.students import Student
from services.aggregator import cohort_of, upsert_student_result
from services.errors import Conflict, InvalidInput, NotFound, storage_phase
from services.locks import cohort_locks
from services.ranking import RankingPolicy, rank_cohort

log = get_logger(__name__)


@dataclass(frozen=True)
class MarkEntry:
    student_id: int
    subject_id: int
    marks_obtained: float
    full_marks: Optional[float] = None


@dataclass
class BulkOutcome:
    created: int = 0
    updated: int = 0
    results_refreshed: int = 0


# ===========================
#   VALIDATION
# ===========================

def validate_exam(exam_type: str, exam_year: int):
    if exam_type not in EXAM_TYPES:
        raise InvalidInput(f"exam_type must be one of {', '.join(EXAM_TYPES)}")
    if isinstance(exam_year, bool) or not isinstance(exam_year, int) or exam_year <= 0:
        raise InvalidInput(f"exam_year must be a positive integer, got {exam_year!r}")


def validate_score(marks_obtained, full_marks):
    for name, value in (("marks_obtained", marks_obtained), ("full_marks", full_marks)):
        if isinstance(value, bool) or not isinstance(value, Real):
            raise InvalidInput(f"{name} must be a number, got {value!r}")
    if full_marks <= 0:
        raise InvalidInput(f"full_marks must be positive, got {full_marks}")
    if marks_obtained < 0 or marks_obtained > full_marks:
        raise InvalidInput(f"marks_obtained must be between 0 and {full_marks}, got {marks_obtained}")


def _load_student(db: Session, student_id: int) -> Student:
    student = db.query(Student).filter(Student.id == student_id).first()
    if not student:
        raise NotFound(f"Student {student_id} not found")
    return student


def _load_subject(db: Session, subject_id: int) -> Subject:
    subject = db.query(Subject).filter(Subject.id == subject_id).first()
    if not subject:
        raise NotFound(f"Subject {subject_id} not found")
    if subject.credit is None or subject.credit <= 0:
        raise InvalidInput(f"Subject {subject.code} has no positive credit")
    return subject


def _find_mark(db: Session, student_id, subject_id, exam_type, exam_year) -> Optional[Mark]:
    return db.query(Mark).filter(
        Mark.student_id == student_id,
        Mark.subject_id == subject_id,
        Mark.exam_type == exam_type,
        Mark.exam_year == exam_year,
    ).first()


def _new_mark(student: Student, subject: Subject, marks_obtained, full_marks,
              exam_type: str, exam_year: int) -> Mark:
    return Mark(
        student_id=student.id,
        student_name=student.student_name,
        subject_id=subject.id,
        subject_name=subject.name,
        marks_obtained=marks_obtained,
        full_marks=full_marks,
        credit=subject.credit,
        exam_type=exam_type,
        exam_year=exam_year,
        semester=student.semester,
    )


def _refresh(db: Session, student: Student, exam_year: int, policy, semester: Optional[int] = None) -> bool:
    with storage_phase("aggregate"):
        result = upsert_student_result(db, student, exam_year, semester=semester)
    if result is None:
        return False
    with storage_phase("rank"):
        rank_cohort(db, cohort_of(student, exam_year, semester), policy)
    return True


# ===========================
#   SINGLE WRITES
# ===========================

def add_mark(db: Session, student_id: int, subject_id: int, marks_obtained: float,
             exam_type: str = "final", exam_year: Optional[int] = None,
             full_marks: Optional[float] = None,
             policy: Optional[RankingPolicy] = None) -> Mark:
    """Create a mark; a second mark for the same exam is a Conflict."""
    if student_id is None or subject_id is None:
        raise InvalidInput("student_id and subject_id are required")
    validate_exam(exam_type, exam_year)
    student = _load_student(db, student_id)
    subject = _load_subject(db, subject_id)
    full_marks = full_marks if full_marks is not None else (subject.full_marks or 100.0)
    validate_score(marks_obtained, full_marks)

    if _find_mark(db, student_id, subject_id, exam_type, exam_year):
        raise Conflict("Marks already exist for this exam; update them instead")

    mark = _new_mark(student, subject, marks_obtained, full_marks, exam_type, exam_year)
    with cohort_locks.hold(cohort_of(student, exam_year)), transaction(db):
        with storage_phase("mark"):
            db.add(mark)
            try:
                db.flush()
            except IntegrityError as exc:
                # Lost a race with another writer for the same exam
                raise Conflict("Marks already exist for this exam; update them instead") from exc
        if exam_type == "final":
            _refresh(db, student, exam_year, policy)

    log.info(
        "Added %s mark %.2f/%.2f for student %s subject %s (%s)",
        exam_type, marks_obtained, full_marks, student_id, subject.code, exam_year,
    )
    return mark


def update_mark(db: Session, mark_id: int, marks_obtained: float,
                policy: Optional[RankingPolicy] = None) -> Mark:
    """Change marks_obtained in place; nothing else on a mark is editable."""
    mark = db.query(Mark).filter(Mark.id == mark_id).first()
    if not mark:
        raise NotFound(f"Mark {mark_id} not found")
    validate_score(marks_obtained, mark.full_marks)
    student = _load_student(db, mark.student_id)

    with cohort_locks.hold(cohort_of(student, mark.exam_year, mark.semester)), transaction(db):
        with storage_phase("mark"):
            mark.marks_obtained = marks_obtained
            db.flush()
        if mark.exam_type == "final":
            _refresh(db, student, mark.exam_year, policy, semester=mark.semester)

    log.info("Updated mark %s to %.2f", mark_id, marks_obtained)
    return mark


# ===========================
#   BULK WRITES
# ===========================

def bulk_upsert_marks(db: Session, entries: Iterable[MarkEntry], exam_type: str,
                      exam_year: int, policy: Optional[RankingPolicy] = None) -> BulkOutcome:
    """
    Create or update many marks for one exam in a single transaction.

    Every entry is validated before anything is written. Each affected
    student's Result is recomputed once and each cohort ranked once.
    """
    validate_exam(exam_type, exam_year)
    entries: List[MarkEntry] = list(entries)
    if not entries:
        return BulkOutcome()

    students = {}
    subjects = {}
    planned = []
    seen = set()
    for entry in entries:
        key = (entry.student_id, entry.subject_id)
        if key in seen:
            raise InvalidInput(f"Duplicate entry for student {entry.student_id}, subject {entry.subject_id}")
        seen.add(key)

        student = students.get(entry.student_id) or _load_student(db, entry.student_id)
        subject = subjects.get(entry.subject_id) or _load_subject(db, entry.subject_id)
        students[student.id] = student
        subjects[subject.id] = subject

        existing = _find_mark(db, student.id, subject.id, exam_type, exam_year)
        if existing:
            full_marks = existing.full_marks
        elif entry.full_marks is not None:
            full_marks = entry.full_marks
        else:
            full_marks = subject.full_marks or 100.0
        validate_score(entry.marks_obtained, full_marks)
        planned.append((student, subject, existing, entry.marks_obtained, full_marks))

    # Existing marks stay with the semester they were recorded in
    targets = sorted({
        (student.id, existing.semester if existing else student.semester)
        for student, _, existing, _, _ in planned
    })
    cohorts = sorted({cohort_of(students[sid], exam_year, semester) for sid, semester in targets})
    outcome = BulkOutcome()
    with cohort_locks.hold(*cohorts), transaction(db):
        with storage_phase("mark"):
            for student, subject, existing, marks_obtained, full_marks in planned:
                if existing:
                    existing.marks_obtained = marks_obtained
                    outcome.updated += 1
                else:
                    db.add(_new_mark(student, subject, marks_obtained, full_marks, exam_type, exam_year))
                    outcome.created += 1
            db.flush()

        if exam_type == "final":
            with storage_phase("aggregate"):
                for student_id, semester in targets:
                    result = upsert_student_result(db, students[student_id], exam_year, semester=semester)
                    if result is not None:
                        outcome.results_refreshed += 1
            with storage_phase("rank"):
                for cohort in cohorts:
                    rank_cohort(db, cohort, policy)

    log.info(
        "Bulk %s marks for %s: %d created, %d updated, %d results refreshed",
        exam_type, exam_year, outcome.created, outcome.updated, outcome.results_refreshed,
    )
    return outcome
