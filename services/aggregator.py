"""
Result aggregation.

Recomputes one student's Result for an exam year from their final-type
marks. GPA is always the credit-weighted grade-point average; the
grade label is derived from that GPA through the grade table.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from database import transaction
from logger import get_logger
from models.exams import Mark
from models.results import Result
from models.students import Student
from services.errors import InvalidInput, NotFound, storage_phase
from services.gpa import GradedItem, SubjectGrade, compute_gpa, round_half_up, to_decimal
from services.grading import grade_for_gpa
from services.locks import cohort_locks
from services.ranking import Cohort, RankingPolicy, rank_cohort

log = get_logger(__name__)


@dataclass(frozen=True)
class ComputedResult:
    gpa: float
    grade: str
    total_marks: float
    total_credits: float
    subject_grades: List[SubjectGrade] = field(default_factory=list)


def compute_result(marks: Iterable[Mark]) -> ComputedResult:
    """Fold a student's marks into gpa, grade, total marks and credits."""
    marks = list(marks)
    gpa_result = compute_gpa(
        GradedItem(
            marks_obtained=m.marks_obtained,
            full_marks=m.full_marks if m.full_marks is not None else 100.0,
            credit=m.credit,
            subject_name=m.subject_name,
        )
        for m in marks
    )
    total_marks = round_half_up(sum((to_decimal(m.marks_obtained) for m in marks), to_decimal(0)))
    return ComputedResult(
        gpa=gpa_result.gpa,
        grade=grade_for_gpa(gpa_result.gpa).label,
        total_marks=total_marks,
        total_credits=gpa_result.total_credits,
        subject_grades=gpa_result.subject_grades,
    )


def cohort_of(student: Student, exam_year: int, semester: Optional[int] = None) -> Cohort:
    return Cohort(student.semester if semester is None else semester, exam_year, student.program)


def find_final_marks(db: Session, student_id: int, exam_year: int, semester: int) -> List[Mark]:
    return (
        db.query(Mark)
        .filter(
            Mark.student_id == student_id,
            Mark.exam_year == exam_year,
            Mark.semester == semester,
            Mark.exam_type == "final",
        )
        .order_by(Mark.subject_id)
        .all()
    )


def _require_ids(student_id, exam_year):
    if student_id is None or exam_year is None:
        raise InvalidInput("student_id and exam_year are required")


def upsert_student_result(db: Session, student: Student, exam_year: int,
                          reset_status: bool = True,
                          semester: Optional[int] = None) -> Optional[Result]:
    """
    Write the student's Result for *exam_year* without ranking or committing.

    Only marks recorded in *semester* (default: the student's current
    one) are summed. Returns None, touching nothing, when there are no
    such final marks. With ``reset_status`` the row always goes back to
    pending; without it, it only does so when the computed figures changed.
    """
    semester = student.semester if semester is None else semester
    marks = find_final_marks(db, student.id, exam_year, semester)
    if not marks:
        log.debug("No final marks for student %s in sem %s / %s, nothing to aggregate",
                  student.id, semester, exam_year)
        return None

    computed = compute_result(marks)
    result = db.query(Result).filter(
        Result.student_id == student.id,
        Result.semester == semester,
        Result.exam_year == exam_year,
    ).first()

    if result is None:
        result = Result(
            student_id=student.id,
            semester=semester,
            exam_year=exam_year,
            status="pending",
        )
        db.add(result)
        changed = True
    else:
        changed = (
            result.gpa != computed.gpa
            or result.total_marks != computed.total_marks
            or result.total_credits != computed.total_credits
            or result.grade != computed.grade
        )

    result.student_name = student.student_name
    result.roll_no = student.roll_no
    result.total_marks = computed.total_marks
    result.total_credits = computed.total_credits
    result.gpa = computed.gpa
    result.grade = computed.grade

    if reset_status or changed:
        # Figures moved: the result is provisional again until republished
        result.status = "pending"
        result.rank = None
        result.published_at = None
        result.approved_by = None

    db.flush()
    log.info(
        "Result for student %s (sem %s, %s): gpa=%.2f grade=%s total=%.2f status=%s",
        student.id, semester, exam_year, result.gpa, result.grade,
        result.total_marks, result.status,
    )
    return result


def aggregate_student_result(db: Session, student_id: int, exam_year: int,
                             policy: Optional[RankingPolicy] = None) -> Optional[Result]:
    """
    Recompute a student's Result and re-rank the cohort it belongs to.

    Upsert and re-rank run under the cohort lock and commit together.
    """
    _require_ids(student_id, exam_year)
    student = db.query(Student).filter(Student.id == student_id).first()
    if not student:
        raise NotFound(f"Student {student_id} not found")

    cohort = cohort_of(student, exam_year)
    with cohort_locks.hold(cohort), transaction(db):
        with storage_phase("aggregate"):
            result = upsert_student_result(db, student, exam_year)
        if result is None:
            return None
        with storage_phase("rank"):
            rank_cohort(db, cohort, policy)
    return result


def recalculate_cohort(db: Session, semester: int, exam_year: int,
                       program: Optional[str] = None,
                       policy: Optional[RankingPolicy] = None) -> dict:
    """
    Re-aggregate every student (optionally of one program) with final
    marks recorded in *semester* of *exam_year*, then rank each cohort once.

    Results whose figures are unchanged keep their status.
    """
    if semester is None or exam_year is None:
        raise InvalidInput("semester and exam_year are required")

    query = (
        db.query(Student)
        .join(Mark, Mark.student_id == Student.id)
        .filter(Mark.semester == semester, Mark.exam_year == exam_year, Mark.exam_type == "final")
        .distinct()
    )
    if program:
        query = query.filter(Student.program == program)
    students = query.order_by(Student.id).all()

    cohorts = sorted({cohort_of(s, exam_year, semester) for s in students})
    aggregated = 0
    ranked = 0
    with cohort_locks.hold(*cohorts), transaction(db):
        with storage_phase("aggregate"):
            for student in students:
                if upsert_student_result(db, student, exam_year, reset_status=False, semester=semester) is not None:
                    aggregated += 1
        with storage_phase("rank"):
            for cohort in cohorts:
                ranked += rank_cohort(db, cohort, policy)

    log.info(
        "Recalculated semester %s / %s%s: %d results, %d ranked",
        semester, exam_year, f" / {program}" if program else "", aggregated, ranked,
    )
    return {"aggregated": aggregated, "ranked": ranked, "cohorts": len(cohorts)}


def delete_student(db: Session, student: Student, policy: Optional[RankingPolicy] = None) -> int:
    """
    Delete a student with their marks and results, then re-rank every
    cohort they had a result in. Returns the number of cohorts re-ranked.
    """
    student_id = student.id
    cohorts = sorted({Cohort(r.semester, r.exam_year, student.program) for r in student.results})
    user = student.user

    with cohort_locks.hold(*cohorts), transaction(db):
        with storage_phase("crud"):
            # The login account goes with the profile
            db.delete(user if user is not None else student)
            db.flush()
        with storage_phase("rank"):
            for cohort in cohorts:
                rank_cohort(db, cohort, policy)

    log.info("Deleted student %s and re-ranked %d cohorts", student_id, len(cohorts))
    return len(cohorts)


def move_student(db: Session, student: Student, changes: dict,
                 policy: Optional[RankingPolicy] = None) -> int:
    """
    Apply profile *changes* to a student and re-rank every cohort their
    results leave or join. Returns the number of cohorts re-ranked.

    A Result keeps the semester it was earned in, so only a program
    change moves existing results between cohorts; a semester change
    affects the results of marks recorded afterwards.
    """
    for key in ("program", "semester", "student_name"):
        if key in changes and not changes[key]:
            raise InvalidInput(f"{key} cannot be empty")
    old_program = student.program
    new_program = changes.get("program", old_program)

    periods = {(r.semester, r.exam_year) for r in student.results}
    cohorts = sorted(
        {Cohort(semester, year, old_program) for semester, year in periods}
        | {Cohort(semester, year, new_program) for semester, year in periods}
    )

    with cohort_locks.hold(*cohorts), transaction(db):
        with storage_phase("crud"):
            for key, value in changes.items():
                setattr(student, key, value)
            if "student_name" in changes:
                for result in student.results:
                    result.student_name = student.student_name
                if student.user is not None:
                    student.user.name = student.student_name
            db.flush()
        if new_program != old_program:
            with storage_phase("rank"):
                for cohort in cohorts:
                    rank_cohort(db, cohort, policy)

    moved = len(cohorts) if new_program != old_program else 0
    log.info("Updated student %s (%s), re-ranked %d cohorts", student.id, ", ".join(sorted(changes)), moved)
    return moved
