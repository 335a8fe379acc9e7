import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from config import get_settings
from database import get_db, transaction
from logger import get_logger
from models.exams import Mark
from models.results import Result
from models.students import Student
from models.users import User
from schemas.exams import MarkCreate, MarkOut
from schemas.results import ResultOut
from schemas.students import StudentCreate, StudentOut, StudentUpdate
from security import get_current_user, hash_password, require_roles
from services.aggregator import delete_student, move_student
from services.errors import Conflict, NotFound, storage_phase
from services.marks import add_mark

log = get_logger(__name__)

router = APIRouter(prefix="/api/v1/students", tags=["Students"])

staff_only = require_roles("admin", "teacher")
admin_only = require_roles("admin")


def _get_student(db: Session, student_id: int) -> Student:
    student = db.query(Student).filter(Student.id == student_id).first()
    if not student:
        raise NotFound(f"Student {student_id} not found")
    return student


def _check_can_view(user: User, student: Student):
    # Students may only look at their own record
    if user.role == "student" and student.user_id != user.id:
        raise HTTPException(status_code=403, detail="Access denied")


# ===============================
#   1. LIST / DETAIL
# ===============================

@router.get("")
def list_students(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    semester: Optional[int] = None,
    program: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    _: User = Depends(staff_only),
):
    settings = get_settings()
    limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)

    query = db.query(Student)
    if semester is not None:
        query = query.filter(Student.semester == semester)
    if program:
        query = query.filter(Student.program == program)
    if search:
        search_fmt = f"%{search}%"
        query = query.filter(
            or_(
                Student.student_name.ilike(search_fmt),
                Student.roll_no.ilike(search_fmt),
            )
        )

    total = query.count()
    students = query.order_by(Student.roll_no).offset((page - 1) * limit).limit(limit).all()
    return {
        "items": [StudentOut.model_validate(s) for s in students],
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit),
    }


@router.get("/{student_id}")
def get_student(student_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    student = (
        db.query(Student)
        .options(joinedload(Student.marks), joinedload(Student.results))
        .filter(Student.id == student_id)
        .first()
    )
    if not student:
        raise NotFound(f"Student {student_id} not found")
    _check_can_view(current_user, student)

    results = student.results
    if current_user.role == "student":
        results = [r for r in results if r.status == "published"]

    return {
        "student": StudentOut.model_validate(student),
        "marks": [MarkOut.model_validate(m) for m in sorted(student.marks, key=lambda m: (m.exam_year, m.subject_id))],
        "results": [ResultOut.model_validate(r) for r in sorted(results, key=lambda r: (r.exam_year, r.semester))],
    }


# ===============================
#   2. CREATE / UPDATE / DELETE
# ===============================

@router.post("", response_model=StudentOut, status_code=201)
def create_student(data: StudentCreate, db: Session = Depends(get_db), _: User = Depends(admin_only)):
    roll_no = data.roll_no.strip()
    if db.query(Student).filter(Student.roll_no == roll_no).first():
        raise Conflict(f"Roll number {roll_no} already exists")

    user = None
    if data.email:
        email = data.email.strip().lower()
        if not data.password:
            raise HTTPException(status_code=400, detail="password is required when email is given")
        if db.query(User).filter(User.email == email).first():
            raise Conflict(f"Email {email} is already registered")
        user = User(
            name=data.student_name,
            email=email,
            phone=data.phone,
            password_hash=hash_password(data.password),
            role="student",
        )

    student = Student(
        roll_no=roll_no,
        student_name=data.student_name,
        semester=data.semester,
        program=data.program,
        father_name=data.father_name,
        mother_name=data.mother_name,
        address=data.address,
        phone=data.phone,
        dob=data.dob,
        user=user,
    )
    with storage_phase("crud"), transaction(db):
        db.add(student)
    db.refresh(student)
    log.info("Created student %s (%s)", student.id, student.roll_no)
    return student


@router.put("/{student_id}", response_model=StudentOut)
def update_student(student_id: int, data: StudentUpdate, db: Session = Depends(get_db),
                   _: User = Depends(admin_only)):
    student = _get_student(db, student_id)
    changes = data.model_dump(exclude_unset=True)
    move_student(db, student, changes)
    db.refresh(student)
    return student


@router.delete("/{student_id}")
def remove_student(student_id: int, db: Session = Depends(get_db), _: User = Depends(admin_only)):
    student = _get_student(db, student_id)
    reranked = delete_student(db, student)
    return {"message": "Student deleted", "id": student_id, "cohorts_reranked": reranked}


# ===============================
#   3. MARKS
# ===============================

@router.get("/{student_id}/marks")
def student_marks(
    student_id: int,
    exam_year: Optional[int] = None,
    exam_type: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    student = _get_student(db, student_id)
    _check_can_view(current_user, student)

    query = db.query(Mark).filter(Mark.student_id == student_id)
    if exam_year is not None:
        query = query.filter(Mark.exam_year == exam_year)
    if exam_type:
        query = query.filter(Mark.exam_type == exam_type)
    marks = query.order_by(Mark.exam_year, Mark.subject_id).all()
    return [MarkOut.model_validate(m) for m in marks]


@router.post("/{student_id}/marks", response_model=MarkOut, status_code=201)
def create_student_mark(student_id: int, data: MarkCreate, db: Session = Depends(get_db),
                        _: User = Depends(staff_only)):
    mark = add_mark(
        db,
        student_id=student_id,
        subject_id=data.subject_id,
        marks_obtained=data.marks_obtained,
        exam_type=data.exam_type,
        exam_year=data.exam_year,
        full_marks=data.full_marks,
    )
    db.refresh(mark)
    return mark


@router.get("/{student_id}/results")
def student_results(student_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    student = _get_student(db, student_id)
    _check_can_view(current_user, student)

    query = db.query(Result).filter(Result.student_id == student_id)
    if current_user.role == "student":
        query = query.filter(Result.status == "published")
    results = query.order_by(Result.exam_year, Result.semester).all()
    return [ResultOut.model_validate(r) for r in results]
