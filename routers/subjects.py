from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db, transaction
from logger import get_logger
from models.exams import Subject
from models.teachers import Teacher
from models.users import User
from schemas.exams import SubjectCreate, SubjectOut, SubjectUpdate
from security import get_current_user, require_roles
from services.errors import Conflict, NotFound, storage_phase

log = get_logger(__name__)

router = APIRouter(prefix="/api/v1/subjects", tags=["Subjects"])


def _check_teacher(db: Session, teacher_id: Optional[int]):
    if teacher_id is not None and not db.query(Teacher).filter(Teacher.id == teacher_id).first():
        raise NotFound(f"Teacher {teacher_id} not found")


@router.get("", response_model=List[SubjectOut])
def list_subjects(semester: Optional[int] = None, teacher_id: Optional[int] = None,
                  db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    query = db.query(Subject)
    if semester is not None:
        query = query.filter(Subject.semester == semester)
    if teacher_id is not None:
        query = query.filter(Subject.teacher_id == teacher_id)
    return query.order_by(Subject.code).all()


@router.post("", response_model=SubjectOut, status_code=201)
def create_subject(data: SubjectCreate, db: Session = Depends(get_db), _: User = Depends(require_roles("admin"))):
    code = data.code.strip().upper()
    if db.query(Subject).filter(Subject.code == code).first():
        raise Conflict(f"Subject code {code} already exists")
    _check_teacher(db, data.teacher_id)

    subject = Subject(
        code=code,
        name=data.name,
        credit=data.credit,
        full_marks=data.full_marks,
        semester=data.semester,
        teacher_id=data.teacher_id,
    )
    with storage_phase("crud"), transaction(db):
        db.add(subject)
    db.refresh(subject)
    log.info("Created subject %s (%s credits)", subject.code, subject.credit)
    return subject


@router.put("/{subject_id}", response_model=SubjectOut)
def update_subject(subject_id: int, data: SubjectUpdate, db: Session = Depends(get_db),
                   _: User = Depends(require_roles("admin"))):
    subject = db.query(Subject).filter(Subject.id == subject_id).first()
    if not subject:
        raise NotFound(f"Subject {subject_id} not found")

    changes = data.model_dump(exclude_unset=True)
    if "teacher_id" in changes:
        _check_teacher(db, changes["teacher_id"])

    # Existing marks keep the credit and full marks they were entered with
    with storage_phase("crud"), transaction(db):
        for key, value in changes.items():
            setattr(subject, key, value)
    db.refresh(subject)
    return subject
