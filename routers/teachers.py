import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from config import get_settings
from database import get_db, transaction
from logger import get_logger
from models.teachers import Teacher
from models.users import User
from schemas.teachers import TeacherCreate, TeacherDetail, TeacherOut, TeacherUpdate
from security import hash_password, require_roles
from services.errors import Conflict, NotFound, storage_phase

log = get_logger(__name__)

router = APIRouter(prefix="/api/v1/teachers", tags=["Teachers"])

admin_only = require_roles("admin")


def _get_teacher(db: Session, teacher_id: int) -> Teacher:
    teacher = db.query(Teacher).filter(Teacher.id == teacher_id).first()
    if not teacher:
        raise NotFound(f"Teacher {teacher_id} not found")
    return teacher


@router.get("")
def list_teachers(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    department: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    _: User = Depends(admin_only),
):
    settings = get_settings()
    limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)

    query = db.query(Teacher).outerjoin(User, User.id == Teacher.user_id)
    if department:
        query = query.filter(Teacher.department == department)
    if search:
        search_fmt = f"%{search}%"
        query = query.filter(or_(Teacher.teacher_name.ilike(search_fmt), User.email.ilike(search_fmt)))

    total = query.count()
    teachers = query.order_by(Teacher.teacher_name).offset((page - 1) * limit).limit(limit).all()
    return {
        "items": [TeacherOut.model_validate(t) for t in teachers],
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit),
    }


@router.get("/{teacher_id}", response_model=TeacherDetail)
def get_teacher(teacher_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_roles("admin", "teacher"))):
    teacher = (
        db.query(Teacher)
        .options(joinedload(Teacher.subjects))
        .filter(Teacher.id == teacher_id)
        .first()
    )
    if not teacher:
        raise NotFound(f"Teacher {teacher_id} not found")
    if current_user.role == "teacher" and teacher.user_id != current_user.id:
        raise HTTPException(status_code=403, detail="Access denied")
    return teacher


@router.post("", response_model=TeacherOut, status_code=201)
def create_teacher(data: TeacherCreate, db: Session = Depends(get_db), _: User = Depends(admin_only)):
    email = data.email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise Conflict(f"Email {email} is already registered")

    user = User(
        name=data.teacher_name,
        email=email,
        phone=data.phone,
        password_hash=hash_password(data.password),
        role="teacher",
    )
    teacher = Teacher(
        teacher_name=data.teacher_name,
        department=data.department,
        qualification=data.qualification,
        experience=data.experience,
        user=user,
    )
    with storage_phase("crud"), transaction(db):
        db.add(teacher)
    db.refresh(teacher)
    log.info("Created teacher %s (user %s)", teacher.id, teacher.user_id)
    return teacher


@router.put("/{teacher_id}", response_model=TeacherOut)
def update_teacher(teacher_id: int, data: TeacherUpdate, db: Session = Depends(get_db),
                   _: User = Depends(admin_only)):
    teacher = _get_teacher(db, teacher_id)
    changes = data.model_dump(exclude_unset=True)

    with storage_phase("crud"), transaction(db):
        for key, value in changes.items():
            setattr(teacher, key, value)
        if "teacher_name" in changes and teacher.user:
            teacher.user.name = teacher.teacher_name
    db.refresh(teacher)
    return teacher


@router.delete("/{teacher_id}")
def delete_teacher(teacher_id: int, db: Session = Depends(get_db), _: User = Depends(admin_only)):
    teacher = _get_teacher(db, teacher_id)

    with storage_phase("crud"), transaction(db):
        # Subjects stay, unassigned; the account goes with the profile
        db.delete(teacher.user if teacher.user is not None else teacher)
    log.info("Deleted teacher %s", teacher_id)
    return {"message": "Teacher deleted", "id": teacher_id}
