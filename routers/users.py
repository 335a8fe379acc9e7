import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db, transaction
from logger import get_logger
from models.users import User, ROLES
from schemas.users import UserCreate, UserOut, UserUpdate
from security import hash_password, require_roles
from services.aggregator import delete_student
from services.errors import Conflict, InvalidInput, NotFound, storage_phase
from services.lifecycle import dashboard_counts

log = get_logger(__name__)

router = APIRouter(prefix="/api/v1/users", tags=["Users"])

admin_only = require_roles("admin")


def _check_role(role: str):
    if role not in ROLES:
        raise InvalidInput(f"role must be one of {', '.join(ROLES)}")


def _check_email_free(db: Session, email: str, exclude_id: Optional[int] = None):
    query = db.query(User).filter(User.email == email)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    if query.first():
        raise Conflict(f"Email {email} is already registered")


# --- Dashboard (must be before /{user_id}) ---
@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db), _: User = Depends(admin_only)):
    counts = dashboard_counts(db)
    counts["users"] = db.query(User).count()
    counts["active_users"] = db.query(User).filter(User.is_active == True).count()
    return counts


@router.get("")
def list_users(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    role: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    _: User = Depends(admin_only),
):
    settings = get_settings()
    limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)

    query = db.query(User)
    if role:
        _check_role(role)
        query = query.filter(User.role == role)
    if search:
        search_fmt = f"%{search}%"
        query = query.filter(or_(User.name.ilike(search_fmt), User.email.ilike(search_fmt)))

    total = query.count()
    users = query.order_by(User.id).offset((page - 1) * limit).limit(limit).all()
    return {
        "items": [UserOut.model_validate(u) for u in users],
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit),
    }


@router.get("/{user_id}", response_model=UserOut)
def get_user(user_id: int, db: Session = Depends(get_db), _: User = Depends(admin_only)):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound(f"User {user_id} not found")
    return user


@router.post("", response_model=UserOut, status_code=201)
def create_user(data: UserCreate, db: Session = Depends(get_db), _: User = Depends(admin_only)):
    _check_role(data.role)
    email = data.email.strip().lower()
    _check_email_free(db, email)

    user = User(
        name=data.name,
        email=email,
        phone=data.phone,
        password_hash=hash_password(data.password),
        role=data.role,
    )
    with storage_phase("crud"), transaction(db):
        db.add(user)
    db.refresh(user)
    log.info("Created %s account %s", user.role, user.id)
    return user


@router.put("/{user_id}", response_model=UserOut)
def update_user(user_id: int, data: UserUpdate, db: Session = Depends(get_db),
                current_user: User = Depends(admin_only)):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound(f"User {user_id} not found")

    changes = data.model_dump(exclude_unset=True)
    if "role" in changes:
        _check_role(changes["role"])
    if "email" in changes:
        changes["email"] = changes["email"].strip().lower()
        _check_email_free(db, changes["email"], exclude_id=user.id)
    if user.id == current_user.id and changes.get("is_active") is False:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")

    password = changes.pop("password", None)
    with storage_phase("crud"), transaction(db):
        for key, value in changes.items():
            setattr(user, key, value)
        if password:
            user.password_hash = hash_password(password)
    db.refresh(user)
    return user


@router.delete("/{user_id}")
def delete_user(user_id: int, db: Session = Depends(get_db), current_user: User = Depends(admin_only)):
    if user_id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound(f"User {user_id} not found")

    if user.student_profile is not None:
        # Student results leave their cohorts, which need re-ranking
        delete_student(db, user.student_profile)
    else:
        with storage_phase("crud"), transaction(db):
            db.delete(user)
    log.info("Deleted user %s", user_id)
    return {"message": "User deleted", "id": user_id}
