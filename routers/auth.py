from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from typing import Optional

from database import get_db, transaction
from logger import get_logger
from models.users import User
from schemas.users import LoginSchema, Token, UserOut
from security import get_current_user, hash_password, token_for, verify_password
from services.errors import Conflict, storage_phase

log = get_logger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = None


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


# 1. LOGIN
@router.post("/login", response_model=Token)
def login(data: LoginSchema, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == data.email.strip().lower()).first()

    if not user or not verify_password(data.password, user.password_hash):
        log.warning("Failed login for %s", data.email)
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")

    log.info("User %s logged in as %s", user.id, user.role)
    return {"access_token": token_for(user), "token_type": "bearer", "role": user.role, "user_id": user.id}


# 2. PROFILE
@router.get("/me", response_model=UserOut)
def read_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.put("/me", response_model=UserOut)
def update_me(data: ProfileUpdate, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    with storage_phase("crud"), transaction(db):
        if data.name is not None:
            current_user.name = data.name
            # Keep the role profile's display name in step with the account
            if current_user.student_profile:
                current_user.student_profile.student_name = data.name
            if current_user.teacher_profile:
                current_user.teacher_profile.teacher_name = data.name
        if data.phone is not None:
            current_user.phone = data.phone
    db.refresh(current_user)
    return current_user


# 3. CHANGE PASSWORD
@router.put("/change-password")
def change_password(data: PasswordChange, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if not verify_password(data.current_password, current_user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    if data.current_password == data.new_password:
        raise Conflict("New password must differ from the current one")

    with storage_phase("crud"), transaction(db):
        current_user.password_hash = hash_password(data.new_password)
    log.info("User %s changed password", current_user.id)
    return {"message": "Password updated"}
