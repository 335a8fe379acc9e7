from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from config import get_settings
from database import get_db
from logger import get_logger
from models.users import User

log = get_logger(__name__)

bearer = HTTPBearer(auto_error=False)


# ===========================
#     PASSWORDS
# ===========================

def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)


# ===========================
#     TOKENS
# ===========================

def create_access_token(data: dict, expires_minutes: Optional[int] = None) -> str:
    settings = get_settings()
    to_encode = data.copy()
    minutes = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    to_encode.update({"exp": datetime.now(timezone.utc) + timedelta(minutes=minutes)})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def token_for(user: User) -> str:
    return create_access_token({"sub": str(user.id), "role": user.role})


# ===========================
#     DEPENDENCIES
# ===========================

def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")

    settings = get_settings()
    try:
        payload = jwt.decode(credentials.credentials, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        user_id = payload.get("sub")
        if user_id is None:
            raise HTTPException(status_code=401, detail="Invalid token")
    except JWTError:
        raise HTTPException(status_code=401, detail="Session expired, please login again")

    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="Account not found or disabled")
    return user


def require_roles(*roles: str):
    """Dependency factory: the caller must hold one of *roles*."""

    def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            log.warning("User %s (%s) denied; needs one of %s", user.id, user.role, roles)
            raise HTTPException(status_code=403, detail="Access denied")
        return user

    return checker
