from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from database import Base
from datetime import datetime

ROLES = ("admin", "teacher", "student")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(150), unique=True, index=True, nullable=False)
    phone = Column(String(20), nullable=True)
    password_hash = Column(String(255), nullable=False)

    # admin / teacher / student
    role = Column(String(20), nullable=False, default="student")
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Role profile rows go away together with the account
    student_profile = relationship(
        "models.students.Student", back_populates="user", uselist=False,
        cascade="all, delete-orphan"
    )
    teacher_profile = relationship(
        "models.teachers.Teacher", back_populates="user", uselist=False,
        cascade="all, delete-orphan"
    )
