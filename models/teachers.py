from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from database import Base


class Teacher(Base):
    __tablename__ = "teachers"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True)
    teacher_name = Column(String(100), nullable=False)
    department = Column(String(100), default="Computer Science")
    qualification = Column(String(150), nullable=True)
    experience = Column(Integer, default=0)  # years

    user = relationship("models.users.User", back_populates="teacher_profile")
    subjects = relationship("models.exams.Subject", back_populates="teacher")
