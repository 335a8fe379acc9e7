from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from database import Base
from datetime import datetime

EXAM_TYPES = ("internal", "final", "other")


# 1. SUBJECT MASTER
class Subject(Base):
    __tablename__ = "subjects"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=False)
    credit = Column(Float, nullable=False, default=3.0)
    full_marks = Column(Float, nullable=False, default=100.0)
    semester = Column(Integer, nullable=True)
    teacher_id = Column(Integer, ForeignKey("teachers.id", ondelete="SET NULL"), nullable=True)

    teacher = relationship("models.teachers.Teacher", back_populates="subjects")


# 2. MARKS (one subject, one student, one exam instance)
class Mark(Base):
    __tablename__ = "marks"

    id = Column(Integer, primary_key=True, index=True)

    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False)

    # Denormalized for report views
    student_name = Column(String(100), nullable=True)
    subject_name = Column(String(100), nullable=True)

    marks_obtained = Column(Float, nullable=False, default=0.0)
    full_marks = Column(Float, nullable=False, default=100.0)
    credit = Column(Float, nullable=False, default=3.0)

    exam_type = Column(String(20), nullable=False, default="final")  # internal / final / other
    exam_year = Column(Integer, nullable=False, index=True)
    semester = Column(Integer, nullable=False)  # student's semester when recorded

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        UniqueConstraint("student_id", "subject_id", "exam_type", "exam_year", name="uq_mark_student_subject_exam"),
    )

    student = relationship("models.students.Student", back_populates="marks")
    subject = relationship("Subject")
