from sqlalchemy import Column, Integer, String, Date, ForeignKey
from sqlalchemy.orm import relationship
from database import Base


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=True)
    roll_no = Column(String(30), unique=True, index=True, nullable=False)
    student_name = Column(String(100), nullable=False)

    # --- ACADEMIC INFO ---
    semester = Column(Integer, nullable=False, default=1)
    program = Column(String(50), nullable=False, default="BCA")

    # --- PERSONAL INFO ---
    father_name = Column(String(100), nullable=True)
    mother_name = Column(String(100), nullable=True)
    address = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    dob = Column(Date, nullable=True)

    # --- RELATIONSHIPS ---
    user = relationship("models.users.User", back_populates="student_profile")

    # Marks and results are never deleted on their own, only with the student
    marks = relationship(
        "models.exams.Mark", back_populates="student", cascade="all, delete-orphan"
    )
    results = relationship(
        "models.results.Result", back_populates="student", cascade="all, delete-orphan"
    )
