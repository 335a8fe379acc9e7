from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from database import Base
from datetime import datetime

RESULT_STATUSES = ("pending", "published")


class Result(Base):
    __tablename__ = "results"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)

    # Denormalized student details at aggregation time
    student_name = Column(String(100))
    roll_no = Column(String(30))

    semester = Column(Integer, nullable=False)
    exam_year = Column(Integer, nullable=False)

    total_marks = Column(Float, default=0.0)    # sum of final marks_obtained
    total_credits = Column(Float, default=0.0)
    gpa = Column(Float, default=0.0)            # 2dp, credit weighted
    grade = Column(String(5))
    rank = Column(Integer, nullable=True)       # null while pending

    status = Column(String(20), nullable=False, default="pending")  # pending / published
    published_at = Column(DateTime, nullable=True)
    approved_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        UniqueConstraint("student_id", "semester", "exam_year", name="uq_result_student_semester_year"),
    )

    student = relationship("models.students.Student", back_populates="results")

    @property
    def program(self):
        return self.student.program if self.student else None
