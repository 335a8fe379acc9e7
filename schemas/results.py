from pydantic import BaseModel
from datetime import datetime
from typing import Dict, List, Optional

from schemas.exams import MarkOut


class ResultOut(BaseModel):
    id: int
    student_id: int
    student_name: Optional[str] = None
    roll_no: Optional[str] = None
    semester: int
    exam_year: int
    program: Optional[str] = None
    total_marks: float
    total_credits: float
    gpa: float
    grade: Optional[str] = None
    rank: Optional[int] = None
    status: str
    published_at: Optional[datetime] = None
    approved_by: Optional[int] = None

    class Config:
        from_attributes = True


class ResultPage(BaseModel):
    items: List[ResultOut]
    total: int
    page: int
    limit: int
    pages: int


class SubjectGradeOut(BaseModel):
    subject_name: Optional[str] = None
    marks_obtained: float
    percentage: float
    grade: str
    grade_point: float
    credit: float

    class Config:
        from_attributes = True


class ResultDetail(BaseModel):
    result: ResultOut
    marks: List[MarkOut]
    breakdown: List[SubjectGradeOut]
    calculated_gpa: float
    total_credits: float


class PublishSchema(BaseModel):
    semester: Optional[int] = None
    exam_year: Optional[int] = None
    program: Optional[str] = None


class RecalculateSchema(BaseModel):
    semester: int
    exam_year: int
    program: Optional[str] = None


class OverallStats(BaseModel):
    total_students: int
    average_gpa: float
    min_gpa: float
    max_gpa: float
    grade_distribution: Dict[str, int]
    divisions: Dict[str, int]


class SubjectAverage(BaseModel):
    subject_name: str
    code: str
    average_marks: float
    total_students: int
    min_marks: Optional[float] = None
    max_marks: Optional[float] = None


class ResultStats(BaseModel):
    overall: OverallStats
    top_students: List[ResultOut]
    subject_averages: List[SubjectAverage]
