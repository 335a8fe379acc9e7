from pydantic import BaseModel, Field
from typing import List, Optional


# 1. SUBJECTS
class SubjectCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=100)
    credit: float = Field(3.0, gt=0)
    full_marks: float = Field(100.0, gt=0)
    semester: Optional[int] = Field(None, ge=1)
    teacher_id: Optional[int] = None


class SubjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    credit: Optional[float] = Field(None, gt=0)
    full_marks: Optional[float] = Field(None, gt=0)
    semester: Optional[int] = Field(None, ge=1)
    teacher_id: Optional[int] = None


class SubjectOut(BaseModel):
    id: int
    code: str
    name: str
    credit: float
    full_marks: float
    semester: Optional[int] = None
    teacher_id: Optional[int] = None

    class Config:
        from_attributes = True


# 2. MARKS
# Range and exam checks live in services.marks so that every caller gets them
class MarkCreate(BaseModel):
    subject_id: int
    marks_obtained: float
    exam_type: str = "final"
    exam_year: int
    full_marks: Optional[float] = None


class MarkUpdate(BaseModel):
    marks_obtained: float


class BulkMarkItem(BaseModel):
    student_id: int
    subject_id: int
    marks_obtained: float
    full_marks: Optional[float] = None


class BulkMarksSchema(BaseModel):
    exam_type: str = "final"
    exam_year: int
    entries: List[BulkMarkItem]


class MarkOut(BaseModel):
    id: int
    student_id: int
    subject_id: int
    student_name: Optional[str] = None
    subject_name: Optional[str] = None
    marks_obtained: float
    full_marks: float
    credit: float
    exam_type: str
    exam_year: int
    semester: int

    class Config:
        from_attributes = True
