from pydantic import BaseModel, Field
from typing import List, Optional

from schemas.exams import SubjectOut


class TeacherCreate(BaseModel):
    teacher_name: str = Field(..., min_length=1, max_length=100)
    email: str
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None
    department: str = "Computer Science"
    qualification: Optional[str] = None
    experience: int = Field(0, ge=0)


class TeacherUpdate(BaseModel):
    teacher_name: Optional[str] = Field(None, min_length=1, max_length=100)
    department: Optional[str] = None
    qualification: Optional[str] = None
    experience: Optional[int] = Field(None, ge=0)


class TeacherOut(BaseModel):
    id: int
    user_id: Optional[int] = None
    teacher_name: str
    department: Optional[str] = None
    qualification: Optional[str] = None
    experience: Optional[int] = None

    class Config:
        from_attributes = True


class TeacherDetail(TeacherOut):
    subjects: List[SubjectOut] = []
