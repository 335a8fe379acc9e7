from pydantic import BaseModel, Field
from datetime import date
from typing import Optional


class StudentCreate(BaseModel):
    roll_no: str = Field(..., min_length=1, max_length=30)
    student_name: str = Field(..., min_length=1, max_length=100)
    semester: int = Field(1, ge=1)
    program: str = "BCA"
    father_name: Optional[str] = None
    mother_name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    dob: Optional[date] = None

    # Optional login account for the student portal
    email: Optional[str] = None
    password: Optional[str] = Field(None, min_length=6)


class StudentUpdate(BaseModel):
    student_name: Optional[str] = Field(None, min_length=1, max_length=100)
    semester: Optional[int] = Field(None, ge=1)
    program: Optional[str] = None
    father_name: Optional[str] = None
    mother_name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    dob: Optional[date] = None


class StudentOut(BaseModel):
    id: int
    user_id: Optional[int] = None
    roll_no: str
    student_name: str
    semester: int
    program: str
    father_name: Optional[str] = None
    mother_name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    dob: Optional[date] = None

    class Config:
        from_attributes = True
