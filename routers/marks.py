from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from models.users import User
from schemas.exams import BulkMarksSchema, MarkOut, MarkUpdate
from security import require_roles
from services.marks import MarkEntry, bulk_upsert_marks, update_mark

router = APIRouter(prefix="/api/v1/marks", tags=["Marks"])

staff_only = require_roles("admin", "teacher")


@router.put("/{mark_id}", response_model=MarkOut)
def edit_mark(mark_id: int, data: MarkUpdate, db: Session = Depends(get_db), _: User = Depends(staff_only)):
    mark = update_mark(db, mark_id, data.marks_obtained)
    db.refresh(mark)
    return mark


@router.post("/bulk")
def save_marks(payload: BulkMarksSchema, db: Session = Depends(get_db), _: User = Depends(staff_only)):
    """Create or update a batch of marks for one exam; all or nothing."""
    outcome = bulk_upsert_marks(
        db,
        [MarkEntry(e.student_id, e.subject_id, e.marks_obtained, e.full_marks) for e in payload.entries],
        exam_type=payload.exam_type,
        exam_year=payload.exam_year,
    )
    return {
        "message": "Marks saved",
        "created": outcome.created,
        "updated": outcome.updated,
        "results_refreshed": outcome.results_refreshed,
    }
