"""
Marks Bulk Import Router
Lets staff upload a CSV or Excel sheet of marks for one exam. Rows are
matched to students by roll number and to subjects by code; rows that
fail a lookup are reported back and the rest are saved in one batch.
"""

import io
import zipfile
from typing import Any, Dict, List, Optional

import pandas as pd
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from database import get_db
from logger import get_logger
from models.exams import Mark, Subject
from models.students import Student
from models.users import User
from security import require_roles
from services.marks import MarkEntry, bulk_upsert_marks, validate_exam

log = get_logger(__name__)

router = APIRouter(prefix="/api/v1/marks", tags=["Bulk Import"])

REQUIRED_COLUMNS = ["roll_no", "subject_code", "marks_obtained"]
OPTIONAL_COLUMNS = ["full_marks"]


# ==========================================
#   CELL HELPERS
# ==========================================

def safe_str(value) -> Optional[str]:
    """Safely convert value to string, handling NaN and None"""
    if value is None or pd.isna(value):
        return None
    text = str(value).strip()
    return text or None


def safe_float(value) -> Optional[float]:
    """Safely convert value to float"""
    if value is None or pd.isna(value):
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def read_sheet(filename: str, contents: bytes) -> pd.DataFrame:
    """Parse an uploaded CSV or Excel file into a DataFrame with normalized headers."""
    name = (filename or "").lower()
    dtype = {"roll_no": str, "subject_code": str}
    if name.endswith(".csv"):
        df = pd.read_csv(io.BytesIO(contents), dtype=dtype)
    elif name.endswith(".xlsx"):
        df = pd.read_excel(io.BytesIO(contents), engine="openpyxl", dtype=dtype)
    else:
        raise HTTPException(
            status_code=400,
            detail="Invalid file format. Please upload a .csv or .xlsx file"
        )
    df.columns = df.columns.astype(str).str.strip().str.lower()
    return df


# ==========================================
#   MAIN IMPORT ENDPOINT
# ==========================================

@router.post("/import")
def import_marks(
    file: UploadFile = File(...),
    exam_year: int = Form(...),
    exam_type: str = Form("final"),
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("admin", "teacher")),
):
    """
    Import marks for one exam.

    Expected columns: roll_no, subject_code, marks_obtained; optional full_marks.
    """
    validate_exam(exam_type, exam_year)

    try:
        df = read_sheet(file.filename, file.file.read())
    except (ValueError, UnicodeDecodeError, zipfile.BadZipFile) as e:
        raise HTTPException(status_code=400, detail=f"Error reading file: {str(e)}")

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing columns: {', '.join(missing)}")

    # Pre-fetch lookups once
    students = {s.roll_no: s.id for s in db.query(Student).all()}
    subjects = {s.code.upper(): s for s in db.query(Subject).all()}
    # Existing marks keep their full marks on update
    existing_limits = {
        (m.student_id, m.subject_id): m.full_marks
        for m in db.query(Mark).filter(Mark.exam_type == exam_type, Mark.exam_year == exam_year)
    }

    errors: List[Dict[str, Any]] = []
    entries: List[MarkEntry] = []
    seen = set()
    total_rows = len(df)

    for idx, row in df.iterrows():
        row_num = idx + 2  # sheet row number (1-indexed + header)

        if row.isna().all():
            continue

        roll_no = safe_str(row.get("roll_no"))
        code = safe_str(row.get("subject_code"))
        marks = safe_float(row.get("marks_obtained"))
        full_marks = safe_float(row.get("full_marks")) if "full_marks" in df.columns else None

        if not roll_no or not code:
            errors.append({"row": row_num, "error": "roll_no and subject_code are required"})
            continue
        if marks is None:
            errors.append({"row": row_num, "error": "marks_obtained must be a number"})
            continue

        student_id = students.get(roll_no)
        if student_id is None:
            errors.append({"row": row_num, "error": f"Student with roll number '{roll_no}' not found"})
            continue
        subject = subjects.get(code.upper())
        if subject is None:
            errors.append({"row": row_num, "error": f"Subject '{code}' not found"})
            continue

        if subject.credit is None or subject.credit <= 0:
            errors.append({"row": row_num, "error": f"Subject '{code}' has no positive credit"})
            continue

        limit = existing_limits.get((student_id, subject.id))
        if limit is None:
            limit = full_marks if full_marks is not None else (subject.full_marks or 100.0)
        if limit <= 0:
            errors.append({"row": row_num, "error": "full_marks must be positive"})
            continue
        if marks < 0 or marks > limit:
            errors.append({"row": row_num, "error": f"marks_obtained must be between 0 and {limit}"})
            continue

        key = (student_id, subject.id)
        if key in seen:
            errors.append({"row": row_num, "error": f"Duplicate row for '{roll_no}' / '{code}'"})
            continue
        seen.add(key)

        entries.append(MarkEntry(student_id, subject.id, marks, full_marks))

    created = updated = refreshed = 0
    if entries:
        outcome = bulk_upsert_marks(db, entries, exam_type=exam_type, exam_year=exam_year)
        created, updated, refreshed = outcome.created, outcome.updated, outcome.results_refreshed

    log.info(
        "Marks import %s: %d rows, %d saved, %d errors",
        file.filename, total_rows, created + updated, len(errors),
    )
    return {
        "success": True,
        "total_rows": total_rows,
        "created": created,
        "updated": updated,
        "results_refreshed": refreshed,
        "error_count": len(errors),
        "errors": errors,
    }


# ==========================================
#   SAMPLE TEMPLATE
# ==========================================

@router.get("/import/template")
def get_sample_template():
    """Column names expected by the marks import."""
    return {
        "required_columns": REQUIRED_COLUMNS,
        "optional_columns": OPTIONAL_COLUMNS,
        "form_fields": {"exam_year": "required, e.g. 2024", "exam_type": "internal | final | other (default final)"},
        "notes": [
            "roll_no must match an existing student",
            "subject_code must match an existing subject (case-insensitive)",
            "full_marks defaults to the subject's full marks",
            "Existing marks for the same exam are updated in place",
        ],
    }
