from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from database import get_db
from models.results import Result
from models.users import User
from schemas.exams import MarkOut
from schemas.results import (
    PublishSchema, RecalculateSchema, ResultDetail, ResultOut, ResultPage,
    ResultStats, SubjectGradeOut,
)
from security import get_current_user, require_roles
from services.aggregator import recalculate_cohort
from services.lifecycle import (
    ResultFilters, get_result_detail, list_results, publish_results, result_statistics,
)

router = APIRouter(prefix="/api/v1/results", tags=["Results"])

admin_only = require_roles("admin")
staff_only = require_roles("admin", "teacher")


# ===========================
#   LISTING & STATISTICS
# ===========================

@router.get("", response_model=ResultPage)
def read_results(
    semester: Optional[int] = None,
    exam_year: Optional[int] = None,
    program: Optional[str] = None,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    _: User = Depends(staff_only),
):
    result_page = list_results(db, ResultFilters(semester, exam_year, program, status), page=page, limit=limit)
    return ResultPage(
        items=[ResultOut.model_validate(r) for r in result_page.items],
        total=result_page.total,
        page=result_page.page,
        limit=result_page.limit,
        pages=result_page.pages,
    )


@router.get("/stats", response_model=ResultStats)
def read_statistics(
    semester: Optional[int] = None,
    exam_year: Optional[int] = None,
    program: Optional[str] = None,
    top: Optional[int] = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    stats = result_statistics(db, semester, exam_year, program, top_limit=top)
    stats["top_students"] = [ResultOut.model_validate(r) for r in stats["top_students"]]
    return stats


@router.get("/me", response_model=List[ResultOut])
def my_results(db: Session = Depends(get_db), current_user: User = Depends(require_roles("student"))):
    """Published results of the logged-in student."""
    student = current_user.student_profile
    if student is None:
        raise HTTPException(status_code=404, detail="No student profile linked to this account")

    results = (
        db.query(Result)
        .filter(Result.student_id == student.id, Result.status == "published")
        .order_by(Result.exam_year, Result.semester)
        .all()
    )
    return [ResultOut.model_validate(r) for r in results]


@router.get("/{result_id}", response_model=ResultDetail)
def read_result(result_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    detail = get_result_detail(db, result_id)
    result = detail["result"]

    if current_user.role == "student":
        # Pending results are invisible to students, even their own
        own = current_user.student_profile is not None and current_user.student_profile.id == result.student_id
        if not own or result.status != "published":
            raise HTTPException(status_code=404, detail=f"Result {result_id} not found")

    return ResultDetail(
        result=ResultOut.model_validate(result),
        marks=[MarkOut.model_validate(m) for m in detail["marks"]],
        breakdown=[SubjectGradeOut.model_validate(g) for g in detail["breakdown"]],
        calculated_gpa=detail["calculated_gpa"],
        total_credits=detail["total_credits"],
    )


# ===========================
#   ADMIN ACTIONS
# ===========================

@router.post("/publish")
def publish(payload: PublishSchema, db: Session = Depends(get_db), current_user: User = Depends(admin_only)):
    outcome = publish_results(
        db,
        approver_id=current_user.id,
        semester=payload.semester,
        exam_year=payload.exam_year,
        program=payload.program,
    )
    return {
        "message": f"{outcome.affected_count} results published",
        "affected_count": outcome.affected_count,
        "cohorts": [cohort._asdict() for cohort in outcome.cohorts],
    }


@router.post("/recalculate")
def recalculate(payload: RecalculateSchema, db: Session = Depends(get_db), _: User = Depends(admin_only)):
    summary = recalculate_cohort(db, payload.semester, payload.exam_year, payload.program)
    return {"message": "Results recalculated", **summary}
