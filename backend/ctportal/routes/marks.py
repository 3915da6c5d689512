"""
Marks API routes - recording marks and per-student course views.

Provides endpoints for:
- Upserting a single mark
- Atomic batch upsert for a whole class
- Listing marks of a class test / one student's mark
- A student's marks across a course and their best-N average
"""

import time
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ctportal.database import get_db
from ctportal.models.mark import MarkStatus
from ctportal.services.class_tests import get_class_test
from ctportal.services.courses import get_course
from ctportal.services.marks import (
    upsert_mark, batch_upsert_marks, get_marks_for_test, get_mark_for_student,
    get_all_marks_for_student_in_course, serialize_mark
)
from ctportal.services.aggregation import compute_student_best_average
from ctportal.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class MarkWrite(BaseModel):
    """Schema for writing one student's mark."""
    student_id: int = Field(..., gt=0)
    status: MarkStatus
    marks_obtained: Optional[float] = Field(None, ge=0, description="Ignored when status is absent")
    feedback: Optional[str] = None


class BatchMarkRecord(MarkWrite):
    student_email: str


class BatchMarkRequest(BaseModel):
    marks: List[BatchMarkRecord] = Field(..., min_length=1)


def _require_class_test(db: Session, ct_id: str):
    ct = get_class_test(db, ct_id)
    if ct is None:
        raise HTTPException(status_code=404, detail="Class test not found")
    return ct


def _check_ceiling(ct, marks_obtained: Optional[float]):
    if marks_obtained is not None and marks_obtained > ct.total_marks:
        raise HTTPException(
            status_code=400,
            detail="marks_obtained cannot exceed total marks ({})".format(ct.total_marks)
        )


@router.put("/api/class-tests/{ct_id}/marks/{email}")
def write_mark(ct_id: str, email: str, request: MarkWrite, db: Session = Depends(get_db)):
    """Create or update one student's mark."""
    ct = _require_class_test(db, ct_id)
    _check_ceiling(ct, request.marks_obtained)

    ok = upsert_mark(db, ct_id, ct.course_id, email, request.student_id, request.status,
                     request.marks_obtained, request.feedback)
    if not ok:
        raise HTTPException(status_code=400, detail="Could not save mark")
    return serialize_mark(get_mark_for_student(db, ct_id, email))


@router.post("/api/class-tests/{ct_id}/marks/batch")
def write_marks_batch(ct_id: str, request: BatchMarkRequest, db: Session = Depends(get_db)):
    """Write marks for many students; either all are saved or none are."""
    start_time = time.time()
    ct = _require_class_test(db, ct_id)
    for record in request.marks:
        _check_ceiling(ct, record.marks_obtained)

    records = [r.model_dump() for r in request.marks]
    if not batch_upsert_marks(db, ct_id, ct.course_id, records):
        raise HTTPException(status_code=400, detail="Batch rejected; no marks were saved")

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO", "Batch of {} marks saved".format(len(records)),
                     context={"ct_id": ct_id},
                     extra_data={"duration_ms": round(duration_ms, 2)})
    return {"ct_id": ct_id, "saved": len(records)}


@router.get("/api/class-tests/{ct_id}/marks")
def list_marks(ct_id: str, db: Session = Depends(get_db)):
    _require_class_test(db, ct_id)
    return {"data": [serialize_mark(m) for m in get_marks_for_test(db, ct_id)]}


@router.get("/api/class-tests/{ct_id}/marks/{email}")
def read_mark(ct_id: str, email: str, db: Session = Depends(get_db)):
    mark = get_mark_for_student(db, ct_id, email)
    if mark is None:
        raise HTTPException(status_code=404, detail="Mark not found")
    return serialize_mark(mark)


@router.get("/api/courses/{course_id}/students/{email}/marks")
def student_course_marks(course_id: str, email: str, db: Session = Depends(get_db)):
    marks = get_all_marks_for_student_in_course(db, course_id, email)
    return {"data": [serialize_mark(m) for m in marks]}


@router.get("/api/courses/{course_id}/students/{email}/best-average")
def student_best_average(
    course_id: str,
    email: str,
    best_count: Optional[int] = Query(None, ge=1, description="Override the course's best CT count"),
    db: Session = Depends(get_db)
):
    """Average of the student's best N class tests (N from the course by default)."""
    course = get_course(db, course_id)
    if course is None:
        raise HTTPException(status_code=404, detail="Course not found")

    effective = best_count if best_count is not None else course.best_ct_count
    average = compute_student_best_average(db, course_id, email, effective)
    return {
        "course_id": course_id,
        "student_email": email,
        "best_count": effective,
        "best_average": average,
    }
