"""
Course API routes - courses, rosters, attendance alerts and course reports.
"""

import time
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ctportal.database import get_db
from ctportal.services.courses import (
    create_course, get_course, import_roster, get_enrolled_students,
    get_student_courses, set_enrollment_active, serialize_course, serialize_enrollment
)
from ctportal.services.aggregation import compute_course_report
from ctportal.services.identity import build_roster_map, translate_recipients
from ctportal.services.notifications import PushGateway, get_push_gateway, notify_absent_students
from ctportal.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class CourseCreate(BaseModel):
    name: str
    teacher_email: str
    code: Optional[str] = None
    best_ct_count: Optional[int] = Field(None, ge=0, description="Top-N class tests counted (empty = all)")


class RosterEntry(BaseModel):
    student_id: int = Field(..., gt=0, description="7-digit student number")
    student_email: Optional[str] = Field(None, description="Real email when known")


class RosterImportRequest(BaseModel):
    students: List[RosterEntry]


class EnrollmentStatusRequest(BaseModel):
    is_active: bool


class AbsentAlertRequest(BaseModel):
    date: datetime
    student_emails: List[str]


def _require_course(db: Session, course_id: str):
    course = get_course(db, course_id)
    if course is None:
        raise HTTPException(status_code=404, detail="Course not found")
    return course


@router.post("/api/courses", status_code=201)
def create(request: CourseCreate, db: Session = Depends(get_db)):
    course = create_course(db, request.name, request.teacher_email, request.code, request.best_ct_count)
    if course is None:
        raise HTTPException(status_code=400, detail="Could not create course")
    return serialize_course(course)


@router.get("/api/courses/{course_id}")
def read_course(course_id: str, db: Session = Depends(get_db)):
    return serialize_course(_require_course(db, course_id))


@router.post("/api/courses/{course_id}/roster")
def upload_roster(course_id: str, request: RosterImportRequest, db: Session = Depends(get_db)):
    """
    Bulk import a course roster.

    Students without a registered account are enrolled under the
    student_<id>@temp.com placeholder until they sign in.
    """
    start_time = time.time()
    _require_course(db, course_id)
    imported = import_roster(db, course_id, [s.model_dump() for s in request.students])
    if imported is None:
        raise HTTPException(status_code=400, detail="Roster import failed")

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO", "Roster imported: {} students".format(imported),
                     context={"course_id": course_id},
                     extra_data={"duration_ms": round(duration_ms, 2)})
    return {"course_id": course_id, "imported": imported}


@router.get("/api/courses/{course_id}/students")
def list_students(course_id: str, db: Session = Depends(get_db)):
    _require_course(db, course_id)
    return {"data": [serialize_enrollment(e) for e in get_enrolled_students(db, course_id)]}


@router.put("/api/courses/{course_id}/students/{email}/status")
def update_enrollment_status(course_id: str, email: str, request: EnrollmentStatusRequest,
                             db: Session = Depends(get_db)):
    """Archive or restore a course for one student."""
    if not set_enrollment_active(db, course_id, email, request.is_active):
        raise HTTPException(status_code=404, detail="Enrollment not found")
    return {"course_id": course_id, "student_email": email, "is_active": request.is_active}


@router.get("/api/students/{email}/courses")
def list_student_courses(email: str, active_only: bool = Query(False), db: Session = Depends(get_db)):
    return {"data": [serialize_course(c) for c in get_student_courses(db, email, active_only)]}


@router.get("/api/courses/{course_id}/report")
def course_report(course_id: str, db: Session = Depends(get_db)):
    """Per-test statistics and per-student best-N averages."""
    report = compute_course_report(db, course_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Course not found")
    return report


@router.post("/api/courses/{course_id}/attendance/absent-alerts")
def send_absent_alerts(course_id: str, request: AbsentAlertRequest,
                       db: Session = Depends(get_db),
                       gateway: PushGateway = Depends(get_push_gateway)):
    """Notify students marked absent in an attendance session."""
    course = _require_course(db, course_id)
    roster_map = build_roster_map(get_enrolled_students(db, course_id))
    recipients = translate_recipients(request.student_emails, roster_map)
    result = notify_absent_students(db, recipients, course.name, request.date, gateway)
    return {
        "course_id": course_id,
        "requested": len(request.student_emails),
        "excluded": len(request.student_emails) - len(recipients),
        **result,
    }
