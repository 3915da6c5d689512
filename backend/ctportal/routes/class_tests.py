"""
Class-test API routes - lifecycle and statistics.

Publishing commits the state and schedules the result notifications as a
background task, so the response never waits on the push gateway.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ctportal.database import get_db, get_session_factory
from ctportal.services.class_tests import (
    create_class_test, get_course_class_tests, get_class_test, update_class_test,
    publish_class_test, delete_class_test, dispatch_ct_published_notifications,
    serialize_class_test
)
from ctportal.services.courses import get_course
from ctportal.services.aggregation import compute_test_stats
from ctportal.services.notifications import PushGateway, get_push_gateway
from ctportal.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class ClassTestCreate(BaseModel):
    name: str = Field(..., min_length=1)
    total_marks: int = Field(..., gt=0)
    teacher_email: str
    date: Optional[datetime] = None
    description: Optional[str] = None


class ClassTestUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    date: Optional[datetime] = None
    total_marks: Optional[int] = Field(None, gt=0)
    is_published: Optional[bool] = None


class ClassTestStats(BaseModel):
    total_students: int
    present_students: int
    absent_students: int
    average_marks: float
    highest_marks: float
    lowest_marks: float


@router.post("/api/courses/{course_id}/class-tests", status_code=201)
def create(course_id: str, request: ClassTestCreate, db: Session = Depends(get_db)):
    if get_course(db, course_id) is None:
        raise HTTPException(status_code=404, detail="Course not found")
    ct = create_class_test(db, course_id, request.name, request.total_marks,
                           request.teacher_email, request.date, request.description)
    if ct is None:
        raise HTTPException(status_code=400, detail="Could not create class test")
    return serialize_class_test(ct)


@router.get("/api/courses/{course_id}/class-tests")
def list_class_tests(course_id: str, db: Session = Depends(get_db)):
    return {"data": [serialize_class_test(ct) for ct in get_course_class_tests(db, course_id)]}


@router.get("/api/class-tests/{ct_id}")
def read_class_test(ct_id: str, db: Session = Depends(get_db)):
    ct = get_class_test(db, ct_id)
    if ct is None:
        raise HTTPException(status_code=404, detail="Class test not found")
    return serialize_class_test(ct)


@router.patch("/api/class-tests/{ct_id}")
def update(ct_id: str, request: ClassTestUpdate, db: Session = Depends(get_db)):
    updates = request.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    if not update_class_test(db, ct_id, updates):
        raise HTTPException(status_code=404, detail="Class test not found")
    return serialize_class_test(get_class_test(db, ct_id))


@router.post("/api/class-tests/{ct_id}/publish")
def publish(ct_id: str, background_tasks: BackgroundTasks,
            db: Session = Depends(get_db),
            gateway: PushGateway = Depends(get_push_gateway),
            session_factory=Depends(get_session_factory)):
    """Publish results; student notifications are sent after the response."""
    def schedule(published_ct_id: str):
        background_tasks.add_task(dispatch_ct_published_notifications,
                                  published_ct_id, gateway, session_factory)

    if not publish_class_test(db, ct_id, dispatch=schedule):
        raise HTTPException(status_code=404, detail="Class test not found")

    log_with_context(logger, "INFO", "Class test published; notifications scheduled",
                     context={"ct_id": ct_id})
    return {"message": "Class test published", "ct_id": ct_id, "is_published": True}


@router.delete("/api/class-tests/{ct_id}")
def delete(ct_id: str, db: Session = Depends(get_db)):
    """Delete a class test together with all of its marks."""
    if not delete_class_test(db, ct_id):
        raise HTTPException(status_code=404, detail="Class test not found")
    return {"message": "Class test deleted", "ct_id": ct_id}


@router.get("/api/class-tests/{ct_id}/stats", response_model=ClassTestStats)
def stats(ct_id: str, db: Session = Depends(get_db)):
    if get_class_test(db, ct_id) is None:
        raise HTTPException(status_code=404, detail="Class test not found")
    result = compute_test_stats(db, ct_id)
    if result is None:
        raise HTTPException(status_code=500, detail="Could not compute statistics")
    return ClassTestStats(**result)
