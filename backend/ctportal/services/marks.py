"""
Mark Store - create-or-update and atomic batch writes of class-test marks.

Rules applied to every write:
1. A mark is keyed by (ct_id, student_email); writing it again updates it
2. The original created_at is preserved; updated_at is stamped on each write
3. Absent marks never persist marks_obtained, whatever the caller passed
4. Feedback is persisted only when non-empty

No function here raises to the caller. Validation failures and database
errors are logged and surfaced as False / None / [].
"""

import math
import time
from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ctportal.models.class_test import ClassTest
from ctportal.models.mark import Mark, MarkStatus
from ctportal.services.identity import extract_student_id, make_temp_email, normalize_email
from ctportal.logging_config import get_logger, log_with_context

logger = get_logger("marks")

_VALID_STATUSES = {s.value for s in MarkStatus}


def _status_value(status) -> Optional[str]:
    """Accept a MarkStatus or its string value; None if invalid."""
    if isinstance(status, MarkStatus):
        return status.value
    if isinstance(status, str) and status.strip().lower() in _VALID_STATUSES:
        return status.strip().lower()
    return None


def _score_value(marks_obtained) -> Optional[float]:
    """Convert a score to float; raises ValueError for non-numeric or negative input."""
    if marks_obtained is None:
        return None
    if isinstance(marks_obtained, bool):
        raise ValueError("boolean score")
    score = float(marks_obtained)
    if math.isnan(score) or math.isinf(score) or score < 0:
        raise ValueError("score out of range")
    return score


def _validate_record(student_email, student_id, status, marks_obtained=None) -> Optional[str]:
    """Return a reason string when a record cannot be written, else None."""
    if not normalize_email(student_email):
        return "missing student_email"
    if not student_id:
        return "missing student_id"
    try:
        int(student_id)
    except (TypeError, ValueError):
        return "invalid student_id {!r}".format(student_id)
    if _status_value(status) is None:
        return "invalid status {!r}".format(status)
    try:
        _score_value(marks_obtained)
    except (TypeError, ValueError):
        return "invalid marks_obtained {!r}".format(marks_obtained)
    return None


def _apply_mark(db: Session, ct_id: str, course_id: str, student_email: str,
                student_id: int, status, marks_obtained=None, feedback=None) -> bool:
    """
    Stage one mark write in the session (no commit).

    Returns True when a new record was created, False when an existing
    record was updated.
    """
    now = datetime.now(timezone.utc)
    status_value = _status_value(status)
    student_email = normalize_email(student_email)

    mark = db.get(Mark, (ct_id, student_email))
    created = mark is None
    if created:
        mark = Mark(ct_id=ct_id, student_email=student_email, created_at=now)
        db.add(mark)

    mark.course_id = course_id
    mark.student_id = int(student_id)
    mark.status = status_value
    mark.marks_obtained = (
        _score_value(marks_obtained)
        if status_value == MarkStatus.PRESENT.value
        else None
    )
    mark.feedback = feedback if feedback else None
    mark.updated_at = now
    return created


def upsert_mark(db: Session, ct_id: str, course_id: str, student_email: str,
                student_id: int, status, marks_obtained=None,
                feedback: Optional[str] = None) -> bool:
    """
    Add or update the mark of one student in a class test.

    If status is 'absent', marks_obtained is dropped.

    Returns:
        True on success, False on validation or database failure
    """
    student_email = normalize_email(student_email)
    context = {"ct_id": ct_id, "student_email": student_email}

    if not ct_id or not course_id:
        log_with_context(logger, "ERROR", "Missing required fields: ct_id/course_id", context=context)
        return False
    reason = _validate_record(student_email, student_id, status, marks_obtained)
    if reason:
        log_with_context(logger, "ERROR", "Invalid mark: {}".format(reason), context=context)
        return False

    try:
        created = _apply_mark(db, ct_id, course_id, student_email, student_id,
                              status, marks_obtained, feedback)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Error adding/updating mark: {}".format(e),
                         context=context)
        return False

    log_with_context(logger, "INFO",
        "Mark {} for student".format("added" if created else "updated"),
        context=context,
        extra_data={"status": _status_value(status)})
    return True


def batch_upsert_marks(db: Session, ct_id: str, course_id: str, records: List[dict]) -> bool:
    """
    Write marks for many students as one all-or-nothing transaction.

    Args:
        db: Database session
        ct_id: Class test ID
        course_id: Course ID
        records: Dicts with student_email, student_id, status and optional
                 marks_obtained / feedback

    Returns:
        True when every record was committed, False when none were
    """
    start_time = time.time()
    context = {"ct_id": ct_id, "course_id": course_id}

    if not ct_id or not course_id or not records:
        log_with_context(logger, "ERROR", "Missing required fields for batch update", context=context)
        return False

    # Validate everything up front so a bad record never leaves a partial batch
    for index, record in enumerate(records):
        reason = _validate_record(record.get("student_email"), record.get("student_id"),
                                  record.get("status"), record.get("marks_obtained"))
        if reason:
            log_with_context(logger, "ERROR",
                "Batch rejected: record {} has {}".format(index, reason), context=context)
            return False

    try:
        for record in records:
            _apply_mark(
                db, ct_id, course_id,
                record["student_email"],
                record["student_id"],
                record["status"],
                record.get("marks_obtained"),
                record.get("feedback"),
            )
            # Flush so a repeated email inside the same batch updates the staged row
            db.flush()
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Error batch updating marks: {}".format(e),
                         context=context)
        return False

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO", "Batch updated {} marks".format(len(records)),
                     context=context,
                     extra_data={"duration_ms": round(duration_ms, 2), "records": len(records)})
    return True


def get_marks_for_test(db: Session, ct_id: str) -> List[Mark]:
    """All marks recorded for a class test."""
    if not ct_id:
        log_with_context(logger, "ERROR", "Missing ct_id")
        return []
    try:
        marks = db.query(Mark).filter(Mark.ct_id == ct_id).order_by(Mark.student_id).all()
    except SQLAlchemyError as e:
        log_with_context(logger, "ERROR", "Error fetching marks: {}".format(e),
                         context={"ct_id": ct_id})
        return []

    log_with_context(logger, "DEBUG", "Fetched {} marks for class test".format(len(marks)),
                     context={"ct_id": ct_id})
    return marks


def get_mark_for_student(db: Session, ct_id: str, student_email: str) -> Optional[Mark]:
    """The mark of one student in a class test, or None."""
    student_email = normalize_email(student_email)
    if not ct_id or not student_email:
        log_with_context(logger, "ERROR", "Missing required fields: ct_id/student_email")
        return None
    try:
        return db.get(Mark, (ct_id, student_email))
    except SQLAlchemyError as e:
        log_with_context(logger, "ERROR", "Error fetching student mark: {}".format(e),
                         context={"ct_id": ct_id, "student_email": student_email})
        return None


def get_all_marks_for_student_in_course(db: Session, course_id: str,
                                        student_email: str) -> List[Mark]:
    """
    Every mark of a student across the class tests of a course.

    Walks the course's tests in date order and looks up the student's mark
    in each one. Marks recorded under the student_<id>@temp.com placeholder
    before the student registered are found too; a mark under the real
    email wins when both exist.
    """
    student_email = normalize_email(student_email)
    if not course_id or not student_email:
        log_with_context(logger, "ERROR", "Missing required fields: course_id/student_email")
        return []

    context = {"course_id": course_id, "student_email": student_email}
    try:
        class_tests = (
            db.query(ClassTest)
            .filter(ClassTest.course_id == course_id)
            .order_by(ClassTest.date)
            .all()
        )
    except SQLAlchemyError as e:
        log_with_context(logger, "ERROR", "Error fetching student course marks: {}".format(e),
                         context=context)
        return []

    student_id = extract_student_id(student_email)
    placeholder = make_temp_email(student_id) if student_id else None

    marks = []
    for ct in class_tests:
        mark = get_mark_for_student(db, ct.id, student_email)
        if mark is None and placeholder:
            mark = get_mark_for_student(db, ct.id, placeholder)
        if mark:
            marks.append(mark)

    log_with_context(logger, "DEBUG", "Fetched {} marks for student in course".format(len(marks)),
                     context=context, extra_data={"class_tests": len(class_tests)})
    return marks


def serialize_mark(mark: Mark) -> dict:
    """Serialize a Mark ORM object to a dict for API response."""
    return {
        "ct_id": mark.ct_id,
        "course_id": mark.course_id,
        "student_id": mark.student_id,
        "student_email": mark.student_email,
        "status": mark.status,
        "marks_obtained": mark.marks_obtained,
        "feedback": mark.feedback,
        "created_at": mark.created_at.isoformat() if mark.created_at else None,
        "updated_at": mark.updated_at.isoformat() if mark.updated_at else None,
    }
