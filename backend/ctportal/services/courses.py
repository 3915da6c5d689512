"""
Course Roster Service - courses, enrollment and bulk roster import.

Rosters are often imported before students have signed in. A student
with no account yet is enrolled under the placeholder
student_<id>@temp.com; registering the real account later re-links the
enrollment (see services/users.py). Marks recorded against the
placeholder keep it, which is why notification fan-out translates
recipient emails through the roster.
"""

from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ctportal.models.course import Course, Enrollment
from ctportal.models.user import Student
from ctportal.services.identity import make_temp_email, normalize_email
from ctportal.logging_config import get_logger, log_with_context

logger = get_logger("db")


def create_course(db: Session, name: str, teacher_email: str, code: Optional[str] = None,
                  best_ct_count: Optional[int] = None) -> Optional[Course]:
    if not name or not name.strip() or not teacher_email:
        log_with_context(logger, "ERROR", "Missing required fields for course")
        return None
    if best_ct_count is not None and best_ct_count < 0:
        log_with_context(logger, "ERROR", "best_ct_count cannot be negative")
        return None

    course = Course(
        name=name.strip(),
        code=code,
        teacher_email=normalize_email(teacher_email),
        best_ct_count=best_ct_count or None,
        created_at=datetime.now(timezone.utc),
    )
    try:
        db.add(course)
        db.commit()
        db.refresh(course)
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Error creating course: {}".format(e))
        return None

    log_with_context(logger, "INFO", "Created new course: {}".format(course.name),
                     context={"course_id": course.id})
    return course


def get_course(db: Session, course_id: str) -> Optional[Course]:
    if not course_id:
        return None
    try:
        return db.get(Course, course_id)
    except SQLAlchemyError as e:
        log_with_context(logger, "ERROR", "Error fetching course: {}".format(e),
                         context={"course_id": course_id})
        return None


def _real_email_for(db: Session, student_id: int) -> Optional[str]:
    student = db.query(Student).filter(Student.student_id == student_id).first()
    return student.email if student else None


def _stage_enrollment(db: Session, course_id: str, student_id: int,
                      student_email: Optional[str]) -> Enrollment:
    """Add or refresh one roster row in the session (no commit)."""
    email = normalize_email(student_email) or _real_email_for(db, student_id) \
        or make_temp_email(student_id)

    enrollment = db.get(Enrollment, (course_id, student_id))
    if enrollment is None:
        enrollment = Enrollment(
            course_id=course_id,
            student_id=student_id,
            student_email=email,
            is_active=True,
            enrolled_at=datetime.now(timezone.utc),
        )
        db.add(enrollment)
    else:
        enrollment.student_email = email
    return enrollment


def enroll_student(db: Session, course_id: str, student_id: int,
                   student_email: Optional[str] = None) -> bool:
    """Enroll one student; without an email the placeholder is used."""
    context = {"course_id": course_id, "student_id": student_id}
    if not course_id or not student_id:
        log_with_context(logger, "ERROR", "Missing required fields for enrollment", context=context)
        return False
    try:
        if not db.get(Course, course_id):
            log_with_context(logger, "WARNING", "Course not found", context=context)
            return False
        _stage_enrollment(db, course_id, int(student_id), student_email)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Error enrolling student: {}".format(e), context=context)
        return False
    return True


def import_roster(db: Session, course_id: str, entries: List[dict]) -> Optional[int]:
    """
    Bulk enroll students in one transaction.

    Args:
        entries: Dicts with student_id and optional student_email

    Returns:
        Number of roster rows written, or None on failure
    """
    context = {"course_id": course_id}
    if not course_id or not entries:
        log_with_context(logger, "ERROR", "Missing required fields for roster import", context=context)
        return None
    if any(not entry.get("student_id") for entry in entries):
        log_with_context(logger, "ERROR", "Roster entry without student_id", context=context)
        return None

    try:
        if not db.get(Course, course_id):
            log_with_context(logger, "WARNING", "Course not found", context=context)
            return None
        for entry in entries:
            _stage_enrollment(db, course_id, int(entry["student_id"]), entry.get("student_email"))
            db.flush()
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Error importing roster: {}".format(e), context=context)
        return None

    log_with_context(logger, "INFO", "Imported roster of {} students".format(len(entries)),
                     context=context)
    return len(entries)


def get_enrolled_students(db: Session, course_id: str) -> List[Enrollment]:
    if not course_id:
        return []
    try:
        return (
            db.query(Enrollment)
            .filter(Enrollment.course_id == course_id)
            .order_by(Enrollment.student_id)
            .all()
        )
    except SQLAlchemyError as e:
        log_with_context(logger, "ERROR", "Error fetching enrolled students: {}".format(e),
                         context={"course_id": course_id})
        return []


def get_student_courses(db: Session, student_email: str, active_only: bool = False) -> List[Course]:
    """Courses a student is enrolled in, matched by real or placeholder email."""
    email = normalize_email(student_email)
    if not email:
        return []
    try:
        student = db.get(Student, email)
        emails = [email]
        if student:
            emails.append(make_temp_email(student.student_id))
        query = (
            db.query(Course)
            .join(Enrollment, Enrollment.course_id == Course.id)
            .filter(Enrollment.student_email.in_(emails))
        )
        if active_only:
            query = query.filter(Enrollment.is_active.is_(True))
        return query.order_by(Course.name).all()
    except SQLAlchemyError as e:
        log_with_context(logger, "ERROR", "Error fetching student courses: {}".format(e),
                         context={"student_email": email})
        return []


def set_enrollment_active(db: Session, course_id: str, student_email: str, is_active: bool) -> bool:
    """Archive (False) or restore (True) a course for a student."""
    email = normalize_email(student_email)
    context = {"course_id": course_id, "student_email": email}
    try:
        enrollment = (
            db.query(Enrollment)
            .filter(Enrollment.course_id == course_id, Enrollment.student_email == email)
            .first()
        )
        if not enrollment:
            log_with_context(logger, "WARNING", "Enrollment not found", context=context)
            return False
        enrollment.is_active = is_active
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Error updating course status: {}".format(e), context=context)
        return False
    return True


def serialize_course(course: Course) -> dict:
    return {
        "id": course.id,
        "name": course.name,
        "code": course.code,
        "teacher_email": course.teacher_email,
        "best_ct_count": course.best_ct_count,
        "created_at": course.created_at.isoformat() if course.created_at else None,
    }


def serialize_enrollment(enrollment: Enrollment) -> dict:
    return {
        "course_id": enrollment.course_id,
        "student_id": enrollment.student_id,
        "student_email": enrollment.student_email,
        "is_active": enrollment.is_active,
        "enrolled_at": enrollment.enrolled_at.isoformat() if enrollment.enrolled_at else None,
    }
