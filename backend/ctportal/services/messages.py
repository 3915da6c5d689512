"""
Course Messages Service - teacher broadcasts to every enrolled student.

A message is persisted first and then fanned out as a push notification
to the course roster. Roster placeholders are translated like the
class-test publish path; the fan-out result is logged and does not affect
whether the message was created.
"""

from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ctportal.models.course import Course, Enrollment
from ctportal.models.course_message import CourseMessage
from ctportal.models.user import Student
from ctportal.services.courses import get_enrolled_students
from ctportal.services.identity import build_roster_map, translate_recipients, make_temp_email, normalize_email
from ctportal.services.notifications import PushGateway, notify_course_message
from ctportal.logging_config import get_logger, log_with_context

logger = get_logger("messages")


def send_course_message(db: Session, course_id: str, title: str, message: str,
                        sender_email: str, sender_name: str,
                        gateway: Optional[PushGateway] = None) -> Optional[CourseMessage]:
    """
    Persist a course message and notify the enrolled students.

    Returns:
        The created CourseMessage, or None when validation fails, the
        course does not exist, it has no students, or the write fails
    """
    context = {"course_id": course_id}
    if (not course_id or not title or not title.strip() or not message
            or not message.strip() or not sender_email or not sender_name):
        log_with_context(logger, "ERROR", "Missing required fields for sending message", context=context)
        return None

    try:
        course = db.get(Course, course_id)
    except SQLAlchemyError as e:
        log_with_context(logger, "ERROR", "Error loading course: {}".format(e), context=context)
        return None
    if not course:
        log_with_context(logger, "ERROR", "Course not found", context=context)
        return None

    students = get_enrolled_students(db, course_id)
    if not students:
        log_with_context(logger, "WARNING", "No students enrolled in this course", context=context)
        return None

    course_message = CourseMessage(
        course_id=course_id,
        course_name=course.name,
        title=title.strip(),
        message=message.strip(),
        sender_email=sender_email,
        sender_name=sender_name,
        created_at=datetime.now(timezone.utc),
    )
    try:
        db.add(course_message)
        db.commit()
        db.refresh(course_message)
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Error sending course message: {}".format(e), context=context)
        return None

    recipients = translate_recipients([s.student_email for s in students], build_roster_map(students))
    result = notify_course_message(
        db, recipients, course.name, course_message.title, course_message.message,
        course_id, course_message.id, gateway,
    )

    level = "WARNING" if result["failed"] else "INFO"
    log_with_context(logger, level,
        "Message sent to course: {} ({} sent, {} failed)".format(
            course.name, result["sent"], result["failed"]),
        context={"course_id": course_id, "message_id": course_message.id},
        extra_data={"enrolled": len(students), "recipients": len(recipients), **result})
    return course_message


def get_course_messages(db: Session, course_id: str, limit: Optional[int] = None) -> List[CourseMessage]:
    """Messages of a course, newest first."""
    if not course_id:
        log_with_context(logger, "ERROR", "Course ID required")
        return []
    try:
        query = (
            db.query(CourseMessage)
            .filter(CourseMessage.course_id == course_id)
            .order_by(CourseMessage.created_at.desc())
        )
        if limit:
            query = query.limit(limit)
        return query.all()
    except SQLAlchemyError as e:
        log_with_context(logger, "ERROR", "Error fetching course messages: {}".format(e),
                         context={"course_id": course_id})
        return []


def get_student_messages(db: Session, student_email: str, limit: int = 10) -> List[CourseMessage]:
    """Recent messages across every active course of a student."""
    email = normalize_email(student_email)
    if not email:
        log_with_context(logger, "ERROR", "Student email required")
        return []

    try:
        student = db.get(Student, email)
        if not student:
            log_with_context(logger, "ERROR", "Student not found", context={"student_email": email})
            return []
        course_ids = [
            row.course_id
            for row in db.query(Enrollment.course_id).filter(
                Enrollment.student_email.in_([email, make_temp_email(student.student_id)]),
                Enrollment.is_active.is_(True),
            )
        ]
        if not course_ids:
            return []
        return (
            db.query(CourseMessage)
            .filter(CourseMessage.course_id.in_(course_ids))
            .order_by(CourseMessage.created_at.desc())
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as e:
        log_with_context(logger, "ERROR", "Error fetching student messages: {}".format(e),
                         context={"student_email": email})
        return []


def get_message_by_id(db: Session, message_id: str) -> Optional[CourseMessage]:
    if not message_id:
        log_with_context(logger, "ERROR", "Message ID required")
        return None
    try:
        return db.get(CourseMessage, message_id)
    except SQLAlchemyError as e:
        log_with_context(logger, "ERROR", "Error fetching message: {}".format(e),
                         context={"message_id": message_id})
        return None


def serialize_message(msg: CourseMessage) -> dict:
    return {
        "id": msg.id,
        "course_id": msg.course_id,
        "course_name": msg.course_name,
        "title": msg.title,
        "message": msg.message,
        "sender_email": msg.sender_email,
        "sender_name": msg.sender_name,
        "created_at": msg.created_at.isoformat() if msg.created_at else None,
    }
