"""
User Directory Service - student and teacher records.

The role of an email decides which table a user lives in. Registering a
student also replaces any placeholder roster emails carrying the same
student number with the real address.
"""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ctportal.models.course import Enrollment
from ctportal.models.user import Student, Teacher
from ctportal.services.identity import (
    Role, resolve_role, extract_student_id, make_temp_email, normalize_email
)
from ctportal.logging_config import get_logger, log_with_context

logger = get_logger("identity")


def register_user(db: Session, email: str, name: str = "", batch: Optional[str] = None,
                  department: Optional[str] = None):
    """
    Create or update the user record for an email.

    Returns:
        Student or Teacher, or None for unknown roles and database errors
    """
    email = normalize_email(email)
    role = resolve_role(email)
    context = {"email": email, "role": role.value}

    if role == Role.UNKNOWN:
        log_with_context(logger, "WARNING", "Cannot register user with unknown role", context=context)
        return None

    try:
        if role == Role.STUDENT:
            user = _upsert_student(db, email, name, batch, department)
        else:
            user = db.get(Teacher, email)
            if user is None:
                user = Teacher(email=email, created_at=datetime.now(timezone.utc))
                db.add(user)
            user.name = name or user.name or ""
            user.department = department or user.department
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Error saving user: {}".format(e), context=context)
        return None

    log_with_context(logger, "INFO", "User registered", context=context)
    return user


def _upsert_student(db: Session, email: str, name: str, batch, department) -> Student:
    student_id = extract_student_id(email)
    student = db.get(Student, email)
    if student is None:
        student = Student(email=email, student_id=student_id,
                          created_at=datetime.now(timezone.utc))
        db.add(student)
    student.name = name or student.name or ""
    student.batch = batch or student.batch
    student.department = department or student.department

    # Link roster rows imported under the placeholder address
    linked = (
        db.query(Enrollment)
        .filter(Enrollment.student_id == student_id,
                Enrollment.student_email == make_temp_email(student_id))
        .update({Enrollment.student_email: email}, synchronize_session="fetch")
    )
    if linked:
        log_with_context(logger, "INFO", "Linked {} placeholder enrollments".format(linked),
                         context={"email": email, "student_id": student_id})
    return student


def get_user(db: Session, email: str):
    email = normalize_email(email)
    role = resolve_role(email)
    model = {Role.STUDENT: Student, Role.TEACHER: Teacher}.get(role)
    if model is None:
        return None
    try:
        return db.get(model, email)
    except SQLAlchemyError as e:
        log_with_context(logger, "ERROR", "Error fetching user: {}".format(e),
                         context={"email": email})
        return None


def serialize_user(user) -> dict:
    role = Role.STUDENT if isinstance(user, Student) else Role.TEACHER
    data = {
        "email": user.email,
        "name": user.name,
        "role": role.value,
        "department": user.department,
        "has_push_token": bool(user.push_token),
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }
    if isinstance(user, Student):
        data["student_id"] = user.student_id
        data["batch"] = user.batch
    return data
