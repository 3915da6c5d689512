"""
Student and Teacher models - the user directory.

Users are keyed by email. The role decides the table: addresses matching
the student pattern live in students, teacher addresses in teachers.
Both carry the device push token used by notification fan-out.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Text, Integer, DateTime
from ctportal.database import Base


class Student(Base):
    """SQLAlchemy model for the students table."""
    __tablename__ = "students"

    email = Column(Text, primary_key=True,
                   doc="Real student email (u<7 digits>@student.<domain>)")
    student_id = Column(Integer, nullable=False, unique=True,
                        doc="Numeric identifier parsed from the email")
    name = Column(Text, nullable=False, default="",
                  doc="Display name")
    batch = Column(Text, nullable=True)
    department = Column(Text, nullable=True)
    push_token = Column(Text, nullable=True,
                        doc="Expo push token of the student's device")
    push_token_updated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<Student(email='{self.email}', student_id={self.student_id})>"


class Teacher(Base):
    """SQLAlchemy model for the teachers table."""
    __tablename__ = "teachers"

    email = Column(Text, primary_key=True)
    name = Column(Text, nullable=False, default="")
    department = Column(Text, nullable=True)
    push_token = Column(Text, nullable=True,
                        doc="Expo push token of the teacher's device")
    push_token_updated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<Teacher(email='{self.email}')>"
