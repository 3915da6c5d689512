"""
Course and Enrollment models.

A course is owned by a teacher and carries the best-N class-test policy.
Enrollments form the course roster. Rosters may be bulk-imported before
students sign in, so an enrollment's email can be a temporary placeholder
(student_<id>@temp.com) until the real account is linked.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, Integer, DateTime, String, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship
from ctportal.database import Base


class Course(Base):
    """SQLAlchemy model for the courses table."""
    __tablename__ = "courses"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique course identifier")
    name = Column(Text, nullable=False,
                  doc="Course title shown in notifications")
    code = Column(Text, nullable=True,
                  doc="Course code, e.g. CSE-101")
    teacher_email = Column(Text, nullable=False,
                           doc="Email of the owning teacher")
    best_ct_count = Column(Integer, nullable=True,
                           doc="How many top class-test scores count toward the average (NULL = all)")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="Timestamp when course was created")

    enrollments = relationship("Enrollment", back_populates="course",
                               cascade="all, delete-orphan")
    class_tests = relationship("ClassTest", back_populates="course")

    def __repr__(self):
        return f"<Course(id={self.id}, name='{self.name}', best_ct_count={self.best_ct_count})>"


class Enrollment(Base):
    """
    SQLAlchemy model for the enrollments table.

    Keyed by (course_id, student_id) so a roster row survives the
    placeholder email being replaced with the student's real email.
    """
    __tablename__ = "enrollments"

    course_id = Column(String(36), ForeignKey("courses.id"), primary_key=True,
                       doc="Reference to the course")
    student_id = Column(Integer, primary_key=True, autoincrement=False,
                        doc="Numeric student identifier (7 digits)")
    student_email = Column(Text, nullable=False,
                           doc="Real email, or student_<id>@temp.com until linked")
    is_active = Column(Boolean, nullable=False, default=True,
                       doc="False when the student archived the course")
    enrolled_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                         doc="When the student was added to the roster")

    course = relationship("Course", back_populates="enrollments")

    __table_args__ = (
        Index("ix_enrollments_student_email", "student_email"),
    )

    def __repr__(self):
        return f"<Enrollment(course={self.course_id}, student_id={self.student_id}, email='{self.student_email}')>"
