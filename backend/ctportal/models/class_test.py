"""
ClassTest model - a graded assessment belonging to a course.

A class test starts as a draft (is_published = False) and becomes visible
to students once published. Deleting a test removes all of its marks in
the same transaction.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, Integer, DateTime, String, Boolean, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship
from ctportal.database import Base


class ClassTest(Base):
    """SQLAlchemy model for the class_tests table."""
    __tablename__ = "class_tests"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Opaque random identifier")
    course_id = Column(String(36), ForeignKey("courses.id"), nullable=False,
                       doc="Owning course")
    name = Column(Text, nullable=False,
                  doc="Class test name, e.g. 'CT 1'")
    description = Column(Text, nullable=True)
    date = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc),
                  doc="Scheduled date of the test")
    total_marks = Column(Integer, nullable=False,
                         doc="Total possible marks (> 0)")
    is_published = Column(Boolean, nullable=False, default=False,
                          doc="Published tests are visible to students")
    created_by = Column(Text, nullable=False,
                        doc="Email of the teacher who created the test")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    course = relationship("Course", back_populates="class_tests")
    marks = relationship("Mark", back_populates="class_test")

    __table_args__ = (
        Index("ix_class_tests_course_id", "course_id"),
        CheckConstraint("total_marks > 0", name="ck_class_tests_total_marks_positive"),
    )

    def __repr__(self):
        return f"<ClassTest(id={self.id}, name='{self.name}', published={self.is_published})>"
