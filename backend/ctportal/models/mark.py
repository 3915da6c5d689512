"""
Mark model - one student's outcome for one class test.

Keyed by (ct_id, student_email). marks_obtained is only meaningful when
status is 'present'; absent marks are stored with marks_obtained NULL.
"""

import enum
from datetime import datetime, timezone
from sqlalchemy import Column, Text, Integer, Float, DateTime, String, ForeignKey, Index
from sqlalchemy.orm import relationship
from ctportal.database import Base


class MarkStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"


class Mark(Base):
    """SQLAlchemy model for the marks table."""
    __tablename__ = "marks"

    ct_id = Column(String(36), ForeignKey("class_tests.id"), primary_key=True,
                   doc="Reference to the class test")
    student_email = Column(Text, primary_key=True,
                           doc="Student email (may be a student_<id>@temp.com placeholder)")
    course_id = Column(String(36), nullable=False,
                       doc="Denormalized course reference")
    student_id = Column(Integer, nullable=False,
                        doc="Numeric student identifier")
    status = Column(Text, nullable=False, default=MarkStatus.PRESENT.value,
                    doc="present | absent")
    marks_obtained = Column(Float, nullable=True,
                            doc="Score; NULL for absent students or ungraded present ones")
    feedback = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc),
                        doc="First write of this mark, preserved across upserts")
    updated_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc),
                        doc="Last write of this mark")

    class_test = relationship("ClassTest", back_populates="marks")

    __table_args__ = (
        Index("ix_marks_course_student", "course_id", "student_email"),
    )

    @property
    def is_scored(self) -> bool:
        """True when the student was present and has a recorded score."""
        return self.status == MarkStatus.PRESENT.value and self.marks_obtained is not None

    def __repr__(self):
        return f"<Mark(ct={self.ct_id}, student='{self.student_email}', status='{self.status}', marks={self.marks_obtained})>"
