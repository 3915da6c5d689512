"""
CourseMessage model - a write-once broadcast from a teacher to a course.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, String, ForeignKey, Index
from ctportal.database import Base


class CourseMessage(Base):
    """SQLAlchemy model for the course_messages table."""
    __tablename__ = "course_messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    course_id = Column(String(36), ForeignKey("courses.id"), nullable=False)
    course_name = Column(Text, nullable=False,
                         doc="Course name at the time the message was sent")
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    sender_email = Column(Text, nullable=False)
    sender_name = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_course_messages_course_created", "course_id", "created_at"),
    )

    def __repr__(self):
        return f"<CourseMessage(id={self.id}, course={self.course_id}, title='{self.title[:30]}')>"
