from ctportal.models.course import Course, Enrollment
from ctportal.models.user import Student, Teacher
from ctportal.models.class_test import ClassTest
from ctportal.models.mark import Mark, MarkStatus
from ctportal.models.course_message import CourseMessage

__all__ = ["Course", "Enrollment", "Student", "Teacher", "ClassTest", "Mark", "MarkStatus", "CourseMessage"]
