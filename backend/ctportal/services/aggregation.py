"""
Aggregation Service - class-test statistics and best-N averages.

Statistics for a class test:
1. total_students   = every recorded mark
2. present_students = present marks WITH a score
3. absent_students  = absent marks
4. average/highest/lowest over the present-with-score marks only
   (0 when there are none)

Best-N average for a student across a course:
1. Collect every present-with-score mark of the student in the course
2. Sort descending and keep the top N (all when N is not configured)
3. Average them (0 when the student has no scored marks)

N comes from the course's best_ct_count so a course can drop a
student's weakest class tests.
"""

import time
from typing import Iterable, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ctportal.models.course import Course, Enrollment
from ctportal.models.class_test import ClassTest
from ctportal.models.mark import Mark, MarkStatus
from ctportal.services.marks import get_all_marks_for_student_in_course
from ctportal.logging_config import get_logger, log_with_context

logger = get_logger("stats")

EMPTY_STATS = {
    "total_students": 0,
    "present_students": 0,
    "absent_students": 0,
    "average_marks": 0,
    "highest_marks": 0,
    "lowest_marks": 0,
}


def summarize_marks(marks: Iterable) -> dict:
    """Compute class-test statistics from a list of Mark objects."""
    marks = list(marks)
    if not marks:
        return dict(EMPTY_STATS)

    scores = [m.marks_obtained for m in marks if m.is_scored]
    absent_students = sum(1 for m in marks if m.status == MarkStatus.ABSENT.value)

    average_marks = 0
    highest_marks = 0
    lowest_marks = 0
    if scores:
        average_marks = sum(scores) / len(scores)
        highest_marks = max(scores)
        lowest_marks = min(scores)

    return {
        "total_students": len(marks),
        "present_students": len(scores),
        "absent_students": absent_students,
        "average_marks": average_marks,
        "highest_marks": highest_marks,
        "lowest_marks": lowest_marks,
    }


def best_n_average(scores: Iterable[float], best_count: Optional[int] = None) -> float:
    """
    Average of the best `best_count` scores.

    best_count None or <= 0 averages every score. Returns 0 for no scores.

    Example:
        best_n_average([90, 70, 50], 2) → 80.0
    """
    ordered = sorted(scores, reverse=True)
    if not ordered:
        return 0
    if best_count and best_count > 0:
        ordered = ordered[:best_count]
    return sum(ordered) / len(ordered)


def compute_test_stats(db: Session, ct_id: str) -> Optional[dict]:
    """
    Statistics for one class test.

    Returns:
        Stats dict, or None when the marks could not be read
    """
    start_time = time.time()
    if not ct_id:
        log_with_context(logger, "ERROR", "Missing ct_id")
        return None
    try:
        marks = db.query(Mark).filter(Mark.ct_id == ct_id).all()
    except SQLAlchemyError as e:
        log_with_context(logger, "ERROR", "Error calculating class test stats: {}".format(e),
                         context={"ct_id": ct_id})
        return None
    stats = summarize_marks(marks)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Stats computed: {} students, avg={:.2f}".format(
            stats["total_students"], stats["average_marks"]),
        context={"ct_id": ct_id},
        extra_data={"duration_ms": round(duration_ms, 2), **stats})
    return stats


def compute_student_best_average(db: Session, course_id: str, student_email: str,
                                 best_count: Optional[int] = None) -> float:
    """Best-N class-test average of a student in a course (0 if unscored)."""
    marks = get_all_marks_for_student_in_course(db, course_id, student_email)
    scores = [m.marks_obtained for m in marks if m.is_scored]
    average = best_n_average(scores, best_count)

    log_with_context(logger, "DEBUG",
        "Best CT average: {:.2f} over {} scored tests (best_count={})".format(
            average, len(scores), best_count),
        context={"course_id": course_id, "student_email": student_email})
    return average


def compute_course_report(db: Session, course_id: str) -> Optional[dict]:
    """
    Per-test statistics and per-student best averages for a whole course.

    Student averages use the course's best_ct_count setting.
    """
    start_time = time.time()
    context = {"course_id": course_id}
    try:
        course = db.get(Course, course_id)
        if not course:
            log_with_context(logger, "WARNING", "Course not found for report", context=context)
            return None
        class_tests = (
            db.query(ClassTest)
            .filter(ClassTest.course_id == course_id)
            .order_by(ClassTest.date)
            .all()
        )
        enrollments = (
            db.query(Enrollment)
            .filter(Enrollment.course_id == course_id)
            .order_by(Enrollment.student_id)
            .all()
        )
    except SQLAlchemyError as e:
        log_with_context(logger, "ERROR", "Error building course report: {}".format(e),
                         context=context)
        return None

    tests: List[dict] = []
    for ct in class_tests:
        tests.append({
            "ct_id": ct.id,
            "name": ct.name,
            "total_marks": ct.total_marks,
            "is_published": ct.is_published,
            "stats": compute_test_stats(db, ct.id),
        })

    students: List[dict] = []
    for enrollment in enrollments:
        students.append({
            "student_id": enrollment.student_id,
            "student_email": enrollment.student_email,
            "best_average": compute_student_best_average(
                db, course_id, enrollment.student_email, course.best_ct_count),
        })

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Course report built: {} tests, {} students".format(len(tests), len(students)),
        context=context,
        extra_data={"duration_ms": round(duration_ms, 2)})

    return {
        "course_id": course.id,
        "course_name": course.name,
        "best_ct_count": course.best_ct_count,
        "class_tests": tests,
        "students": students,
    }
