import time
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import SQLAlchemyError

from ctportal.models.mark import Mark, MarkStatus
from ctportal.services.aggregation import (
    compute_test_stats, compute_student_best_average, compute_course_report
)
from ctportal.services.class_tests import create_class_test
from ctportal.services.marks import (
    upsert_mark, batch_upsert_marks, get_marks_for_test, get_mark_for_student,
    get_all_marks_for_student_in_course, serialize_mark
)
from ctportal.services.users import register_user

from conftest import TEACHER_EMAIL, student_email

ALICE = student_email(2104101)
BOB = student_email(2104102)


def _ct(db, course, name="CT 1", total=20, days_ago=0):
    return create_class_test(db, course.id, name, total, TEACHER_EMAIL,
                             date=datetime.now(timezone.utc) - timedelta(days=days_ago))


def test_upsert_creates_mark(db, course):
    ct = _ct(db, course)
    assert upsert_mark(db, ct.id, course.id, ALICE, 2104101, "present", 17.5, "Good work")

    mark = get_mark_for_student(db, ct.id, ALICE)
    assert mark.status == "present"
    assert mark.marks_obtained == 17.5
    assert mark.feedback == "Good work"
    assert mark.course_id == course.id
    assert mark.is_scored


def test_absent_mark_never_stores_a_score(db, course):
    ct = _ct(db, course)
    assert upsert_mark(db, ct.id, course.id, ALICE, 2104101, MarkStatus.ABSENT, 15)

    mark = get_mark_for_student(db, ct.id, ALICE)
    assert mark.status == "absent"
    assert mark.marks_obtained is None
    assert not mark.is_scored


def test_empty_feedback_is_not_stored(db, course):
    ct = _ct(db, course)
    assert upsert_mark(db, ct.id, course.id, ALICE, 2104101, "present", 10, "")
    assert get_mark_for_student(db, ct.id, ALICE).feedback is None


def test_update_preserves_created_at(db, course):
    ct = _ct(db, course)
    assert upsert_mark(db, ct.id, course.id, ALICE, 2104101, "present", 10)
    first = get_mark_for_student(db, ct.id, ALICE)
    created_at, updated_at = first.created_at, first.updated_at

    time.sleep(0.01)
    assert upsert_mark(db, ct.id, course.id, ALICE, 2104101, "absent", 12)

    second = get_mark_for_student(db, ct.id, ALICE)
    assert second.created_at == created_at
    assert second.updated_at > updated_at
    assert second.status == "absent"
    assert second.marks_obtained is None
    assert db.query(Mark).count() == 1


def test_upsert_rejects_invalid_input(db, course):
    ct = _ct(db, course)
    assert not upsert_mark(db, ct.id, course.id, "", 2104101, "present", 10)
    assert not upsert_mark(db, ct.id, course.id, ALICE, None, "present", 10)
    assert not upsert_mark(db, ct.id, course.id, ALICE, 2104101, "late", 10)
    assert not upsert_mark(db, "", course.id, ALICE, 2104101, "present", 10)
    assert db.query(Mark).count() == 0


def test_batch_writes_every_record(db, course):
    ct = _ct(db, course)
    records = [
        {"student_email": ALICE, "student_id": 2104101, "status": "present", "marks_obtained": 18},
        {"student_email": BOB, "student_id": 2104102, "status": "absent", "marks_obtained": 9},
    ]
    assert batch_upsert_marks(db, ct.id, course.id, records)

    marks = get_marks_for_test(db, ct.id)
    assert [m.student_email for m in marks] == [ALICE, BOB]
    assert marks[0].marks_obtained == 18
    assert marks[1].marks_obtained is None


def test_batch_with_invalid_record_writes_nothing(db, course):
    ct = _ct(db, course)
    records = [
        {"student_email": ALICE, "student_id": 2104101, "status": "present", "marks_obtained": 18},
        {"student_email": BOB, "student_id": 2104102, "status": "excused"},
    ]
    assert not batch_upsert_marks(db, ct.id, course.id, records)
    assert get_marks_for_test(db, ct.id) == []


def test_batch_commit_failure_rolls_back(db, course, monkeypatch):
    ct = _ct(db, course)
    assert upsert_mark(db, ct.id, course.id, ALICE, 2104101, "present", 5)

    def failing_commit():
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(db, "commit", failing_commit)
    records = [
        {"student_email": ALICE, "student_id": 2104101, "status": "present", "marks_obtained": 19},
        {"student_email": BOB, "student_id": 2104102, "status": "present", "marks_obtained": 14},
    ]
    assert not batch_upsert_marks(db, ct.id, course.id, records)
    monkeypatch.undo()

    marks = get_marks_for_test(db, ct.id)
    assert len(marks) == 1
    assert marks[0].marks_obtained == 5


def test_batch_for_missing_class_test_writes_nothing(db, course):
    records = [{"student_email": ALICE, "student_id": 2104101, "status": "present", "marks_obtained": 3}]
    assert not batch_upsert_marks(db, "no-such-ct", course.id, records)
    assert db.query(Mark).count() == 0


def test_batch_repeated_email_keeps_last_record(db, course):
    ct = _ct(db, course)
    records = [
        {"student_email": ALICE, "student_id": 2104101, "status": "present", "marks_obtained": 11},
        {"student_email": ALICE, "student_id": 2104101, "status": "present", "marks_obtained": 16},
    ]
    assert batch_upsert_marks(db, ct.id, course.id, records)
    marks = get_marks_for_test(db, ct.id)
    assert len(marks) == 1
    assert marks[0].marks_obtained == 16


def test_empty_batch_is_rejected(db, course):
    ct = _ct(db, course)
    assert not batch_upsert_marks(db, ct.id, course.id, [])


def test_student_marks_in_course_follow_test_dates(db, course):
    older = _ct(db, course, "CT 1", days_ago=14)
    newer = _ct(db, course, "CT 2", days_ago=1)
    unmarked = _ct(db, course, "CT 3", days_ago=0)
    assert upsert_mark(db, newer.id, course.id, ALICE, 2104101, "present", 12)
    assert upsert_mark(db, older.id, course.id, ALICE, 2104101, "present", 8)

    marks = get_all_marks_for_student_in_course(db, course.id, ALICE)
    assert [m.ct_id for m in marks] == [older.id, newer.id]
    assert unmarked.id not in {m.ct_id for m in marks}
    assert get_all_marks_for_student_in_course(db, course.id, BOB) == []


def test_serialize_mark(db, course):
    ct = _ct(db, course)
    assert upsert_mark(db, ct.id, course.id, ALICE, 2104101, "present", 20)
    data = serialize_mark(get_mark_for_student(db, ct.id, ALICE))
    assert data["student_email"] == ALICE
    assert data["marks_obtained"] == 20
    assert data["created_at"] is not None


@pytest.mark.parametrize("score", ["abc", -1, float("nan"), [], True])
def test_invalid_score_is_rejected_without_raising(db, course, score):
    ct = _ct(db, course)
    assert not upsert_mark(db, ct.id, course.id, ALICE, 2104101, "present", score)
    assert not batch_upsert_marks(db, ct.id, course.id, [
        {"student_email": BOB, "student_id": 2104102, "status": "present", "marks_obtained": 7},
        {"student_email": ALICE, "student_id": 2104101, "status": "present", "marks_obtained": score},
    ])
    assert db.query(Mark).count() == 0


def test_numeric_string_score_is_stored_as_float(db, course):
    ct = _ct(db, course)
    assert upsert_mark(db, ct.id, course.id, ALICE, 2104101, "present", "12.5")
    assert get_mark_for_student(db, ct.id, ALICE).marks_obtained == 12.5


def test_email_case_maps_to_one_mark(db, course):
    ct = _ct(db, course)
    assert upsert_mark(db, ct.id, course.id, ALICE, 2104101, "present", 10)
    assert upsert_mark(db, ct.id, course.id, "  " + ALICE.upper(), 2104101, "present", 18)
    assert batch_upsert_marks(db, ct.id, course.id, [
        {"student_email": ALICE.title(), "student_id": 2104101, "status": "present", "marks_obtained": 19},
    ])

    assert db.query(Mark).count() == 1
    assert get_mark_for_student(db, ct.id, ALICE.upper()).marks_obtained == 19
    stats = compute_test_stats(db, ct.id)
    assert stats["total_students"] == 1
    assert stats["average_marks"] == 19


def test_placeholder_marks_follow_student_after_registration(db, course, enroll):
    enroll(course.id, (2104101, None))
    older = _ct(db, course, "CT 1", days_ago=7)
    newer = _ct(db, course, "CT 2", days_ago=1)
    assert upsert_mark(db, older.id, course.id, "student_2104101@temp.com", 2104101, "present", 18)
    assert register_user(db, ALICE, "Alice") is not None
    assert upsert_mark(db, newer.id, course.id, ALICE, 2104101, "present", 12)

    marks = get_all_marks_for_student_in_course(db, course.id, ALICE)
    assert [m.marks_obtained for m in marks] == [18, 12]
    assert compute_student_best_average(db, course.id, ALICE, 1) == 18

    report = compute_course_report(db, course.id)
    assert report["students"][0]["student_email"] == ALICE
    assert report["students"][0]["best_average"] == 15
