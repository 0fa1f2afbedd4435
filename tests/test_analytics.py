import pytest

from assessment_engine.errors import PermissionDeniedError
from assessment_engine.models import Attempt, AttemptAnswer, AttemptStatus
from assessment_engine.permissions import Actor, Role
from assessment_engine.services.analytics import compute_snapshot


def test_compute_snapshot_from_plain_rows():
    attempts = [
        Attempt(id=1, exam_id=1, student_id="a", attempt_number=1, status=AttemptStatus.COMPLETED,
                score=80, total_time_spent=600),
        Attempt(id=2, exam_id=1, student_id="a", attempt_number=2, status=AttemptStatus.COMPLETED,
                score=90, total_time_spent=300),
        Attempt(id=3, exam_id=1, student_id="b", attempt_number=1, status=AttemptStatus.TIMEOUT,
                score=40, total_time_spent=1800),
        Attempt(id=4, exam_id=1, student_id="c", attempt_number=1, status=AttemptStatus.ABANDONED),
        Attempt(id=5, exam_id=1, student_id="d", attempt_number=1, status=AttemptStatus.IN_PROGRESS),
    ]
    answers = [
        AttemptAnswer(attempt_id=1, question_id=100, is_correct=True, time_spent_seconds=10),
        AttemptAnswer(attempt_id=2, question_id=100, is_correct=True, time_spent_seconds=20),
        AttemptAnswer(attempt_id=3, question_id=100, is_correct=False, time_spent_seconds=30),
        AttemptAnswer(attempt_id=5, question_id=100, is_correct=True, time_spent_seconds=99),
    ]

    snapshot = compute_snapshot([100, 200], attempts, answers, assignment_count=4)

    assert snapshot.total_attempts == 3
    assert snapshot.average_score == 70.0
    # Student "a" completed twice but counts once
    assert snapshot.completion_rate == 0.25
    assert snapshot.average_time == 450.0
    first, second = snapshot.question_stats
    assert (first.question_id, first.correct_count, first.total_attempts, first.average_time) == (100, 2, 3, 20.0)
    assert (second.question_id, second.correct_count, second.total_attempts) == (200, 0, 0)


def test_empty_exam_snapshot():
    snapshot = compute_snapshot([1], [], [], assignment_count=0)
    assert snapshot.total_attempts == 0
    assert snapshot.average_score == 0.0
    assert snapshot.completion_rate == 0.0


def test_analytics_follow_completions(engine, teacher, student, other_student, clock, published_exam):
    exam, (mc, tf, short, _, _) = published_exam(students=(student, other_student))

    first = engine.start_attempt(student, exam.id)
    engine.submit_answer(student, first.id, mc, "4", 40)
    engine.submit_answer(student, first.id, short, "Paris", 20)
    clock.advance(minutes=5)
    engine.complete_attempt(student, first.id)

    snapshot = engine.get_analytics(teacher, exam.id)
    assert snapshot.total_attempts == 1
    assert snapshot.average_score == 4.0
    assert snapshot.completion_rate == 0.5
    assert snapshot.average_time == 300.0

    second = engine.start_attempt(other_student, exam.id)
    engine.submit_answer(other_student, second.id, mc, "3", 60)
    engine.submit_answer(other_student, second.id, tf, "False")
    engine.complete_attempt(other_student, second.id)

    snapshot = engine.get_analytics(teacher, exam.id)
    assert snapshot.total_attempts == 2
    assert snapshot.average_score == 2.5
    assert snapshot.completion_rate == 1.0
    stats = {s.question_id: s for s in snapshot.question_stats}
    assert (stats[mc].correct_count, stats[mc].total_attempts, stats[mc].average_time) == (1, 2, 50.0)
    assert stats[tf].correct_count == 1


def test_cached_snapshot_matches_recompute(engine, teacher, student, published_exam):
    exam, (mc, _, _, _, _) = published_exam()
    attempt = engine.start_attempt(student, exam.id)
    engine.submit_answer(student, attempt.id, mc, "4")
    engine.complete_attempt(student, attempt.id)

    cached = engine.get_analytics(teacher, exam.id, refresh=False)
    assert cached == engine.get_analytics(teacher, exam.id, refresh=True)
    assert engine.get_exam(teacher, exam.id).analytics["total_attempts"] == 1


def test_in_progress_attempts_are_ignored(engine, teacher, student, published_exam):
    exam, (mc, _, _, _, _) = published_exam()
    attempt = engine.start_attempt(student, exam.id)
    engine.submit_answer(student, attempt.id, mc, "4")

    snapshot = engine.get_analytics(teacher, exam.id)
    assert snapshot.total_attempts == 0
    assert all(s.total_attempts == 0 for s in snapshot.question_stats)


def test_analytics_visibility(engine, teacher, student, published_exam):
    exam, _ = published_exam()
    with pytest.raises(PermissionDeniedError):
        engine.get_analytics(student, exam.id)
    with pytest.raises(PermissionDeniedError):
        engine.get_analytics(Actor("teacher-9", Role.TEACHER), exam.id)
    assert engine.get_analytics(Actor("root", Role.ADMIN), exam.id).total_attempts == 0


def test_timeout_counts_towards_average_but_not_completion(engine, teacher, student, clock, published_exam):
    exam, (mc, _, _, _, _) = published_exam(settings={"time_limit_minutes": 5})
    attempt = engine.start_attempt(student, exam.id)
    engine.submit_answer(student, attempt.id, mc, "4")
    clock.advance(minutes=6)
    engine.sweep()

    snapshot = engine.get_analytics(teacher, exam.id, refresh=False)
    assert snapshot.total_attempts == 1
    assert snapshot.average_score == 2.0
    assert snapshot.completion_rate == 0.0
    assert snapshot.average_time == 0.0
