import threading
from datetime import timedelta

import pytest

from assessment_engine.database import Store
from assessment_engine.engine import AssessmentEngine
from assessment_engine.errors import DuplicateAttemptError, EngineError
from assessment_engine.models import AttemptStatus
from assessment_engine.services import attempt_service, exam_service

from conftest import WINDOW_START, make_definition, mcq


@pytest.fixture
def file_engine(tmp_path, clock, sink, settings):
    """Engine over a file database so threads get their own connections."""
    store = Store(f"sqlite:///{tmp_path / 'race.db'}").connect()
    yield AssessmentEngine(store, sinks=[sink], clock=clock, settings=settings)
    store.close()


def _run_concurrently(count, target):
    barrier = threading.Barrier(count)
    results, errors = [], []

    def worker():
        barrier.wait()
        try:
            results.append(target())
        except EngineError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


def test_concurrent_starts_create_one_attempt(file_engine, teacher, student):
    exam = file_engine.create_exam(teacher, make_definition(settings={"max_attempts": 5}))
    file_engine.publish_exam(teacher, exam.id)
    file_engine.assign(teacher, exam.id, student.subject_id)

    results, errors = _run_concurrently(8, lambda: file_engine.start_attempt(student, exam.id))

    assert len(results) == 1
    assert len(errors) == 7
    assert all(isinstance(e, DuplicateAttemptError) for e in errors)
    assert len(file_engine.list_my_attempts(student, exam.id)) == 1


def test_concurrent_answers_to_one_attempt_keep_every_second(file_engine, teacher, student):
    exam = file_engine.create_exam(teacher, make_definition(questions=[mcq()]))
    file_engine.publish_exam(teacher, exam.id)
    file_engine.assign(teacher, exam.id, student.subject_id)
    question_id = file_engine.get_questions(teacher, exam.id)[0].question.id
    attempt = file_engine.start_attempt(student, exam.id)

    results, errors = _run_concurrently(
        6, lambda: file_engine.submit_answer(student, attempt.id, question_id, "4", 10)
    )

    assert errors == []
    (answer,) = file_engine.list_answers(student, attempt.id)
    assert answer.time_spent_seconds == 60


def test_racing_insert_is_rejected_by_unique_attempt_number(engine, student, monkeypatch, published_exam):
    """Simulate a second process that got past the lock with a stale count."""
    exam, _ = published_exam(settings={"max_attempts": 3})
    first = engine.start_attempt(student, exam.id)
    engine.complete_attempt(student, first.id)

    monkeypatch.setattr(attempt_service, "count_student_attempts", lambda session, exam_id, student_id: 0)
    with pytest.raises(DuplicateAttemptError):
        engine.start_attempt(student, exam.id)

    attempts = engine.list_my_attempts(student, exam.id)
    assert [(a.attempt_number, a.status) for a in attempts] == [(1, AttemptStatus.COMPLETED)]


def test_different_students_start_in_parallel(file_engine, teacher, clock):
    from assessment_engine.permissions import Actor, Role

    students = [Actor(f"student-{i}", Role.STUDENT) for i in range(5)]
    exam = file_engine.create_exam(teacher, make_definition())
    file_engine.publish_exam(teacher, exam.id)
    file_engine.assign_class(teacher, exam.id, "9B", [s.subject_id for s in students])
    clock.set(WINDOW_START + timedelta(minutes=1))

    barrier = threading.Barrier(len(students))
    started, errors = [], []

    def worker(actor):
        barrier.wait()
        try:
            started.append(file_engine.start_attempt(actor, exam.id))
        except EngineError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(s,)) for s in students]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert sorted(a.student_id for a in started) == sorted(s.subject_id for s in students)
    assert all(a.attempt_number == 1 for a in started)


def test_start_waits_for_question_replacement(file_engine, teacher, student, monkeypatch):
    exam = file_engine.create_exam(teacher, make_definition())
    file_engine.publish_exam(teacher, exam.id)
    file_engine.assign(teacher, exam.id, student.subject_id)

    entered, started, starters = [], [], []
    original_start = attempt_service.start_attempt
    original_delete = exam_service.delete_questions

    def recording_start(*args, **kwargs):
        entered.append(True)
        return original_start(*args, **kwargs)

    def delete_while_student_starts(session, exam_id):
        starter = threading.Thread(target=lambda: started.append(file_engine.start_attempt(student, exam.id)))
        starter.start()
        starter.join(timeout=0.2)
        # The start is still parked on the exam lock
        assert entered == []
        assert starter.is_alive()
        starters.append(starter)
        return original_delete(session, exam_id)

    monkeypatch.setattr(attempt_service, "start_attempt", recording_start)
    monkeypatch.setattr(exam_service, "delete_questions", delete_while_student_starts)

    updated = file_engine.mutate_questions(teacher, exam.id, [mcq(points=4)])
    starters[0].join()

    assert updated.total_points == 4
    (attempt,) = started
    paper = file_engine.get_attempt_paper(student, attempt.id)
    assert [q["points"] for q in paper["questions"]] == [4]
