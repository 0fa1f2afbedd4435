"""Attempt state machine.

``not_started -> in_progress -> {completed, abandoned, timeout}``

``not_started`` has no row: an attempt exists from the moment it starts.
Every status change goes through :func:`transition`, which checks the
transition table before touching the attempt. Overdue attempts are only moved
to ``timeout``/``abandoned`` lazily, on the next interaction or by ``sweep``.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..auth_utils import verify_password
from ..errors import (
    AttemptExpiredError,
    DuplicateAttemptError,
    InvalidStateError,
    NotEligibleError,
    NotFoundError,
    ValidationError,
)
from ..models import (
    Attempt,
    AttemptAnswer,
    AttemptStatus,
    Exam,
    ExamStatus,
)
from .assignment_service import count_student_attempts, ineligibility_reason
from .question_bank import load_question_set
from .scoring import evaluate_answer, list_answers, score_attempt

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[AttemptStatus, Set[AttemptStatus]] = {
    AttemptStatus.NOT_STARTED: {AttemptStatus.IN_PROGRESS},
    AttemptStatus.IN_PROGRESS: {AttemptStatus.COMPLETED, AttemptStatus.ABANDONED, AttemptStatus.TIMEOUT},
    AttemptStatus.COMPLETED: set(),
    AttemptStatus.ABANDONED: set(),
    AttemptStatus.TIMEOUT: set(),
}


def transition(attempt: Attempt, target: AttemptStatus) -> Attempt:
    current = attempt.status
    if target not in TRANSITIONS[current]:
        raise InvalidStateError(
            f"Cannot move attempt {attempt.id} from '{current.value}' to '{target.value}'"
        )
    attempt.status = target
    if attempt.id is not None:
        logger.info("Attempt %s: %s -> %s", attempt.id, current.value, target.value)
    return attempt


def attempt_deadline(exam: Exam, attempt: Attempt) -> datetime:
    """Latest moment the attempt may still accept answers.

    With a time limit this is ``started_at + limit`` capped at the schedule
    end; without one it is the schedule end.
    """
    if exam.time_limit_minutes and attempt.started_at is not None:
        return min(attempt.started_at + timedelta(minutes=exam.time_limit_minutes), exam.end_time)
    return exam.end_time


def is_overdue(exam: Exam, attempt: Attempt, now: datetime) -> bool:
    return attempt.status == AttemptStatus.IN_PROGRESS and now > attempt_deadline(exam, attempt)


def get_attempt(session: Session, attempt_id: int) -> Attempt:
    attempt = session.get(Attempt, attempt_id)
    if not attempt:
        raise NotFoundError(f"Attempt with id={attempt_id} does not exist")
    return attempt


def list_attempts(session: Session, exam_id: int, student_id: Optional[str] = None) -> List[Attempt]:
    stmt = select(Attempt).where(Attempt.exam_id == exam_id)
    if student_id is not None:
        stmt = stmt.where(Attempt.student_id == student_id)
    return session.exec(stmt.order_by(Attempt.student_id, Attempt.attempt_number)).all()


def find_in_progress_attempt(session: Session, exam_id: int, student_id: str) -> Optional[Attempt]:
    stmt = select(Attempt).where(
        (Attempt.exam_id == exam_id)
        & (Attempt.student_id == student_id)
        & (Attempt.status == AttemptStatus.IN_PROGRESS)
    )
    return session.exec(stmt).first()


def _finish(session: Session, exam: Exam, attempt: Attempt, target: AttemptStatus, at: datetime) -> Attempt:
    """Move an in-progress attempt into a scored terminal state. Does not commit."""
    transition(attempt, target)
    score_attempt(session, exam, attempt)
    attempt.completed_at = at
    if attempt.started_at is not None:
        attempt.total_time_spent = max(0, int((at - attempt.started_at).total_seconds()))
    else:
        attempt.total_time_spent = sum(a.time_spent_seconds for a in list_answers(session, attempt.id))
    session.add(attempt)
    return attempt


def expire_attempt(session: Session, exam: Exam, attempt: Attempt, now: datetime) -> Attempt:
    """Time out an overdue attempt, scoring what was answered before the deadline."""
    _finish(session, exam, attempt, AttemptStatus.TIMEOUT, min(now, attempt_deadline(exam, attempt)))
    session.commit()
    session.refresh(attempt)
    return attempt


def start_attempt(
    session: Session,
    exam: Exam,
    student_id: str,
    now: datetime,
    password: Optional[str] = None,
) -> Attempt:
    """Create the next attempt for (exam, student).

    The unique (exam, student, attempt_number) constraint is the atomic guard:
    when two starts race, the second insert fails and is reported as a
    duplicate instead of overwriting the first.
    """
    current = find_in_progress_attempt(session, exam.id, student_id)
    if current is not None:
        if not is_overdue(exam, current, now):
            raise DuplicateAttemptError(
                f"Student {student_id} already has attempt {current.attempt_number} in progress"
            )
        close_overdue(session, exam, current, now)

    if exam.status != ExamStatus.PUBLISHED:
        raise NotEligibleError(f"Exam {exam.id} is not open for attempts ({exam.status.value})")
    reason = ineligibility_reason(session, exam, student_id, now)
    if reason:
        logger.warning("Start refused for student %s on exam %s: %s", student_id, exam.id, reason)
        raise NotEligibleError(reason)
    if exam.access_password_hash and not (password and verify_password(password, exam.access_password_hash)):
        raise NotEligibleError("access password is missing or incorrect")

    attempt = Attempt(
        exam_id=exam.id,
        student_id=student_id,
        attempt_number=count_student_attempts(session, exam.id, student_id) + 1,
        status=AttemptStatus.NOT_STARTED,
        started_at=now,
    )
    transition(attempt, AttemptStatus.IN_PROGRESS)
    session.add(attempt)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise DuplicateAttemptError(
            f"Attempt {attempt.attempt_number} for student {student_id} on exam {exam.id} already exists"
        )
    session.refresh(attempt)
    logger.info("Student %s started attempt %s on exam %s", student_id, attempt.attempt_number, exam.id)
    return attempt


def _require_in_progress(attempt: Attempt) -> None:
    if attempt.status != AttemptStatus.IN_PROGRESS:
        raise InvalidStateError(f"Attempt {attempt.id} is {attempt.status.value}")


def submit_answer(
    session: Session,
    exam: Exam,
    attempt: Attempt,
    question_id: int,
    raw_answer: Optional[str],
    time_spent_seconds: int,
    now: datetime,
) -> AttemptAnswer:
    """Record (or replace) the answer to one question; time spent accumulates."""
    _require_in_progress(attempt)
    if is_overdue(exam, attempt, now):
        close_overdue(session, exam, attempt, now)
        raise AttemptExpiredError(f"Attempt {attempt.id} is past its deadline")
    if time_spent_seconds < 0:
        raise ValidationError("time spent cannot be negative")

    item = next((i for i in load_question_set(session, exam.id) if i.question.id == question_id), None)
    if item is None:
        raise ValidationError(f"Question {question_id} does not belong to exam {exam.id}")

    answer = session.exec(
        select(AttemptAnswer).where(
            AttemptAnswer.attempt_id == attempt.id, AttemptAnswer.question_id == question_id
        )
    ).first()
    if answer is None:
        answer = AttemptAnswer(attempt_id=attempt.id, question_id=question_id)

    answer.answer_text = raw_answer
    answer.is_correct, answer.points = evaluate_answer(item, raw_answer)
    answer.time_spent_seconds += int(time_spent_seconds)
    answer.answered_at = now
    session.add(answer)
    session.commit()
    session.refresh(answer)
    return answer


def complete_attempt(session: Session, exam: Exam, attempt: Attempt, now: datetime) -> Attempt:
    _require_in_progress(attempt)
    if is_overdue(exam, attempt, now):
        close_overdue(session, exam, attempt, now)
        raise AttemptExpiredError(f"Attempt {attempt.id} is past its deadline")

    _finish(session, exam, attempt, AttemptStatus.COMPLETED, now)
    session.commit()
    session.refresh(attempt)
    logger.info(
        "Attempt %s completed: %s/%s (%s%%, %s)",
        attempt.id, attempt.score, exam.total_points, attempt.percentage, attempt.grade,
    )
    return attempt


def abandon_attempt(session: Session, attempt: Attempt, now: datetime) -> Attempt:
    """Give up on an attempt; no score is computed."""
    transition(attempt, AttemptStatus.ABANDONED)
    attempt.completed_at = now
    attempt.score, attempt.percentage, attempt.grade = 0, 0, "F"
    if attempt.started_at is not None:
        attempt.total_time_spent = max(0, int((now - attempt.started_at).total_seconds()))
    session.add(attempt)
    session.commit()
    session.refresh(attempt)
    return attempt


def list_in_progress_ids(session: Session) -> List[int]:
    return session.exec(
        select(Attempt.id).where(Attempt.status == AttemptStatus.IN_PROGRESS).order_by(Attempt.id)
    ).all()


def close_overdue(session: Session, exam: Exam, attempt: Attempt, now: datetime) -> AttemptStatus:
    """Close an overdue attempt the same way whoever notices it first.

    An exam with a time limit times the attempt out, even when the limit was
    cut short by the schedule end. Without one the attempt can only be overdue
    because the schedule ended, and it is abandoned.
    """
    if not exam.time_limit_minutes:
        abandon_attempt(session, attempt, now)
        return AttemptStatus.ABANDONED
    expire_attempt(session, exam, attempt, now)
    return AttemptStatus.TIMEOUT


def settle_overdue(session: Session, exam: Exam, attempt: Attempt, now: datetime) -> Optional[AttemptStatus]:
    """Close an attempt nobody finished in time; returns the new status, if any."""
    if not is_overdue(exam, attempt, now):
        return None
    return close_overdue(session, exam, attempt, now)


def flag_exam_windows(session: Session, now: datetime, closing_lead: timedelta) -> Tuple[List[Exam], List[Exam]]:
    """Mark published exams whose window opened or is about to close, once each."""
    opened, closing = [], []
    published = session.exec(select(Exam).where(Exam.status == ExamStatus.PUBLISHED)).all()
    for exam in published:
        changed = False
        if not exam.window_opened_notified and exam.start_time <= now <= exam.end_time:
            exam.window_opened_notified = True
            opened.append(exam)
            changed = True
        if not exam.window_closing_notified and exam.end_time - closing_lead <= now <= exam.end_time:
            exam.window_closing_notified = True
            closing.append(exam)
            changed = True
        if changed:
            session.add(exam)
    session.commit()
    return opened, closing
