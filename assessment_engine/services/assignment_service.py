"""Assignment of exams to students, and attempt eligibility."""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, func, select

from ..errors import DuplicateAssignmentError, InvalidStateError, NotFoundError
from ..models import EXAM_TERMINAL_STATUSES, Attempt, Exam, ExamAssignment, ExamStatus

logger = logging.getLogger(__name__)


def get_assignment(session: Session, exam_id: int, student_id: str) -> Optional[ExamAssignment]:
    stmt = select(ExamAssignment).where(
        ExamAssignment.exam_id == exam_id, ExamAssignment.student_id == student_id
    )
    return session.exec(stmt).first()


def list_assignments(session: Session, exam_id: int) -> List[ExamAssignment]:
    return session.exec(
        select(ExamAssignment).where(ExamAssignment.exam_id == exam_id).order_by(ExamAssignment.id)
    ).all()


def _ensure_assignable(exam: Exam) -> None:
    if exam.status in EXAM_TERMINAL_STATUSES:
        raise InvalidStateError(f"Exam {exam.id} is {exam.status.value}; it cannot be assigned")


def assign(
    session: Session,
    exam: Exam,
    student_id: str,
    assigned_by: str,
    now: datetime,
    class_id: Optional[str] = None,
) -> ExamAssignment:
    _ensure_assignable(exam)
    if get_assignment(session, exam.id, student_id):
        raise DuplicateAssignmentError(f"Student {student_id} is already assigned to exam {exam.id}")

    assignment = ExamAssignment(
        exam_id=exam.id,
        student_id=student_id,
        class_id=class_id,
        assigned_by=assigned_by,
        assigned_at=now,
    )
    session.add(assignment)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise DuplicateAssignmentError(f"Student {student_id} is already assigned to exam {exam.id}")
    session.refresh(assignment)
    logger.info("Student %s assigned to exam %s by %s", student_id, exam.id, assigned_by)
    return assignment


def assign_class(
    session: Session,
    exam: Exam,
    class_id: str,
    student_ids: Iterable[str],
    assigned_by: str,
    now: datetime,
) -> int:
    """Assign every student of a class, skipping those already assigned."""
    _ensure_assignable(exam)
    existing = {a.student_id for a in list_assignments(session, exam.id)}

    added = 0
    for student_id in student_ids:
        if student_id in existing:
            continue
        session.add(
            ExamAssignment(
                exam_id=exam.id,
                student_id=student_id,
                class_id=class_id,
                assigned_by=assigned_by,
                assigned_at=now,
            )
        )
        existing.add(student_id)
        added += 1
    session.commit()
    logger.info("Class %s assigned to exam %s: %s new students", class_id, exam.id, added)
    return added


def unassign(session: Session, exam: Exam, student_id: str) -> None:
    assignment = get_assignment(session, exam.id, student_id)
    if assignment is None:
        raise NotFoundError(f"Student {student_id} is not assigned to exam {exam.id}")
    if count_student_attempts(session, exam.id, student_id) > 0:
        raise InvalidStateError(f"Student {student_id} already attempted exam {exam.id}")
    session.delete(assignment)
    session.commit()


def count_student_attempts(session: Session, exam_id: int, student_id: str) -> int:
    return session.exec(
        select(func.count())
        .select_from(Attempt)
        .where(Attempt.exam_id == exam_id, Attempt.student_id == student_id)
    ).one()


def ineligibility_reason(session: Session, exam: Exam, student_id: str, now: datetime) -> Optional[str]:
    """Return why the student may not start an attempt now, or None when eligible."""
    if get_assignment(session, exam.id, student_id) is None:
        return "student is not assigned to this exam"
    if now < exam.start_time:
        return "exam window has not opened yet"
    if now > exam.end_time:
        return "exam window has closed"
    if count_student_attempts(session, exam.id, student_id) >= exam.max_attempts:
        return "attempt limit reached"
    return None


def is_eligible(session: Session, exam: Exam, student_id: str, now: datetime) -> bool:
    return ineligibility_reason(session, exam, student_id, now) is None


def list_exams_for_student(session: Session, student_id: str) -> List[Exam]:
    """Published exams assigned to the student, soonest first."""
    stmt = (
        select(Exam)
        .join(ExamAssignment, ExamAssignment.exam_id == Exam.id)
        .where(ExamAssignment.student_id == student_id, Exam.status == ExamStatus.PUBLISHED)
        .order_by(Exam.start_time)
    )
    return session.exec(stmt).all()
