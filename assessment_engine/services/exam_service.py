"""Exam definition: creation, publication, question edits and closing."""

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlmodel import Session, func, select

from ..auth_utils import hash_password
from ..errors import ImmutableContentError, InvalidStateError, NotFoundError, ValidationError
from ..models import (
    EXAM_TERMINAL_STATUSES,
    Attempt,
    Exam,
    ExamAssignment,
    ExamStatus,
    ExamType,
    Question,
)
from ..schemas import ExamDefinition, ExamSettingsIn, ExamUpdate, QuestionIn, ScheduleIn
from ..utils import to_naive_utc
from .question_bank import add_questions, delete_questions, total_points, validate_questions

logger = logging.getLogger(__name__)


def validate_schedule(schedule: ScheduleIn) -> Tuple[datetime, datetime, str]:
    start = to_naive_utc(schedule.start)
    end = to_naive_utc(schedule.end)
    if start >= end:
        raise ValidationError("Schedule end must be after schedule start")
    if schedule.timezone != "UTC":
        try:
            ZoneInfo(schedule.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValidationError(f"Unknown timezone '{schedule.timezone}'")
    return start, end, schedule.timezone


def apply_settings(exam: Exam, settings: ExamSettingsIn) -> None:
    exam.shuffle_questions = settings.shuffle_questions
    exam.shuffle_options = settings.shuffle_options
    exam.show_correct_answers = settings.show_correct_answers
    exam.show_explanations = settings.show_explanations
    exam.allow_review = settings.allow_review
    exam.time_limit_minutes = settings.time_limit_minutes
    exam.max_attempts = settings.max_attempts
    exam.access_password_hash = hash_password(settings.access_password) if settings.access_password else None
    exam.proctoring_enabled = settings.proctoring.enabled
    exam.block_copy_paste = settings.proctoring.block_copy_paste
    exam.block_right_click = settings.proctoring.block_right_click
    exam.full_screen_required = settings.proctoring.full_screen_required
    exam.webcam_required = settings.proctoring.webcam_required


def get_exam(session: Session, exam_id: int) -> Exam:
    exam = session.get(Exam, exam_id)
    if not exam:
        raise NotFoundError(f"Exam with id={exam_id} does not exist")
    return exam


def count_exam_attempts(session: Session, exam_id: int) -> int:
    return session.exec(
        select(func.count()).select_from(Attempt).where(Attempt.exam_id == exam_id)
    ).one()


def create_exam(session: Session, teacher_id: str, definition: ExamDefinition, now: datetime) -> Exam:
    """Validate a full definition and store it as a draft exam."""
    start, end, tz = validate_schedule(definition.schedule)
    validate_questions(definition.questions)

    exam = Exam(
        teacher_id=teacher_id,
        title=definition.title,
        description=definition.description,
        exam_type=definition.exam_type,
        subject=definition.subject,
        grade=definition.grade,
        tags=list(definition.tags),
        total_points=total_points(definition.questions),
        status=ExamStatus.DRAFT,
        start_time=start,
        end_time=end,
        timezone=tz,
        created_at=now,
        updated_at=now,
    )
    apply_settings(exam, definition.settings)
    session.add(exam)
    session.flush()

    add_questions(session, exam.id, definition.questions)
    session.commit()
    session.refresh(exam)
    logger.info("Exam %s created by %s with %s questions", exam.id, teacher_id, len(definition.questions))
    return exam


def update_exam(session: Session, exam: Exam, update: ExamUpdate, now: datetime) -> Exam:
    if exam.status != ExamStatus.DRAFT:
        raise InvalidStateError(f"Only draft exams can be edited (exam {exam.id} is {exam.status.value})")

    schedule = validate_schedule(update.schedule) if update.schedule is not None else None

    fields = update.model_dump(exclude_unset=True, exclude={"settings", "schedule"})
    for key, value in fields.items():
        if value is not None:
            setattr(exam, key, value)
    if schedule is not None:
        exam.start_time, exam.end_time, exam.timezone = schedule
        exam.window_opened_notified = False
        exam.window_closing_notified = False
    if update.settings is not None:
        apply_settings(exam, update.settings)

    exam.updated_at = now
    session.add(exam)
    session.commit()
    session.refresh(exam)
    return exam


def publish_exam(session: Session, exam: Exam, now: datetime) -> Exam:
    if exam.status != ExamStatus.DRAFT:
        raise InvalidStateError(f"Only draft exams can be published (exam {exam.id} is {exam.status.value})")
    if exam.total_points <= 0 or not _has_questions(session, exam.id):
        raise InvalidStateError(f"Exam {exam.id} has no questions")
    if exam.end_time <= now:
        raise InvalidStateError(f"Exam {exam.id} schedule has already ended")

    exam.status = ExamStatus.PUBLISHED
    exam.updated_at = now
    session.add(exam)
    session.commit()
    session.refresh(exam)
    logger.info("Exam %s published (window %s - %s)", exam.id, exam.start_time, exam.end_time)
    return exam


def _has_questions(session: Session, exam_id: int) -> bool:
    return session.exec(select(Question.id).where(Question.exam_id == exam_id)).first() is not None


def ensure_questions_mutable(session: Session, exam: Exam) -> None:
    if count_exam_attempts(session, exam.id) > 0:
        raise ImmutableContentError(f"Exam {exam.id} already has attempts; its questions are frozen")


def mutate_questions(session: Session, exam: Exam, questions: Sequence[QuestionIn], now: datetime) -> Exam:
    """Replace the question set and recompute total points."""
    ensure_questions_mutable(session, exam)
    if exam.status in EXAM_TERMINAL_STATUSES:
        raise InvalidStateError(f"Exam {exam.id} is {exam.status.value}")
    validate_questions(questions)

    delete_questions(session, exam.id)
    add_questions(session, exam.id, questions)
    exam.total_points = total_points(questions)
    # Cached stats refer to the old question ids
    exam.analytics = None
    exam.analytics_updated_at = None
    exam.updated_at = now
    session.add(exam)
    session.commit()
    session.refresh(exam)
    logger.info("Exam %s questions replaced (%s questions, %s points)", exam.id, len(questions), exam.total_points)
    return exam


def _close_exam(session: Session, exam: Exam, target: ExamStatus, now: datetime) -> Exam:
    if exam.status in EXAM_TERMINAL_STATUSES:
        raise InvalidStateError(f"Exam {exam.id} is already {exam.status.value}")
    exam.status = target
    exam.updated_at = now
    session.add(exam)
    session.commit()
    session.refresh(exam)
    logger.info("Exam %s %s", exam.id, target.value)
    return exam


def archive_exam(session: Session, exam: Exam, now: datetime) -> Exam:
    return _close_exam(session, exam, ExamStatus.ARCHIVED, now)


def cancel_exam(session: Session, exam: Exam, now: datetime) -> Exam:
    return _close_exam(session, exam, ExamStatus.CANCELLED, now)


def delete_exam(session: Session, exam: Exam) -> None:
    if count_exam_attempts(session, exam.id) > 0:
        raise InvalidStateError(f"Exam {exam.id} has attempts and cannot be deleted")
    for assignment in session.exec(select(ExamAssignment).where(ExamAssignment.exam_id == exam.id)).all():
        session.delete(assignment)
    delete_questions(session, exam.id)
    session.delete(exam)
    session.commit()
    logger.info("Exam %s deleted", exam.id)


def list_exams_for_teacher(
    session: Session,
    teacher_id: str,
    exam_type: Optional[ExamType] = None,
    subject: Optional[str] = None,
    status: Optional[ExamStatus] = None,
) -> List[Exam]:
    stmt = select(Exam).where(Exam.teacher_id == teacher_id)
    if exam_type is not None:
        stmt = stmt.where(Exam.exam_type == exam_type)
    if subject:
        stmt = stmt.where(Exam.subject == subject)
    if status is not None:
        stmt = stmt.where(Exam.status == status)
    return session.exec(stmt.order_by(Exam.created_at.desc(), Exam.id.desc())).all()
