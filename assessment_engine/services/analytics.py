"""Exam-level statistics, always recomputed from the stored attempts."""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlmodel import Session, func, select

from ..models import (
    ATTEMPT_TERMINAL_STATUSES,
    SCORED_STATUSES,
    Attempt,
    AttemptAnswer,
    AttemptStatus,
    Exam,
    ExamAssignment,
    Question,
)
from ..schemas import AnalyticsSnapshot, QuestionStat

logger = logging.getLogger(__name__)


def _mean(values: Sequence[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


def compute_snapshot(
    question_ids: Sequence[int],
    attempts: Sequence[Attempt],
    answers: Sequence[AttemptAnswer],
    assignment_count: int,
) -> AnalyticsSnapshot:
    """Aggregate terminal attempts into an analytics snapshot.

    ``answers`` must belong to the given attempts. Attempts still in progress
    are ignored.
    """
    terminal = [a for a in attempts if a.status in ATTEMPT_TERMINAL_STATUSES]
    scored = [a for a in terminal if a.status in SCORED_STATUSES]
    completed = [a for a in terminal if a.status == AttemptStatus.COMPLETED]

    # A student counts once towards completion no matter how many attempts they used
    completed_students = {a.student_id for a in completed}
    completion_rate = round(len(completed_students) / assignment_count, 4) if assignment_count else 0.0

    terminal_ids = {a.id for a in terminal}
    per_question: Dict[int, List[AttemptAnswer]] = {qid: [] for qid in question_ids}
    for answer in answers:
        if answer.attempt_id in terminal_ids and answer.question_id in per_question:
            per_question[answer.question_id].append(answer)

    stats = [
        QuestionStat(
            question_id=qid,
            correct_count=sum(1 for a in rows if a.is_correct),
            total_attempts=len(rows),
            average_time=_mean([a.time_spent_seconds for a in rows]),
        )
        for qid, rows in per_question.items()
    ]

    return AnalyticsSnapshot(
        total_attempts=len(scored),
        average_score=_mean([a.score for a in scored]),
        completion_rate=completion_rate,
        average_time=_mean([a.total_time_spent for a in completed]),
        question_stats=stats,
    )


def build_exam_snapshot(session: Session, exam: Exam) -> AnalyticsSnapshot:
    question_ids = session.exec(
        select(Question.id).where(Question.exam_id == exam.id).order_by(Question.position)
    ).all()
    attempts = session.exec(
        select(Attempt).where(
            Attempt.exam_id == exam.id,
            Attempt.status.in_(list(ATTEMPT_TERMINAL_STATUSES)),
        )
    ).all()
    attempt_ids = [a.id for a in attempts]
    answers = []
    if attempt_ids:
        answers = session.exec(
            select(AttemptAnswer).where(AttemptAnswer.attempt_id.in_(attempt_ids))
        ).all()
    assignment_count = session.exec(
        select(func.count()).select_from(ExamAssignment).where(ExamAssignment.exam_id == exam.id)
    ).one()
    return compute_snapshot(question_ids, attempts, answers, assignment_count)


def refresh_exam_analytics(session: Session, exam: Exam, now: datetime) -> AnalyticsSnapshot:
    """Recompute the snapshot and cache it on the exam."""
    snapshot = build_exam_snapshot(session, exam)
    exam.analytics = snapshot.model_dump(mode="json")
    exam.analytics_updated_at = now
    session.add(exam)
    session.commit()
    logger.info(
        "Analytics refreshed for exam %s: %s scored attempts, avg %.2f",
        exam.id, snapshot.total_attempts, snapshot.average_score,
    )
    return snapshot


def cached_snapshot(exam: Exam) -> Optional[AnalyticsSnapshot]:
    if not exam.analytics:
        return None
    return AnalyticsSnapshot.model_validate(exam.analytics)
