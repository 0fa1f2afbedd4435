"""Deterministic point-sum scoring.

Each answer is worth either the full point value of its question or nothing;
there is no partial credit inside a question. Essays score 0 until a grader
sets their points through ``regrade_answer``.
"""

import json
import logging
from typing import Dict, List, NamedTuple, Optional

from sqlmodel import Session, select

from ..errors import InvalidStateError, ValidationError
from ..models import (
    SCORED_STATUSES,
    Attempt,
    AttemptAnswer,
    Exam,
    QuestionOption,
    QuestionType,
    TEXT_TYPES,
)
from ..utils import normalize_answer, sanitize_feedback, validate_marks
from .question_bank import QuestionWithOptions, load_question_set

logger = logging.getLogger(__name__)

GRADE_THRESHOLDS = (
    (97, "A+"),
    (93, "A"),
    (90, "A-"),
    (87, "B+"),
    (83, "B"),
    (80, "B-"),
    (77, "C+"),
    (73, "C"),
    (70, "C-"),
    (67, "D+"),
    (63, "D"),
    (60, "D-"),
)


class AnswerEvaluation(NamedTuple):
    is_correct: bool
    points: int


def letter_grade(percentage: float) -> str:
    for threshold, letter in GRADE_THRESHOLDS:
        if percentage >= threshold:
            return letter
    return "F"


def calculate_percentage(score: int, total_points: int) -> int:
    if total_points <= 0:
        return 0
    return round(100 * score / total_points)


def _choice_is_correct(options: List[QuestionOption], raw: str) -> Optional[bool]:
    """Resolve a raw answer to an option by text first, then by option id."""
    answer = raw.strip()
    for option in options:
        if option.text == answer:
            return option.is_correct
    for option in options:
        if str(option.id) == answer:
            return option.is_correct
    return None


def _parse_pairs(raw: str) -> Optional[Dict[str, str]]:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    return {normalize_answer(str(k)): normalize_answer(str(v)) for k, v in data.items()}


def evaluate_answer(item: QuestionWithOptions, raw: Optional[str]) -> AnswerEvaluation:
    """Score one raw answer against its question's answer key."""
    question, options = item
    miss = AnswerEvaluation(False, 0)
    if raw is None or not raw.strip():
        return miss

    qtype = question.question_type
    if qtype == QuestionType.ESSAY:
        return miss

    if qtype == QuestionType.MULTIPLE_CHOICE:
        correct = bool(_choice_is_correct(options, raw))

    elif qtype == QuestionType.TRUE_FALSE:
        if any(o.is_correct for o in options):
            correct = bool(_choice_is_correct(options, raw))
        else:
            correct = normalize_answer(raw) == normalize_answer(question.correct_answer or "")

    elif qtype in TEXT_TYPES:
        correct = normalize_answer(raw) == normalize_answer(question.correct_answer or "")

    elif qtype == QuestionType.MATCHING:
        # Raw answer is a JSON object: {"left text": "right text", ...}
        expected = {normalize_answer(o.text): normalize_answer(o.match or "") for o in options}
        correct = _parse_pairs(raw) == expected

    else:
        correct = False

    return AnswerEvaluation(True, question.points) if correct else miss


def list_answers(session: Session, attempt_id: int) -> List[AttemptAnswer]:
    return session.exec(
        select(AttemptAnswer).where(AttemptAnswer.attempt_id == attempt_id).order_by(AttemptAnswer.id)
    ).all()


def apply_aggregate(attempt: Attempt, answers: List[AttemptAnswer], total_points: int) -> Attempt:
    """Derive score, percentage and letter grade from stored answer points."""
    score = sum(a.points for a in answers)
    attempt.score = max(0, min(score, total_points))
    attempt.percentage = calculate_percentage(attempt.score, total_points)
    attempt.grade = letter_grade(attempt.percentage)
    return attempt


def score_attempt(
    session: Session,
    exam: Exam,
    attempt: Attempt,
    questions: Optional[List[QuestionWithOptions]] = None,
) -> Attempt:
    """Re-evaluate every auto-scored answer and set the attempt aggregate. Does not commit."""
    if questions is None:
        questions = load_question_set(session, exam.id)
    by_id = {item.question.id: item for item in questions}

    answers = list_answers(session, attempt.id)
    for answer in answers:
        item = by_id.get(answer.question_id)
        if item is None:
            answer.is_correct, answer.points = False, 0
        elif answer.graded_by is None:
            answer.is_correct, answer.points = evaluate_answer(item, answer.answer_text)
        session.add(answer)

    apply_aggregate(attempt, answers, exam.total_points)
    session.add(attempt)
    return attempt


def regrade_answer(
    session: Session,
    exam: Exam,
    attempt: Attempt,
    question_id: int,
    points: int,
    grader_id: str,
    feedback: Optional[str] = None,
    is_correct: Optional[bool] = None,
) -> AttemptAnswer:
    """Manually set the points of one answer and re-derive the attempt aggregate.

    Only scored terminal attempts (completed or timed out) can be re-graded.
    A question the student skipped gets an answer row holding just the grade.
    """
    if attempt.status not in SCORED_STATUSES:
        raise InvalidStateError(
            f"Cannot grade attempt {attempt.id} with status '{attempt.status.value}'"
        )

    item = next((i for i in load_question_set(session, exam.id) if i.question.id == question_id), None)
    if item is None:
        raise ValidationError(f"Question {question_id} does not belong to exam {exam.id}")

    try:
        validate_marks(points, item.question.points)
    except ValidationError as e:
        raise ValidationError(f"Question {question_id}: {e.message}")

    answer = session.exec(
        select(AttemptAnswer).where(
            AttemptAnswer.attempt_id == attempt.id, AttemptAnswer.question_id == question_id
        )
    ).first()
    if answer is None:
        answer = AttemptAnswer(attempt_id=attempt.id, question_id=question_id, answer_text=None)

    answer.points = points
    answer.is_correct = is_correct if is_correct is not None else points == item.question.points
    answer.graded_by = grader_id
    if feedback:
        answer.grader_feedback = sanitize_feedback(feedback)
    session.add(answer)
    session.flush()

    apply_aggregate(attempt, list_answers(session, attempt.id), exam.total_points)
    session.add(attempt)
    session.commit()
    session.refresh(answer)
    logger.info(
        "Attempt %s question %s regraded to %s by %s (score now %s)",
        attempt.id, question_id, points, grader_id, attempt.score,
    )
    return answer
