"""Question validation and storage.

A question carries its own answer key: options flagged ``is_correct`` for
choice questions, option pairs for matching, and ``correct_answer`` for text
questions. Nothing here scores answers; see ``scoring``.
"""

from typing import List, NamedTuple, Sequence

from sqlmodel import Session, select

from ..errors import ValidationError
from ..models import QuestionOption, Question, QuestionType, OPTION_TYPES, TEXT_TYPES
from ..schemas import QuestionIn
from ..utils import normalize_answer, sanitize_question_text

# Types whose key lives entirely in the options
KEYED_BY_OPTIONS = {QuestionType.MULTIPLE_CHOICE, QuestionType.MATCHING}


class QuestionWithOptions(NamedTuple):
    question: Question
    options: List[QuestionOption]


def validate_question(q: QuestionIn, position: int = 1) -> None:
    """Check the per-type answer-key invariants of one question."""

    def fail(message: str) -> None:
        raise ValidationError(f"Question {position}: {message}")

    if not sanitize_question_text(q.prompt):
        fail("prompt cannot be empty after sanitization")

    correct = [o for o in q.options if o.is_correct]

    if q.type == QuestionType.MULTIPLE_CHOICE:
        if len(q.options) < 2:
            fail("multiple_choice needs at least two options")
        if len(correct) != 1:
            fail("multiple_choice needs exactly one correct option")

    elif q.type == QuestionType.TRUE_FALSE:
        if len(q.options) != 2:
            fail("true_false needs exactly two options")
        if len(correct) > 1:
            fail("true_false allows at most one correct option")
        if not correct:
            # Fall back to correct_answer naming one of the two options
            texts = {normalize_answer(o.text) for o in q.options}
            if not q.correct_answer or normalize_answer(q.correct_answer) not in texts:
                fail("true_false needs a correct option or a correct_answer matching an option")

    elif q.type == QuestionType.MATCHING:
        if len(q.options) < 2:
            fail("matching needs at least two pairs")
        if any(not o.match for o in q.options):
            fail("every matching option needs a match")
        lefts = [normalize_answer(o.text) for o in q.options]
        if len(set(lefts)) != len(lefts):
            fail("matching option texts must be unique")

    elif q.type in TEXT_TYPES:
        if not q.correct_answer:
            fail(f"{q.type.value} needs a correct_answer")


def validate_questions(questions: Sequence[QuestionIn]) -> None:
    for position, q in enumerate(questions, start=1):
        validate_question(q, position)


def total_points(questions: Sequence[QuestionIn]) -> int:
    return sum(q.points for q in questions)


def add_questions(session: Session, exam_id: int, questions: Sequence[QuestionIn]) -> List[Question]:
    """Insert already-validated questions for an exam. Does not commit."""
    created = []
    for position, q in enumerate(questions, start=1):
        question = Question(
            exam_id=exam_id,
            position=position,
            question_type=q.type,
            prompt=sanitize_question_text(q.prompt),
            correct_answer=None if q.type in KEYED_BY_OPTIONS else q.correct_answer,
            points=q.points,
            explanation=q.explanation,
            difficulty=q.difficulty,
            tags=list(q.tags),
        )
        session.add(question)
        session.flush()

        if q.type in OPTION_TYPES:
            for opt_position, opt in enumerate(q.options, start=1):
                session.add(
                    QuestionOption(
                        question_id=question.id,
                        position=opt_position,
                        text=opt.text,
                        is_correct=opt.is_correct if q.type != QuestionType.MATCHING else False,
                        match=opt.match if q.type == QuestionType.MATCHING else None,
                    )
                )
        created.append(question)
    session.flush()
    return created


def delete_questions(session: Session, exam_id: int) -> None:
    """Remove every question and option of an exam. Does not commit."""
    for question in session.exec(select(Question).where(Question.exam_id == exam_id)).all():
        for option in session.exec(select(QuestionOption).where(QuestionOption.question_id == question.id)).all():
            session.delete(option)
        session.delete(question)
    session.flush()


def load_question_set(session: Session, exam_id: int) -> List[QuestionWithOptions]:
    questions = session.exec(
        select(Question).where(Question.exam_id == exam_id).order_by(Question.position)
    ).all()
    result = []
    for question in questions:
        options = session.exec(
            select(QuestionOption)
            .where(QuestionOption.question_id == question.id)
            .order_by(QuestionOption.position)
        ).all()
        result.append(QuestionWithOptions(question, list(options)))
    return result
