"""What a student sees: the question paper during an attempt and the review after it."""

import random
from typing import List

from ..errors import InvalidStateError, PermissionDeniedError
from ..models import ATTEMPT_TERMINAL_STATUSES, Attempt, AttemptAnswer, Exam, QuestionType
from .question_bank import QuestionWithOptions


def proctoring_config(exam: Exam) -> dict:
    """Proctoring flags for the client to enforce."""
    return {
        "enabled": exam.proctoring_enabled,
        "block_copy_paste": exam.block_copy_paste,
        "block_right_click": exam.block_right_click,
        "full_screen_required": exam.full_screen_required,
        "webcam_required": exam.webcam_required,
    }


def build_paper(exam: Exam, attempt: Attempt, questions: List[QuestionWithOptions]) -> dict:
    """Questions for an attempt without their answer keys.

    Shuffling is seeded by the attempt id so a student sees the same order
    every time they reload the same attempt.
    """
    rng = random.Random(attempt.id)
    items = list(questions)
    if exam.shuffle_questions:
        rng.shuffle(items)

    paper = []
    for question, options in items:
        entry = {
            "question_id": question.id,
            "type": question.question_type.value,
            "prompt": question.prompt,
            "points": question.points,
        }
        if question.question_type == QuestionType.MATCHING:
            matches = [o.match for o in options]
            rng.shuffle(matches)
            entry["left"] = [o.text for o in options]
            entry["right"] = matches
        elif options:
            shown = list(options)
            if exam.shuffle_options:
                rng.shuffle(shown)
            entry["options"] = [{"id": o.id, "text": o.text} for o in shown]
        paper.append(entry)

    return {
        "attempt_id": attempt.id,
        "exam_id": exam.id,
        "title": exam.title,
        "time_limit_minutes": exam.time_limit_minutes,
        "proctoring": proctoring_config(exam),
        "questions": paper,
    }


def _correct_answer(item: QuestionWithOptions):
    question, options = item
    if question.question_type == QuestionType.MATCHING:
        return {o.text: o.match for o in options}
    flagged = [o.text for o in options if o.is_correct]
    if flagged:
        return flagged[0]
    return question.correct_answer


def build_review(
    exam: Exam,
    attempt: Attempt,
    questions: List[QuestionWithOptions],
    answers: List[AttemptAnswer],
) -> dict:
    """Per-question outcome of a finished attempt, honouring the exam's review settings."""
    if attempt.status not in ATTEMPT_TERMINAL_STATUSES:
        raise InvalidStateError(f"Attempt {attempt.id} is still {attempt.status.value}")
    if not exam.allow_review:
        raise PermissionDeniedError(f"Exam {exam.id} does not allow review")

    by_question = {a.question_id: a for a in answers}
    rows = []
    for item in questions:
        question = item.question
        answer = by_question.get(question.id)
        row = {
            "question_id": question.id,
            "prompt": question.prompt,
            "points_possible": question.points,
            "answer": answer.answer_text if answer else None,
            "is_correct": answer.is_correct if answer else False,
            "points": answer.points if answer else 0,
            "feedback": answer.grader_feedback if answer else None,
        }
        if exam.show_correct_answers and question.question_type != QuestionType.ESSAY:
            row["correct_answer"] = _correct_answer(item)
        if exam.show_explanations:
            row["explanation"] = question.explanation
        rows.append(row)

    return {
        "attempt_id": attempt.id,
        "status": attempt.status.value,
        "score": attempt.score,
        "total_points": exam.total_points,
        "percentage": attempt.percentage,
        "grade": attempt.grade,
        "questions": rows,
    }
