import pytest

from assessment_engine.errors import InvalidStateError, PermissionDeniedError, ValidationError
from assessment_engine.models import Question, QuestionOption, QuestionType
from assessment_engine.services.question_bank import QuestionWithOptions
from assessment_engine.services.scoring import calculate_percentage, evaluate_answer, letter_grade


@pytest.mark.parametrize(
    "percentage, expected",
    [
        (100, "A+"),
        (97, "A+"),
        (96, "A"),
        (93, "A"),
        (90, "A-"),
        (89, "B+"),
        (83, "B"),
        (80, "B-"),
        (77, "C+"),
        (73, "C"),
        (70, "C-"),
        (67, "D+"),
        (63, "D"),
        (60, "D-"),
        (59, "F"),
        (0, "F"),
    ],
)
def test_letter_grade_thresholds(percentage, expected):
    assert letter_grade(percentage) == expected


def test_percentage_rounds_and_handles_empty_exam():
    assert calculate_percentage(2, 3) == 67
    assert calculate_percentage(1, 3) == 33
    assert calculate_percentage(5, 0) == 0


def _item(qtype, correct_answer=None, options=(), points=4):
    question = Question(id=1, exam_id=1, position=1, question_type=qtype, prompt="Q", points=points,
                        correct_answer=correct_answer)
    opts = [QuestionOption(id=10 + i, question_id=1, position=i, **o) for i, o in enumerate(options)]
    return QuestionWithOptions(question, opts)


def test_true_false_keyed_by_correct_answer():
    item = _item(QuestionType.TRUE_FALSE, "True", [{"text": "True"}, {"text": "False"}])
    assert evaluate_answer(item, "true") == (True, 4)
    assert evaluate_answer(item, "False") == (False, 0)


def test_fill_blank_is_case_and_space_insensitive():
    item = _item(QuestionType.FILL_BLANK, "Mitochondria")
    assert evaluate_answer(item, "  mitochondria ") == (True, 4)
    assert evaluate_answer(item, "nucleus") == (False, 0)


def test_matching_is_all_or_nothing():
    item = _item(
        QuestionType.MATCHING,
        options=[{"text": "H2O", "match": "Water"}, {"text": "NaCl", "match": "Salt"}],
    )
    assert evaluate_answer(item, '{"H2O": "water", "NaCl": "salt"}') == (True, 4)
    assert evaluate_answer(item, '{"H2O": "water"}') == (False, 0)
    assert evaluate_answer(item, '{"H2O": "salt", "NaCl": "water"}') == (False, 0)
    assert evaluate_answer(item, "not json") == (False, 0)
    assert evaluate_answer(item, '["H2O", "Water"]') == (False, 0)


def test_blank_and_essay_answers_score_nothing():
    assert evaluate_answer(_item(QuestionType.SHORT_ANSWER, "x"), "   ") == (False, 0)
    assert evaluate_answer(_item(QuestionType.SHORT_ANSWER, "x"), None) == (False, 0)
    assert evaluate_answer(_item(QuestionType.ESSAY), "A long and thoughtful answer") == (False, 0)


# ==================== MANUAL RE-GRADE ====================


def _completed_attempt(engine, student, published_exam, essay_text="Plants make sugar from light."):
    exam, question_ids = published_exam()
    attempt = engine.start_attempt(student, exam.id)
    engine.submit_answer(student, attempt.id, question_ids[0], "4")
    engine.submit_answer(student, attempt.id, question_ids[4], essay_text)
    engine.complete_attempt(student, attempt.id)
    return exam, attempt, question_ids


def test_regrade_essay_updates_attempt(engine, teacher, student, published_exam):
    exam, attempt, question_ids = _completed_attempt(engine, student, published_exam)
    essay = question_ids[4]
    assert engine.get_attempt(student, attempt.id).score == 2

    answer = engine.regrade_answer(teacher, attempt.id, essay, 2, feedback="<b>Good</b> work")
    assert answer.points == 2
    assert answer.is_correct
    assert answer.graded_by == "teacher-1"
    assert answer.grader_feedback == "Good work"

    regraded = engine.get_attempt(student, attempt.id)
    assert (regraded.score, regraded.percentage, regraded.grade) == (4, 40, "F")
    assert engine.get_analytics(teacher, exam.id, refresh=False).average_score == 4.0


def test_regrade_can_award_a_skipped_question(engine, teacher, student, published_exam):
    _, attempt, question_ids = _completed_attempt(engine, student, published_exam)
    short_answer = question_ids[2]

    answer = engine.regrade_answer(teacher, attempt.id, short_answer, 1, is_correct=False)
    assert answer.answer_text is None
    assert answer.points == 1
    assert answer.is_correct is False
    assert engine.get_attempt(student, attempt.id).score == 3


def test_regrade_points_must_fit_the_question(engine, teacher, student, published_exam):
    _, attempt, question_ids = _completed_attempt(engine, student, published_exam)
    with pytest.raises(ValidationError, match="out of range"):
        engine.regrade_answer(teacher, attempt.id, question_ids[4], 3)
    with pytest.raises(ValidationError):
        engine.regrade_answer(teacher, attempt.id, question_ids[4], -1)


def test_regrade_requires_finished_attempt(engine, teacher, student, published_exam):
    exam, question_ids = published_exam()
    attempt = engine.start_attempt(student, exam.id)
    with pytest.raises(InvalidStateError):
        engine.regrade_answer(teacher, attempt.id, question_ids[4], 1)

    engine.abandon_attempt(student, attempt.id)
    with pytest.raises(InvalidStateError):
        engine.regrade_answer(teacher, attempt.id, question_ids[4], 1)


def test_regrade_requires_grading_permission(engine, other_teacher, student, published_exam):
    _, attempt, question_ids = _completed_attempt(engine, student, published_exam)
    with pytest.raises(PermissionDeniedError):
        engine.regrade_answer(other_teacher, attempt.id, question_ids[4], 1)
    with pytest.raises(PermissionDeniedError):
        engine.regrade_answer(student, attempt.id, question_ids[4], 2)
