"""Plain-dict views of engine objects for JSON responses."""

from typing import List

from ..models import Attempt, AttemptAnswer, Exam, ExamAssignment, TeacherCollaboration
from ..services.question_bank import QuestionWithOptions
from ..services.review import proctoring_config


def exam_payload(exam: Exam) -> dict:
    return {
        "exam_id": exam.id,
        "teacher_id": exam.teacher_id,
        "title": exam.title,
        "description": exam.description,
        "type": exam.exam_type.value,
        "subject": exam.subject,
        "grade": exam.grade,
        "tags": exam.tags,
        "status": exam.status.value,
        "total_points": exam.total_points,
        "settings": {
            "shuffle_questions": exam.shuffle_questions,
            "shuffle_options": exam.shuffle_options,
            "show_correct_answers": exam.show_correct_answers,
            "show_explanations": exam.show_explanations,
            "allow_review": exam.allow_review,
            "time_limit_minutes": exam.time_limit_minutes,
            "max_attempts": exam.max_attempts,
            "password_protected": exam.access_password_hash is not None,
            "proctoring": proctoring_config(exam),
        },
        "schedule": {
            "start": exam.start_time.isoformat(),
            "end": exam.end_time.isoformat(),
            "timezone": exam.timezone,
        },
        "analytics": exam.analytics,
    }


def question_payloads(questions: List[QuestionWithOptions]) -> List[dict]:
    return [
        {
            "question_id": q.id,
            "type": q.question_type.value,
            "prompt": q.prompt,
            "points": q.points,
            "correct_answer": q.correct_answer,
            "explanation": q.explanation,
            "difficulty": q.difficulty.value,
            "tags": q.tags,
            "options": [
                {"id": o.id, "text": o.text, "is_correct": o.is_correct, "match": o.match} for o in options
            ],
        }
        for q, options in questions
    ]


def assignment_payload(assignment: ExamAssignment) -> dict:
    return {
        "student_id": assignment.student_id,
        "class_id": assignment.class_id,
        "assigned_by": assignment.assigned_by,
        "assigned_at": assignment.assigned_at.isoformat(),
    }


def attempt_payload(attempt: Attempt) -> dict:
    return {
        "attempt_id": attempt.id,
        "exam_id": attempt.exam_id,
        "student_id": attempt.student_id,
        "attempt_number": attempt.attempt_number,
        "status": attempt.status.value,
        "started_at": attempt.started_at.isoformat() if attempt.started_at else None,
        "completed_at": attempt.completed_at.isoformat() if attempt.completed_at else None,
        "total_time_spent": attempt.total_time_spent,
        "score": attempt.score,
        "percentage": attempt.percentage,
        "grade": attempt.grade,
    }


def answer_payload(answer: AttemptAnswer) -> dict:
    return {
        "question_id": answer.question_id,
        "answer": answer.answer_text,
        "is_correct": answer.is_correct,
        "points": answer.points,
        "time_spent": answer.time_spent_seconds,
        "graded_by": answer.graded_by,
        "feedback": answer.grader_feedback,
    }


def collaboration_payload(collaboration: TeacherCollaboration) -> dict:
    return {
        "collaboration_id": collaboration.id,
        "main_teacher_id": collaboration.main_teacher_id,
        "collaborator_id": collaboration.collaborator_id,
        "status": collaboration.status.value,
        "permissions": {
            "can_view_students": collaboration.can_view_students,
            "can_add_students": collaboration.can_add_students,
            "can_edit_students": collaboration.can_edit_students,
            "can_delete_students": collaboration.can_delete_students,
            "can_create_assignments": collaboration.can_create_assignments,
            "can_grade_assignments": collaboration.can_grade_assignments,
            "can_view_analytics": collaboration.can_view_analytics,
            "can_create_reports": collaboration.can_create_reports,
        },
    }
