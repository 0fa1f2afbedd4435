"""SQLModel tables and enums for the assessment engine."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from .utils import utcnow


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    ESSAY = "essay"
    FILL_BLANK = "fill_blank"
    MATCHING = "matching"


# Question types whose options carry the answer key
OPTION_TYPES = {QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE, QuestionType.MATCHING}
TEXT_TYPES = {QuestionType.SHORT_ANSWER, QuestionType.FILL_BLANK}


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ExamType(str, Enum):
    QUIZ = "quiz"
    MIDTERM = "midterm"
    FINAL = "final"
    PRACTICE = "practice"
    DIAGNOSTIC = "diagnostic"
    OTHER = "other"


class ExamStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"
    CANCELLED = "cancelled"


EXAM_TERMINAL_STATUSES = {ExamStatus.ARCHIVED, ExamStatus.CANCELLED}


class AttemptStatus(str, Enum):
    # not_started is implicit: no Attempt row exists yet
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    TIMEOUT = "timeout"


ATTEMPT_TERMINAL_STATUSES = {AttemptStatus.COMPLETED, AttemptStatus.ABANDONED, AttemptStatus.TIMEOUT}
# Terminal attempts that carry a score
SCORED_STATUSES = {AttemptStatus.COMPLETED, AttemptStatus.TIMEOUT}


class CollaborationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Exam(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    teacher_id: str = Field(index=True)
    title: str
    description: Optional[str] = None
    exam_type: ExamType = Field(default=ExamType.QUIZ)
    subject: str = Field(index=True)
    grade: str
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    total_points: int = Field(default=0)
    status: ExamStatus = Field(default=ExamStatus.DRAFT, index=True)

    # Settings
    shuffle_questions: bool = Field(default=False)
    shuffle_options: bool = Field(default=False)
    show_correct_answers: bool = Field(default=True)
    show_explanations: bool = Field(default=True)
    allow_review: bool = Field(default=True)
    time_limit_minutes: Optional[int] = None
    max_attempts: int = Field(default=1)
    access_password_hash: Optional[str] = None

    # Proctoring is recorded for the client; the server never enforces it
    proctoring_enabled: bool = Field(default=False)
    block_copy_paste: bool = Field(default=False)
    block_right_click: bool = Field(default=False)
    full_screen_required: bool = Field(default=False)
    webcam_required: bool = Field(default=False)

    # Schedule, stored as naive UTC
    start_time: datetime = Field(index=True)
    end_time: datetime = Field(index=True)
    timezone: str = Field(default="UTC")
    window_opened_notified: bool = Field(default=False)
    window_closing_notified: bool = Field(default=False)

    # Cached analytics snapshot; always re-derivable from attempts
    analytics: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    analytics_updated_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Question(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exam.id", index=True)
    position: int
    question_type: QuestionType
    prompt: str
    correct_answer: Optional[str] = None
    points: int
    explanation: Optional[str] = None
    difficulty: Difficulty = Field(default=Difficulty.MEDIUM)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))


class QuestionOption(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    question_id: int = Field(foreign_key="question.id", index=True)
    position: int
    text: str
    is_correct: bool = Field(default=False)
    # Right-hand side of a pair, only for matching questions
    match: Optional[str] = None


class ExamAssignment(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("exam_id", "student_id", name="uq_assignment_exam_student"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exam.id", index=True)
    student_id: str = Field(index=True)
    class_id: Optional[str] = None
    assigned_by: str
    assigned_at: datetime = Field(default_factory=utcnow)


class Attempt(SQLModel, table=True):
    """One student's attempt at an exam."""

    __table_args__ = (
        # Atomic guard for attempt-start de-duplication
        UniqueConstraint("exam_id", "student_id", "attempt_number", name="uq_attempt_number"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exam.id", index=True)
    student_id: str = Field(index=True)
    attempt_number: int
    status: AttemptStatus = Field(default=AttemptStatus.IN_PROGRESS, index=True)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_time_spent: int = Field(default=0)  # seconds
    score: int = Field(default=0)
    percentage: int = Field(default=0)
    grade: str = Field(default="F")


class AttemptAnswer(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_answer_attempt_question"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    attempt_id: int = Field(foreign_key="attempt.id", index=True)
    question_id: int = Field(foreign_key="question.id", index=True)
    answer_text: Optional[str] = None
    is_correct: bool = Field(default=False)
    points: int = Field(default=0)
    time_spent_seconds: int = Field(default=0)
    answered_at: datetime = Field(default_factory=utcnow)
    graded_by: Optional[str] = None
    grader_feedback: Optional[str] = None


class TeacherCollaboration(SQLModel, table=True):
    """A teacher granting another teacher capabilities over their exams."""

    __table_args__ = (
        UniqueConstraint("main_teacher_id", "collaborator_id", name="uq_collaboration_pair"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    main_teacher_id: str = Field(index=True)
    collaborator_id: str = Field(index=True)
    status: CollaborationStatus = Field(default=CollaborationStatus.PENDING)

    can_view_students: bool = Field(default=True)
    can_add_students: bool = Field(default=False)
    can_edit_students: bool = Field(default=False)
    can_delete_students: bool = Field(default=False)
    can_create_assignments: bool = Field(default=True)
    can_grade_assignments: bool = Field(default=True)
    can_view_analytics: bool = Field(default=True)
    can_create_reports: bool = Field(default=False)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
