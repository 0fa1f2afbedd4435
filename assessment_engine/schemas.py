"""Pydantic schemas for exam definitions, permissions and analytics snapshots."""

from datetime import datetime
from typing import Any, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .models import Difficulty, ExamType, QuestionType

ModelT = TypeVar("ModelT", bound=BaseModel)


class _Input(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


class OptionIn(_Input):
    text: str = Field(min_length=1)
    is_correct: bool = False
    match: Optional[str] = None


class QuestionIn(_Input):
    type: QuestionType
    prompt: str = Field(min_length=1)
    options: List[OptionIn] = Field(default_factory=list)
    correct_answer: Optional[str] = None
    points: int = Field(gt=0)
    explanation: Optional[str] = None
    difficulty: Difficulty = Difficulty.MEDIUM
    tags: List[str] = Field(default_factory=list)


class ProctoringIn(_Input):
    enabled: bool = False
    block_copy_paste: bool = False
    block_right_click: bool = False
    full_screen_required: bool = False
    webcam_required: bool = False


class ExamSettingsIn(_Input):
    shuffle_questions: bool = False
    shuffle_options: bool = False
    show_correct_answers: bool = True
    show_explanations: bool = True
    allow_review: bool = True
    time_limit_minutes: Optional[int] = Field(default=None, gt=0)
    max_attempts: int = Field(default=1, ge=1)
    access_password: Optional[str] = None
    proctoring: ProctoringIn = Field(default_factory=ProctoringIn)


class ScheduleIn(_Input):
    start: datetime
    end: datetime
    timezone: str = "UTC"


class ExamDefinition(_Input):
    title: str = Field(min_length=1, max_length=200)
    subject: str = Field(min_length=1, max_length=120)
    grade: str = Field(min_length=1)
    description: Optional[str] = None
    exam_type: ExamType = ExamType.QUIZ
    tags: List[str] = Field(default_factory=list)
    questions: List[QuestionIn] = Field(default_factory=list)
    settings: ExamSettingsIn = Field(default_factory=ExamSettingsIn)
    schedule: ScheduleIn


class ExamUpdate(_Input):
    """Partial update of a draft exam's details; questions go through mutate_questions."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    subject: Optional[str] = Field(default=None, min_length=1, max_length=120)
    grade: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    exam_type: Optional[ExamType] = None
    tags: Optional[List[str]] = None
    settings: Optional[ExamSettingsIn] = None
    schedule: Optional[ScheduleIn] = None


class CollaboratorPermissions(_Input):
    can_view_students: bool = True
    can_add_students: bool = False
    can_edit_students: bool = False
    can_delete_students: bool = False
    can_create_assignments: bool = True
    can_grade_assignments: bool = True
    can_view_analytics: bool = True
    can_create_reports: bool = False


class QuestionStat(BaseModel):
    question_id: int
    correct_count: int = 0
    total_attempts: int = 0
    average_time: float = 0.0


class AnalyticsSnapshot(BaseModel):
    total_attempts: int = 0
    average_score: float = 0.0
    completion_rate: float = 0.0
    average_time: float = 0.0
    question_stats: List[QuestionStat] = Field(default_factory=list)


def parse_model(model_cls: Type[ModelT], data: Any) -> ModelT:
    """Coerce ``data`` into ``model_cls``, reporting problems as engine ValidationError."""
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ValidationError(f"Invalid {model_cls.__name__}: {details}") from exc
