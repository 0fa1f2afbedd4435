"""The assessment engine facade.

Every public method takes the verified :class:`Actor` making the call, opens
its own session on the store handed to the constructor, checks role and
ownership, and delegates to the service modules. The engine owns no
connection lifecycle: the host connects and closes the :class:`Store`.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, List, Optional, Sequence

from sqlmodel import Session

from .config import Settings
from .database import Store
from .errors import AttemptExpiredError, NotFoundError, PermissionDeniedError
from .events import ATTEMPT_COMPLETED, EXAM_WINDOW_CLOSING, EXAM_WINDOW_OPENED, EventBus, EventSink
from .locks import KeyedLocks
from .models import Attempt, AttemptAnswer, Exam, ExamAssignment, ExamStatus, ExamType, TeacherCollaboration
from .permissions import (
    Actor,
    Permission,
    Role,
    has_exam_permission,
    require_exam_permission,
    require_role,
    require_student,
)
from .schemas import (
    AnalyticsSnapshot,
    CollaboratorPermissions,
    ExamDefinition,
    ExamUpdate,
    QuestionIn,
    parse_model,
)
from .services import (
    analytics,
    assignment_service,
    attempt_service,
    collaboration_service,
    exam_service,
    review,
    scoring,
)
from .services.question_bank import QuestionWithOptions, load_question_set
from .utils import to_naive_utc, utcnow

logger = logging.getLogger(__name__)


class AssessmentEngine:
    def __init__(
        self,
        store: Store,
        sinks: Optional[Iterable[EventSink]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.events = EventBus(sinks)
        self.clock = clock or utcnow
        self.settings = settings or Settings()
        self._locks = KeyedLocks()

    def now(self) -> datetime:
        return to_naive_utc(self.clock())

    # ------------------------------------------------------------------
    # helpers

    def _exam_for(self, session: Session, actor: Actor, exam_id: int, permission: Permission) -> Exam:
        exam = exam_service.get_exam(session, exam_id)
        require_exam_permission(session, actor, exam, permission)
        return exam

    def _can_view_exam(self, session: Session, actor: Actor, exam: Exam) -> bool:
        if actor.role == Role.STUDENT:
            return (
                exam.status != ExamStatus.DRAFT
                and assignment_service.get_assignment(session, exam.id, actor.subject_id) is not None
            )
        return any(
            has_exam_permission(session, actor, exam, p)
            for p in (Permission.CREATE_ASSIGNMENTS, Permission.VIEW_ANALYTICS, Permission.GRADE_ASSIGNMENTS)
        )

    def _owned_attempt(self, session: Session, actor: Actor, attempt_id: int):
        """Load an attempt and its exam for the student who owns it."""
        attempt = attempt_service.get_attempt(session, attempt_id)
        require_student(actor, attempt.student_id)
        return exam_service.get_exam(session, attempt.exam_id), attempt

    def _with_default_timezone(self, model):
        """Fill in the configured timezone when the schedule names none."""
        schedule = model.schedule
        if schedule is None or "timezone" in schedule.model_fields_set:
            return model
        schedule = schedule.model_copy(update={"timezone": self.settings.default_timezone})
        return model.model_copy(update={"schedule": schedule})

    def _refresh_analytics(self, exam_id: int) -> AnalyticsSnapshot:
        # Fresh session: only committed attempts are visible
        with self.store.session() as session:
            exam = exam_service.get_exam(session, exam_id)
            return analytics.refresh_exam_analytics(session, exam, self.now())

    # ------------------------------------------------------------------
    # exam definition

    def create_exam(self, actor: Actor, definition: Any) -> Exam:
        require_role(actor, Role.TEACHER, Role.ADMIN)
        definition = parse_model(ExamDefinition, definition)
        definition = self._with_default_timezone(definition)
        with self.store.session() as session:
            return exam_service.create_exam(session, actor.subject_id, definition, self.now())

    def get_exam(self, actor: Actor, exam_id: int) -> Exam:
        with self.store.session() as session:
            exam = exam_service.get_exam(session, exam_id)
            if not self._can_view_exam(session, actor, exam):
                raise PermissionDeniedError(f"No access to exam {exam_id}")
            return exam

    def get_questions(self, actor: Actor, exam_id: int) -> List[QuestionWithOptions]:
        """Questions with their answer keys; staff only."""
        with self.store.session() as session:
            exam = exam_service.get_exam(session, exam_id)
            if actor.role == Role.STUDENT or not self._can_view_exam(session, actor, exam):
                raise PermissionDeniedError(f"No access to questions of exam {exam_id}")
            return load_question_set(session, exam_id)

    def list_exams_for_teacher(
        self,
        actor: Actor,
        exam_type: Optional[ExamType] = None,
        subject: Optional[str] = None,
        status: Optional[ExamStatus] = None,
    ) -> List[Exam]:
        require_role(actor, Role.TEACHER, Role.ADMIN)
        with self.store.session() as session:
            return exam_service.list_exams_for_teacher(session, actor.subject_id, exam_type, subject, status)

    def list_exams_for_student(self, actor: Actor, student_id: str) -> List[Exam]:
        if not actor.is_admin:
            require_student(actor, student_id)
        with self.store.session() as session:
            return assignment_service.list_exams_for_student(session, student_id)

    def update_exam(self, actor: Actor, exam_id: int, update: Any) -> Exam:
        update = parse_model(ExamUpdate, update)
        update = self._with_default_timezone(update)
        with self.store.session() as session:
            exam = self._exam_for(session, actor, exam_id, Permission.CREATE_ASSIGNMENTS)
            return exam_service.update_exam(session, exam, update, self.now())

    def publish_exam(self, actor: Actor, exam_id: int) -> Exam:
        with self.store.session() as session:
            exam = self._exam_for(session, actor, exam_id, Permission.CREATE_ASSIGNMENTS)
            return exam_service.publish_exam(session, exam, self.now())

    def mutate_questions(self, actor: Actor, exam_id: int, questions: Sequence[Any]) -> Exam:
        questions = [parse_model(QuestionIn, q) for q in questions]
        # A start in flight must not slip in between the attempt check and the replacement
        with self._locks.hold(("questions", exam_id)):
            with self.store.session() as session:
                exam = exam_service.get_exam(session, exam_id)
                # Frozen content wins over any permission question
                exam_service.ensure_questions_mutable(session, exam)
                require_exam_permission(session, actor, exam, Permission.CREATE_ASSIGNMENTS)
                return exam_service.mutate_questions(session, exam, questions, self.now())

    def archive_exam(self, actor: Actor, exam_id: int) -> Exam:
        with self.store.session() as session:
            exam = self._exam_for(session, actor, exam_id, Permission.CREATE_ASSIGNMENTS)
            return exam_service.archive_exam(session, exam, self.now())

    def cancel_exam(self, actor: Actor, exam_id: int) -> Exam:
        with self.store.session() as session:
            exam = self._exam_for(session, actor, exam_id, Permission.CREATE_ASSIGNMENTS)
            return exam_service.cancel_exam(session, exam, self.now())

    def delete_exam(self, actor: Actor, exam_id: int) -> None:
        with self.store.session() as session:
            exam = exam_service.get_exam(session, exam_id)
            if not (actor.is_admin or exam.teacher_id == actor.subject_id):
                raise PermissionDeniedError("Only the exam owner can delete it")
            exam_service.delete_exam(session, exam)

    # ------------------------------------------------------------------
    # assignment

    def assign(self, actor: Actor, exam_id: int, student_id: str, class_id: Optional[str] = None) -> ExamAssignment:
        with self.store.session() as session:
            exam = self._exam_for(session, actor, exam_id, Permission.CREATE_ASSIGNMENTS)
            return assignment_service.assign(session, exam, student_id, actor.subject_id, self.now(), class_id)

    def assign_class(self, actor: Actor, exam_id: int, class_id: str, student_ids: Iterable[str]) -> int:
        with self.store.session() as session:
            exam = self._exam_for(session, actor, exam_id, Permission.CREATE_ASSIGNMENTS)
            return assignment_service.assign_class(
                session, exam, class_id, student_ids, actor.subject_id, self.now()
            )

    def unassign(self, actor: Actor, exam_id: int, student_id: str) -> None:
        with self.store.session() as session:
            exam = self._exam_for(session, actor, exam_id, Permission.CREATE_ASSIGNMENTS)
            assignment_service.unassign(session, exam, student_id)

    def list_assignments(self, actor: Actor, exam_id: int) -> List[ExamAssignment]:
        with self.store.session() as session:
            self._exam_for(session, actor, exam_id, Permission.VIEW_STUDENTS)
            return assignment_service.list_assignments(session, exam_id)

    def is_eligible(self, actor: Actor, exam_id: int, student_id: str, now: Optional[datetime] = None) -> bool:
        now = to_naive_utc(now) if now else self.now()
        with self.store.session() as session:
            exam = exam_service.get_exam(session, exam_id)
            if actor.subject_id != student_id and not has_exam_permission(
                session, actor, exam, Permission.VIEW_STUDENTS
            ):
                raise PermissionDeniedError(f"No access to exam {exam_id}")
            return assignment_service.is_eligible(session, exam, student_id, now)

    # ------------------------------------------------------------------
    # attempts

    def start_attempt(self, actor: Actor, exam_id: int, password: Optional[str] = None) -> Attempt:
        require_role(actor, Role.STUDENT)
        start_key = ("start", exam_id, actor.subject_id)
        with self._locks.hold(start_key), self._locks.hold(("questions", exam_id)):
            with self.store.session() as session:
                exam = exam_service.get_exam(session, exam_id)
                return attempt_service.start_attempt(session, exam, actor.subject_id, self.now(), password)

    def get_attempt(self, actor: Actor, attempt_id: int) -> Attempt:
        with self.store.session() as session:
            attempt = attempt_service.get_attempt(session, attempt_id)
            if actor.subject_id != attempt.student_id:
                exam = exam_service.get_exam(session, attempt.exam_id)
                require_exam_permission(session, actor, exam, Permission.VIEW_ANALYTICS)
            return attempt

    def list_answers(self, actor: Actor, attempt_id: int) -> List[AttemptAnswer]:
        with self.store.session() as session:
            attempt = attempt_service.get_attempt(session, attempt_id)
            if actor.subject_id != attempt.student_id:
                exam = exam_service.get_exam(session, attempt.exam_id)
                require_exam_permission(session, actor, exam, Permission.GRADE_ASSIGNMENTS)
            return scoring.list_answers(session, attempt_id)

    def get_attempt_paper(self, actor: Actor, attempt_id: int) -> dict:
        with self.store.session() as session:
            exam, attempt = self._owned_attempt(session, actor, attempt_id)
            return review.build_paper(exam, attempt, load_question_set(session, exam.id))

    def submit_answer(
        self,
        actor: Actor,
        attempt_id: int,
        question_id: int,
        raw_answer: Optional[str],
        time_spent_seconds: int = 0,
    ) -> AttemptAnswer:
        with self._locks.hold(("attempt", attempt_id)):
            try:
                with self.store.session() as session:
                    exam, attempt = self._owned_attempt(session, actor, attempt_id)
                    return attempt_service.submit_answer(
                        session, exam, attempt, question_id, raw_answer, time_spent_seconds, self.now()
                    )
            except AttemptExpiredError:
                logger.warning("Attempt %s expired on submit", attempt_id)
                self._refresh_analytics(exam.id)
                raise

    def complete_attempt(self, actor: Actor, attempt_id: int) -> Attempt:
        with self._locks.hold(("attempt", attempt_id)):
            try:
                with self.store.session() as session:
                    exam, attempt = self._owned_attempt(session, actor, attempt_id)
                    attempt = attempt_service.complete_attempt(session, exam, attempt, self.now())
            except AttemptExpiredError:
                self._refresh_analytics(exam.id)
                raise
            self._refresh_analytics(exam.id)

        self.events.emit(
            ATTEMPT_COMPLETED,
            {
                "attempt_id": attempt.id,
                "exam_id": attempt.exam_id,
                "student_id": attempt.student_id,
                "attempt_number": attempt.attempt_number,
                "score": attempt.score,
                "percentage": attempt.percentage,
                "grade": attempt.grade,
                "completed_at": attempt.completed_at.isoformat(),
            },
        )
        return attempt

    def abandon_attempt(self, actor: Actor, attempt_id: int) -> Attempt:
        """The owning student gives up, or staff close the attempt for them."""
        with self._locks.hold(("attempt", attempt_id)):
            with self.store.session() as session:
                attempt = attempt_service.get_attempt(session, attempt_id)
                exam = exam_service.get_exam(session, attempt.exam_id)
                if actor.subject_id != attempt.student_id:
                    require_exam_permission(session, actor, exam, Permission.GRADE_ASSIGNMENTS)
                attempt = attempt_service.abandon_attempt(session, attempt, self.now())
            self._refresh_analytics(exam.id)
        return attempt

    def list_assigned_attempts(self, actor: Actor, exam_id: int) -> List[Attempt]:
        with self.store.session() as session:
            self._exam_for(session, actor, exam_id, Permission.VIEW_ANALYTICS)
            return attempt_service.list_attempts(session, exam_id)

    def list_my_attempts(self, actor: Actor, exam_id: int) -> List[Attempt]:
        require_role(actor, Role.STUDENT)
        with self.store.session() as session:
            return attempt_service.list_attempts(session, exam_id, actor.subject_id)

    def regrade_answer(
        self,
        actor: Actor,
        attempt_id: int,
        question_id: int,
        points: int,
        feedback: Optional[str] = None,
        is_correct: Optional[bool] = None,
    ) -> AttemptAnswer:
        with self._locks.hold(("attempt", attempt_id)):
            with self.store.session() as session:
                attempt = attempt_service.get_attempt(session, attempt_id)
                exam = self._exam_for(session, actor, attempt.exam_id, Permission.GRADE_ASSIGNMENTS)
                answer = scoring.regrade_answer(
                    session, exam, attempt, question_id, points, actor.subject_id, feedback, is_correct
                )
            self._refresh_analytics(exam.id)
        return answer

    def review_attempt(self, actor: Actor, attempt_id: int) -> dict:
        with self.store.session() as session:
            exam, attempt = self._owned_attempt(session, actor, attempt_id)
            return review.build_review(
                exam, attempt, load_question_set(session, exam.id), scoring.list_answers(session, attempt_id)
            )

    # ------------------------------------------------------------------
    # analytics

    def get_analytics(self, actor: Actor, exam_id: int, refresh: bool = True) -> AnalyticsSnapshot:
        """Exam statistics; recomputed from attempts unless ``refresh`` is False and a cache exists."""
        with self.store.session() as session:
            exam = self._exam_for(session, actor, exam_id, Permission.VIEW_ANALYTICS)
            cached = analytics.cached_snapshot(exam)
        if cached is not None and not refresh:
            return cached
        return self._refresh_analytics(exam_id)

    # ------------------------------------------------------------------
    # collaboration

    def invite_collaborator(
        self, actor: Actor, collaborator_id: str, permissions: Any = None
    ) -> TeacherCollaboration:
        require_role(actor, Role.TEACHER)
        permissions = parse_model(CollaboratorPermissions, permissions or {})
        with self.store.session() as session:
            return collaboration_service.invite_collaborator(
                session, actor.subject_id, collaborator_id, permissions, self.now()
            )

    def respond_to_collaboration(self, actor: Actor, collaboration_id: int, accept: bool) -> TeacherCollaboration:
        require_role(actor, Role.TEACHER)
        with self.store.session() as session:
            return collaboration_service.respond_to_collaboration(
                session, collaboration_id, actor.subject_id, accept, self.now()
            )

    # ------------------------------------------------------------------
    # periodic sweep

    def sweep(self, now: Optional[datetime] = None) -> dict:
        """Entry point for an external scheduled job.

        Settles overdue attempts through ordinary state transitions and emits
        window opened/closing events once per exam.
        """
        now = to_naive_utc(now) if now else self.now()
        with self.store.session() as session:
            attempt_ids = attempt_service.list_in_progress_ids(session)

        settled = {"timeout": [], "abandoned": []}
        touched_exams = set()
        for attempt_id in attempt_ids:
            with self._locks.hold(("attempt", attempt_id)):
                with self.store.session() as session:
                    try:
                        attempt = attempt_service.get_attempt(session, attempt_id)
                    except NotFoundError:
                        continue
                    exam = exam_service.get_exam(session, attempt.exam_id)
                    outcome = attempt_service.settle_overdue(session, exam, attempt, now)
            if outcome is not None:
                settled[outcome.value].append(attempt_id)
                touched_exams.add(exam.id)

        for exam_id in sorted(touched_exams):
            self._refresh_analytics(exam_id)

        lead = timedelta(minutes=self.settings.window_closing_lead_minutes)
        with self.store.session() as session:
            opened, closing = attempt_service.flag_exam_windows(session, now, lead)
        for name, exams in ((EXAM_WINDOW_OPENED, opened), (EXAM_WINDOW_CLOSING, closing)):
            for exam in exams:
                self.events.emit(
                    name,
                    {
                        "exam_id": exam.id,
                        "title": exam.title,
                        "start_time": exam.start_time.isoformat(),
                        "end_time": exam.end_time.isoformat(),
                    },
                )

        if settled["timeout"] or settled["abandoned"]:
            logger.info("Sweep settled %s timed out, %s abandoned", len(settled["timeout"]), len(settled["abandoned"]))
        return {
            "timed_out": settled["timeout"],
            "abandoned": settled["abandoned"],
            "windows_opened": [e.id for e in opened],
            "windows_closing": [e.id for e in closing],
        }
