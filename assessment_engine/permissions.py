"""Role and ownership checks for the acting subject.

Identity is verified upstream; the engine only receives ``(subject_id, role)``
and decides whether that subject may touch a given exam or attempt.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from sqlmodel import Session, select

from .errors import PermissionDeniedError
from .models import CollaborationStatus, Exam, TeacherCollaboration

logger = logging.getLogger(__name__)


class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


class Permission(str, Enum):
    """Capability flags a main teacher grants a collaborator."""

    VIEW_STUDENTS = "can_view_students"
    ADD_STUDENTS = "can_add_students"
    EDIT_STUDENTS = "can_edit_students"
    DELETE_STUDENTS = "can_delete_students"
    CREATE_ASSIGNMENTS = "can_create_assignments"
    GRADE_ASSIGNMENTS = "can_grade_assignments"
    VIEW_ANALYTICS = "can_view_analytics"
    CREATE_REPORTS = "can_create_reports"


@dataclass(frozen=True)
class Actor:
    subject_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def require_role(actor: Actor, *roles: Role) -> Actor:
    if actor.role not in roles:
        logger.warning("Denied %s (%s): requires one of %s", actor.subject_id, actor.role.value,
                       [r.value for r in roles])
        raise PermissionDeniedError("Forbidden")
    return actor


def require_student(actor: Actor, student_id: str) -> Actor:
    """The caller must be the student in question."""
    require_role(actor, Role.STUDENT)
    if actor.subject_id != student_id:
        raise PermissionDeniedError("Attempt belongs to another student")
    return actor


def find_collaboration(session: Session, main_teacher_id: str, collaborator_id: str):
    stmt = select(TeacherCollaboration).where(
        TeacherCollaboration.main_teacher_id == main_teacher_id,
        TeacherCollaboration.collaborator_id == collaborator_id,
    )
    return session.exec(stmt).first()


def has_exam_permission(session: Session, actor: Actor, exam: Exam, permission: Permission) -> bool:
    if actor.is_admin:
        return True
    if actor.role != Role.TEACHER:
        return False
    if exam.teacher_id == actor.subject_id:
        return True
    collaboration = find_collaboration(session, exam.teacher_id, actor.subject_id)
    if collaboration is None or collaboration.status != CollaborationStatus.ACCEPTED:
        return False
    return bool(getattr(collaboration, permission.value))


def require_exam_permission(session: Session, actor: Actor, exam: Exam, permission: Permission) -> Actor:
    """Owner, admin, or an accepted collaborator holding ``permission``."""
    if not has_exam_permission(session, actor, exam, permission):
        logger.warning("Denied %s on exam %s: missing %s", actor.subject_id, exam.id, permission.value)
        raise PermissionDeniedError(f"Not allowed to act on exam {exam.id}")
    return actor
