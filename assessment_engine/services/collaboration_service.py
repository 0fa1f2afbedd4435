"""Teacher collaboration: a main teacher grants capability flags to a colleague."""

import logging
from datetime import datetime
from typing import List

from sqlmodel import Session, select

from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..models import CollaborationStatus, TeacherCollaboration
from ..permissions import find_collaboration
from ..schemas import CollaboratorPermissions

logger = logging.getLogger(__name__)


def invite_collaborator(
    session: Session,
    main_teacher_id: str,
    collaborator_id: str,
    permissions: CollaboratorPermissions,
    now: datetime,
) -> TeacherCollaboration:
    if main_teacher_id == collaborator_id:
        raise ValidationError("A teacher cannot collaborate with themselves")
    existing = find_collaboration(session, main_teacher_id, collaborator_id)
    if existing is not None and existing.status != CollaborationStatus.REJECTED:
        raise InvalidStateError(f"Teacher {collaborator_id} is already a collaborator ({existing.status.value})")

    collaboration = existing or TeacherCollaboration(
        main_teacher_id=main_teacher_id, collaborator_id=collaborator_id, created_at=now
    )
    for flag, value in permissions.model_dump().items():
        setattr(collaboration, flag, value)
    collaboration.status = CollaborationStatus.PENDING
    collaboration.updated_at = now
    session.add(collaboration)
    session.commit()
    session.refresh(collaboration)
    logger.info("Teacher %s invited %s to collaborate", main_teacher_id, collaborator_id)
    return collaboration


def respond_to_collaboration(
    session: Session, collaboration_id: int, collaborator_id: str, accept: bool, now: datetime
) -> TeacherCollaboration:
    collaboration = session.get(TeacherCollaboration, collaboration_id)
    if collaboration is None or collaboration.collaborator_id != collaborator_id:
        raise NotFoundError(f"Collaboration with id={collaboration_id} does not exist")
    if collaboration.status != CollaborationStatus.PENDING:
        raise InvalidStateError(f"Collaboration {collaboration_id} is already {collaboration.status.value}")

    collaboration.status = CollaborationStatus.ACCEPTED if accept else CollaborationStatus.REJECTED
    collaboration.updated_at = now
    session.add(collaboration)
    session.commit()
    session.refresh(collaboration)
    return collaboration


def list_collaborators(session: Session, main_teacher_id: str) -> List[TeacherCollaboration]:
    return session.exec(
        select(TeacherCollaboration).where(TeacherCollaboration.main_teacher_id == main_teacher_id)
    ).all()
