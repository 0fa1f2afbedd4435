import pytest

from assessment_engine.errors import InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from assessment_engine.models import CollaborationStatus

from conftest import make_definition


def test_accepted_collaborator_gets_default_permissions(engine, teacher, other_teacher, student, published_exam):
    exam, question_ids = published_exam()
    invite = engine.invite_collaborator(teacher, "teacher-2")
    assert invite.status == CollaborationStatus.PENDING

    # Pending invitations grant nothing
    with pytest.raises(PermissionDeniedError):
        engine.get_analytics(other_teacher, exam.id)

    accepted = engine.respond_to_collaboration(other_teacher, invite.id, accept=True)
    assert accepted.status == CollaborationStatus.ACCEPTED

    assert engine.get_analytics(other_teacher, exam.id).total_attempts == 0
    assert engine.get_exam(other_teacher, exam.id).id == exam.id
    engine.assign(other_teacher, exam.id, "student-3")

    attempt = engine.start_attempt(student, exam.id)
    engine.complete_attempt(student, attempt.id)
    assert engine.regrade_answer(other_teacher, attempt.id, question_ids[4], 1).graded_by == "teacher-2"

    # Deleting stays with the owner
    with pytest.raises(PermissionDeniedError):
        engine.delete_exam(other_teacher, exam.id)


def test_permission_flags_are_respected(engine, teacher, other_teacher):
    exam = engine.create_exam(teacher, make_definition())
    invite = engine.invite_collaborator(
        teacher, "teacher-2", {"can_grade_assignments": False, "can_create_assignments": False}
    )
    engine.respond_to_collaboration(other_teacher, invite.id, accept=True)

    assert engine.get_analytics(other_teacher, exam.id).total_attempts == 0
    with pytest.raises(PermissionDeniedError):
        engine.assign(other_teacher, exam.id, "student-1")
    with pytest.raises(PermissionDeniedError):
        engine.publish_exam(other_teacher, exam.id)


def test_rejected_invitation_can_be_renewed(engine, teacher, other_teacher):
    invite = engine.invite_collaborator(teacher, "teacher-2")
    engine.respond_to_collaboration(other_teacher, invite.id, accept=False)

    renewed = engine.invite_collaborator(teacher, "teacher-2", {"can_view_analytics": False})
    assert renewed.id == invite.id
    assert renewed.status == CollaborationStatus.PENDING
    assert renewed.can_view_analytics is False


def test_invitation_rules(engine, teacher, other_teacher, student):
    with pytest.raises(ValidationError):
        engine.invite_collaborator(teacher, "teacher-1")
    with pytest.raises(PermissionDeniedError):
        engine.invite_collaborator(student, "teacher-2")
    with pytest.raises(ValidationError):
        engine.invite_collaborator(teacher, "teacher-2", {"can_fly": True})

    invite = engine.invite_collaborator(teacher, "teacher-2")
    with pytest.raises(InvalidStateError):
        engine.invite_collaborator(teacher, "teacher-2")
    # Only the invited teacher may answer
    with pytest.raises(NotFoundError):
        engine.respond_to_collaboration(teacher, invite.id, accept=True)
    engine.respond_to_collaboration(other_teacher, invite.id, accept=True)
    with pytest.raises(InvalidStateError):
        engine.respond_to_collaboration(other_teacher, invite.id, accept=False)
