"""Exam definition, assignment and analytics endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, Response
from pydantic import BaseModel

from ..deps import get_current_actor, get_engine
from ..engine import AssessmentEngine
from ..models import ExamStatus, ExamType
from ..permissions import Actor
from .serializers import assignment_payload, attempt_payload, exam_payload, question_payloads

router = APIRouter()


class AssignIn(BaseModel):
    student_id: str
    class_id: Optional[str] = None


class AssignClassIn(BaseModel):
    class_id: str
    student_ids: List[str]


class QuestionsIn(BaseModel):
    questions: List[dict]


# 1) EXAM DEFINITION
@router.post("/exams", status_code=201)
def api_create_exam(
    payload: dict = Body(...),
    actor: Actor = Depends(get_current_actor),
    engine: AssessmentEngine = Depends(get_engine),
):
    return exam_payload(engine.create_exam(actor, payload))


@router.get("/exams/mine")
def api_my_exams(
    exam_type: Optional[ExamType] = Query(None, alias="type"),
    subject: Optional[str] = Query(None),
    status: Optional[ExamStatus] = Query(None),
    actor: Actor = Depends(get_current_actor),
    engine: AssessmentEngine = Depends(get_engine),
):
    exams = engine.list_exams_for_teacher(actor, exam_type, subject, status)
    return [exam_payload(e) for e in exams]


@router.get("/exams/{exam_id}")
def api_get_exam(
    exam_id: int, actor: Actor = Depends(get_current_actor), engine: AssessmentEngine = Depends(get_engine)
):
    return exam_payload(engine.get_exam(actor, exam_id))


@router.patch("/exams/{exam_id}")
def api_update_exam(
    exam_id: int,
    payload: dict = Body(...),
    actor: Actor = Depends(get_current_actor),
    engine: AssessmentEngine = Depends(get_engine),
):
    return exam_payload(engine.update_exam(actor, exam_id, payload))


@router.delete("/exams/{exam_id}", status_code=204)
def api_delete_exam(
    exam_id: int, actor: Actor = Depends(get_current_actor), engine: AssessmentEngine = Depends(get_engine)
):
    engine.delete_exam(actor, exam_id)
    return Response(status_code=204)


@router.get("/exams/{exam_id}/questions")
def api_list_questions(
    exam_id: int, actor: Actor = Depends(get_current_actor), engine: AssessmentEngine = Depends(get_engine)
):
    return question_payloads(engine.get_questions(actor, exam_id))


@router.put("/exams/{exam_id}/questions")
def api_replace_questions(
    exam_id: int,
    payload: QuestionsIn = Body(...),
    actor: Actor = Depends(get_current_actor),
    engine: AssessmentEngine = Depends(get_engine),
):
    return exam_payload(engine.mutate_questions(actor, exam_id, payload.questions))


@router.post("/exams/{exam_id}/publish")
def api_publish_exam(
    exam_id: int, actor: Actor = Depends(get_current_actor), engine: AssessmentEngine = Depends(get_engine)
):
    return exam_payload(engine.publish_exam(actor, exam_id))


@router.post("/exams/{exam_id}/archive")
def api_archive_exam(
    exam_id: int, actor: Actor = Depends(get_current_actor), engine: AssessmentEngine = Depends(get_engine)
):
    return exam_payload(engine.archive_exam(actor, exam_id))


@router.post("/exams/{exam_id}/cancel")
def api_cancel_exam(
    exam_id: int, actor: Actor = Depends(get_current_actor), engine: AssessmentEngine = Depends(get_engine)
):
    return exam_payload(engine.cancel_exam(actor, exam_id))


# 2) ASSIGNMENT
@router.post("/exams/{exam_id}/assignments", status_code=201)
def api_assign(
    exam_id: int,
    payload: AssignIn = Body(...),
    actor: Actor = Depends(get_current_actor),
    engine: AssessmentEngine = Depends(get_engine),
):
    return assignment_payload(engine.assign(actor, exam_id, payload.student_id, payload.class_id))


@router.post("/exams/{exam_id}/assignments/class")
def api_assign_class(
    exam_id: int,
    payload: AssignClassIn = Body(...),
    actor: Actor = Depends(get_current_actor),
    engine: AssessmentEngine = Depends(get_engine),
):
    added = engine.assign_class(actor, exam_id, payload.class_id, payload.student_ids)
    return {"exam_id": exam_id, "class_id": payload.class_id, "newly_assigned": added}


@router.get("/exams/{exam_id}/assignments")
def api_list_assignments(
    exam_id: int, actor: Actor = Depends(get_current_actor), engine: AssessmentEngine = Depends(get_engine)
):
    return [assignment_payload(a) for a in engine.list_assignments(actor, exam_id)]


@router.delete("/exams/{exam_id}/assignments/{student_id}", status_code=204)
def api_unassign(
    exam_id: int,
    student_id: str,
    actor: Actor = Depends(get_current_actor),
    engine: AssessmentEngine = Depends(get_engine),
):
    engine.unassign(actor, exam_id, student_id)
    return Response(status_code=204)


@router.get("/exams/{exam_id}/eligibility")
def api_eligibility(
    exam_id: int,
    student_id: str = Query(...),
    actor: Actor = Depends(get_current_actor),
    engine: AssessmentEngine = Depends(get_engine),
):
    return {"exam_id": exam_id, "student_id": student_id, "eligible": engine.is_eligible(actor, exam_id, student_id)}


@router.get("/students/{student_id}/exams")
def api_student_exams(
    student_id: str, actor: Actor = Depends(get_current_actor), engine: AssessmentEngine = Depends(get_engine)
):
    return [exam_payload(e) for e in engine.list_exams_for_student(actor, student_id)]


# 3) RESULTS
@router.get("/exams/{exam_id}/attempts")
def api_exam_attempts(
    exam_id: int, actor: Actor = Depends(get_current_actor), engine: AssessmentEngine = Depends(get_engine)
):
    return [attempt_payload(a) for a in engine.list_assigned_attempts(actor, exam_id)]


@router.get("/exams/{exam_id}/analytics")
def api_exam_analytics(
    exam_id: int,
    refresh: bool = Query(True),
    actor: Actor = Depends(get_current_actor),
    engine: AssessmentEngine = Depends(get_engine),
):
    return engine.get_analytics(actor, exam_id, refresh=refresh).model_dump()
