"""Attempt lifecycle endpoints for students, plus grading for staff."""

from typing import Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, Field

from ..deps import get_current_actor, get_engine
from ..engine import AssessmentEngine
from ..permissions import Actor
from .serializers import answer_payload, attempt_payload

router = APIRouter()


class StartIn(BaseModel):
    password: Optional[str] = None


class AnswerIn(BaseModel):
    question_id: int
    answer: Optional[str] = None
    time_spent: int = Field(default=0, ge=0)


class GradeIn(BaseModel):
    points: int
    feedback: Optional[str] = None
    is_correct: Optional[bool] = None


# START EXAM + ATTEMPT TRACKING
@router.post("/exams/{exam_id}/attempts", status_code=201)
def api_start_attempt(
    exam_id: int,
    payload: Optional[StartIn] = Body(default=None),
    actor: Actor = Depends(get_current_actor),
    engine: AssessmentEngine = Depends(get_engine),
):
    return attempt_payload(engine.start_attempt(actor, exam_id, payload.password if payload else None))


@router.get("/exams/{exam_id}/attempts/mine")
def api_my_attempts(
    exam_id: int, actor: Actor = Depends(get_current_actor), engine: AssessmentEngine = Depends(get_engine)
):
    return [attempt_payload(a) for a in engine.list_my_attempts(actor, exam_id)]


@router.get("/attempts/{attempt_id}")
def api_get_attempt(
    attempt_id: int, actor: Actor = Depends(get_current_actor), engine: AssessmentEngine = Depends(get_engine)
):
    return attempt_payload(engine.get_attempt(actor, attempt_id))


@router.get("/attempts/{attempt_id}/paper")
def api_attempt_paper(
    attempt_id: int, actor: Actor = Depends(get_current_actor), engine: AssessmentEngine = Depends(get_engine)
):
    return engine.get_attempt_paper(actor, attempt_id)


@router.get("/attempts/{attempt_id}/answers")
def api_list_answers(
    attempt_id: int, actor: Actor = Depends(get_current_actor), engine: AssessmentEngine = Depends(get_engine)
):
    return [answer_payload(a) for a in engine.list_answers(actor, attempt_id)]


# SUBMIT ANSWERS
@router.post("/attempts/{attempt_id}/answers")
def api_submit_answer(
    attempt_id: int,
    payload: AnswerIn = Body(...),
    actor: Actor = Depends(get_current_actor),
    engine: AssessmentEngine = Depends(get_engine),
):
    answer = engine.submit_answer(actor, attempt_id, payload.question_id, payload.answer, payload.time_spent)
    # Correctness stays hidden until the attempt is reviewed
    return {"question_id": answer.question_id, "saved_at": answer.answered_at.isoformat()}


@router.post("/attempts/{attempt_id}/complete")
def api_complete_attempt(
    attempt_id: int, actor: Actor = Depends(get_current_actor), engine: AssessmentEngine = Depends(get_engine)
):
    return attempt_payload(engine.complete_attempt(actor, attempt_id))


@router.post("/attempts/{attempt_id}/abandon")
def api_abandon_attempt(
    attempt_id: int, actor: Actor = Depends(get_current_actor), engine: AssessmentEngine = Depends(get_engine)
):
    return attempt_payload(engine.abandon_attempt(actor, attempt_id))


@router.get("/attempts/{attempt_id}/review")
def api_review_attempt(
    attempt_id: int, actor: Actor = Depends(get_current_actor), engine: AssessmentEngine = Depends(get_engine)
):
    return engine.review_attempt(actor, attempt_id)


# MANUAL GRADING
@router.put("/attempts/{attempt_id}/answers/{question_id}/grade")
def api_regrade_answer(
    attempt_id: int,
    question_id: int,
    payload: GradeIn = Body(...),
    actor: Actor = Depends(get_current_actor),
    engine: AssessmentEngine = Depends(get_engine),
):
    answer = engine.regrade_answer(
        actor, attempt_id, question_id, payload.points, payload.feedback, payload.is_correct
    )
    return answer_payload(answer)
