"""Shared FastAPI dependencies for engine access and the acting subject."""

from typing import Optional

from fastapi import Header, HTTPException, Request

from .engine import AssessmentEngine
from .permissions import Actor, Role


def get_engine(request: Request) -> AssessmentEngine:
    """Return the engine the host process attached to the app."""
    return request.app.state.engine


def get_current_actor(
    x_subject_id: Optional[str] = Header(default=None),
    x_subject_role: Optional[str] = Header(default=None),
) -> Actor:
    """The identity component upstream sets these headers after verifying the caller."""
    if not x_subject_id or not x_subject_role:
        raise HTTPException(status_code=401, detail="Missing subject identity")
    try:
        role = Role(x_subject_role.lower())
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Unknown role '{x_subject_role}'")
    return Actor(subject_id=x_subject_id, role=role)
