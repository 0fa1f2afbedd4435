"""Assessment engine: exam definition, scheduling, attempts, scoring and analytics."""

from .database import Store
from .engine import AssessmentEngine
from .permissions import Actor, Role

__all__ = ["AssessmentEngine", "Store", "Actor", "Role"]
