from datetime import datetime, timedelta

import pytest

from assessment_engine.config import Settings
from assessment_engine.database import Store
from assessment_engine.engine import AssessmentEngine
from assessment_engine.permissions import Actor, Role

# ============================================================================
# TIME
# ============================================================================

WINDOW_START = datetime(2030, 1, 1, 9, 0)
WINDOW_END = datetime(2030, 1, 1, 12, 0)


class FakeClock:
    """Controllable clock; tests move time forward explicitly."""

    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def set(self, now: datetime) -> None:
        self.current = now

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class RecordingSink:
    def __init__(self):
        self.events = []

    def publish(self, name, payload):
        self.events.append((name, payload))

    def names(self):
        return [name for name, _ in self.events]


# ============================================================================
# IN-MEMORY STORE AND ENGINE
# ============================================================================


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", window_closing_lead_minutes=15)


@pytest.fixture
def store():
    """Fresh in-memory database per test."""
    store = Store("sqlite://").connect()
    yield store
    store.close()


@pytest.fixture
def clock():
    return FakeClock(WINDOW_START + timedelta(minutes=10))


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def engine(store, sink, clock, settings):
    return AssessmentEngine(store, sinks=[sink], clock=clock, settings=settings)


@pytest.fixture
def teacher():
    return Actor("teacher-1", Role.TEACHER)


@pytest.fixture
def other_teacher():
    return Actor("teacher-2", Role.TEACHER)


@pytest.fixture
def admin():
    return Actor("admin-1", Role.ADMIN)


@pytest.fixture
def student():
    return Actor("student-1", Role.STUDENT)


@pytest.fixture
def other_student():
    return Actor("student-2", Role.STUDENT)


# ============================================================================
# SAMPLE DEFINITIONS
# ============================================================================


def mcq(prompt="What is 2 + 2?", correct="4", wrong=("3", "5"), points=2):
    options = [{"text": correct, "is_correct": True}] + [{"text": w} for w in wrong]
    return {"type": "multiple_choice", "prompt": prompt, "options": options, "points": points}


def sample_questions():
    """Five questions of mixed types worth 10 points in total."""
    return [
        mcq(),
        {
            "type": "true_false",
            "prompt": "The earth is flat.",
            "options": [{"text": "True"}, {"text": "False", "is_correct": True}],
            "points": 1,
            "explanation": "It is an oblate spheroid.",
        },
        {"type": "short_answer", "prompt": "Capital of France?", "correct_answer": "Paris", "points": 2},
        {
            "type": "matching",
            "prompt": "Match each country to its capital.",
            "options": [
                {"text": "France", "match": "Paris"},
                {"text": "Japan", "match": "Tokyo"},
            ],
            "points": 3,
        },
        {"type": "essay", "prompt": "Explain photosynthesis.", "points": 2},
    ]


def make_definition(questions=None, settings=None, **overrides):
    definition = {
        "title": "Unit 1 Quiz",
        "subject": "General Science",
        "grade": "9",
        "questions": sample_questions() if questions is None else questions,
        "settings": settings or {"max_attempts": 1},
        "schedule": {"start": WINDOW_START.isoformat(), "end": WINDOW_END.isoformat()},
    }
    definition.update(overrides)
    return definition


@pytest.fixture
def published_exam(engine, teacher, student):
    """Build, publish and assign an exam; returns the exam and its question ids in order."""

    def _build(questions=None, settings=None, students=(student,), **overrides):
        exam = engine.create_exam(teacher, make_definition(questions, settings, **overrides))
        engine.publish_exam(teacher, exam.id)
        for s in students:
            engine.assign(teacher, exam.id, s.subject_id)
        question_ids = [q.id for q, _ in engine.get_questions(teacher, exam.id)]
        return exam, question_ids

    return _build
