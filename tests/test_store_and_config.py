import logging

import pytest

from assessment_engine.config import Settings
from assessment_engine.database import Store
from assessment_engine.locks import KeyedLocks
from assessment_engine.logging_config import configure_logging
from assessment_engine.models import Exam

from conftest import WINDOW_END, WINDOW_START, make_definition


def test_store_must_be_connected():
    store = Store("sqlite://")
    assert not store.is_connected
    with pytest.raises(RuntimeError):
        store.session()

    with store:
        assert store.is_connected
        with store.session() as session:
            assert session.bind is store.engine
    assert not store.is_connected


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("ASSESSMENT_DATABASE_URL", "sqlite:///./other.db")
    monkeypatch.setenv("ASSESSMENT_WINDOW_CLOSING_LEAD_MINUTES", "30")
    settings = Settings()
    assert settings.database_url == "sqlite:///./other.db"
    assert settings.window_closing_lead_minutes == 30
    assert settings.default_timezone == "UTC"


def test_configure_logging_returns_package_logger():
    logger = configure_logging("debug")
    assert logger.name == "assessment_engine"
    assert isinstance(logger, logging.Logger)


def test_keyed_locks_are_released():
    locks = KeyedLocks()
    with locks.hold(("attempt", 1)):
        with locks.hold(("attempt", 2)):
            assert len(locks) == 2
    assert len(locks) == 0


def test_naive_utc_datetimes_survive_a_round_trip(store, engine, teacher):
    exam = engine.create_exam(teacher, make_definition())

    with store.session() as session:
        stored = session.get(Exam, exam.id)
        assert (stored.start_time, stored.end_time) == (WINDOW_START, WINDOW_END)
        assert stored.start_time.tzinfo is None
        assert stored.created_at.tzinfo is None
