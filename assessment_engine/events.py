"""Informational events handed to the notification component.

Delivery is fire-and-forget: a failing sink is logged and never breaks the
command that produced the event.
"""

import logging
from typing import Iterable, List, Optional, Protocol

logger = logging.getLogger(__name__)

ATTEMPT_COMPLETED = "attempt.completed"
EXAM_WINDOW_OPENED = "exam.scheduled-window-opened"
EXAM_WINDOW_CLOSING = "exam.scheduled-window-closing"


class EventSink(Protocol):
    def publish(self, name: str, payload: dict) -> None:
        ...


class LoggingEventSink:
    """Default sink: writes each event to the log."""

    def publish(self, name: str, payload: dict) -> None:
        logger.info("event %s %s", name, payload)


class EventBus:
    def __init__(self, sinks: Optional[Iterable[EventSink]] = None):
        self.sinks: List[EventSink] = list(sinks) if sinks is not None else [LoggingEventSink()]

    def emit(self, name: str, payload: dict) -> None:
        for sink in self.sinks:
            try:
                sink.publish(name, payload)
            except Exception:
                logger.exception("Event sink %r failed for %s", sink, name)
