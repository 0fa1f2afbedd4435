"""Storage handle for the engine.

The host process constructs a :class:`Store`, connects it, hands it to the
engine and closes it on shutdown. The engine itself never opens or disposes
database connections.
"""

import logging
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

logger = logging.getLogger(__name__)


class Store:
    """Explicitly constructed database handle with a connect/close lifecycle."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self._engine: Optional[Engine] = None

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Store is not connected; call connect() first")
        return self._engine

    def connect(self) -> "Store":
        """Create the SQLAlchemy engine and the schema. Safe to call twice."""
        if self._engine is not None:
            return self

        kwargs = {"echo": self.echo}
        if self.url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in self.url or self.url in ("sqlite://", "sqlite:///"):
                # All connections must share the same in-memory database
                kwargs["poolclass"] = StaticPool

        self._engine = create_engine(self.url, **kwargs)
        SQLModel.metadata.create_all(self._engine)
        logger.info("Store connected: %s", self._engine.url.render_as_string(hide_password=True))
        return self

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        logger.info("Store closed")

    def session(self) -> Session:
        """Open a new session.

        Objects stay readable after commit so they can be returned to callers
        once the session is closed.
        """
        return Session(self.engine, expire_on_commit=False)

    def __enter__(self) -> "Store":
        return self.connect()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
