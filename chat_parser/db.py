import logging
import threading
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from chat_parser.config import load_settings
from chat_parser.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Database:
    """
    Lazily-connected store handle.

    The engine is created once, on first use, under a lock; tables and indexes
    are created at the same moment. Request handlers receive the instance
    rather than reaching for module globals.
    """

    def __init__(self, url: Optional[str], echo: bool = False):
        self.url = url
        self.echo = echo
        self._engine: Optional[Engine] = None
        self._lock = threading.Lock()

    @property
    def configured(self) -> bool:
        return bool(self.url)

    @property
    def engine(self) -> Engine:
        if self._engine is not None:
            return self._engine

        with self._lock:
            if self._engine is None:
                if not self.url:
                    raise ConfigurationError(
                        "Database connection string not configured"
                    )
                engine = create_engine(self.url, echo=self.echo, **self._engine_options())
                SQLModel.metadata.create_all(engine)
                logger.info("Connected to database and ensured chat_messages schema")
                self._engine = engine
        return self._engine

    def _engine_options(self) -> dict:
        if not self.url.startswith("sqlite"):
            return {"pool_pre_ping": True}
        options: dict = {"connect_args": {"check_same_thread": False}}
        if self.url in ("sqlite://", "sqlite:///:memory:"):
            # A single shared connection, otherwise each session sees an empty db.
            options["poolclass"] = StaticPool
        return options

    def get_session(self) -> Session:
        """Provide a new SQLModel session."""
        return Session(self.engine)

    def close(self):
        with self._lock:
            if self._engine is not None:
                self._engine.dispose()
                self._engine = None
                logger.info("Database connection closed")


_default_database: Optional[Database] = None
_default_lock = threading.Lock()


def get_database() -> Database:
    """Process-wide Database built from the environment."""
    global _default_database
    with _default_lock:
        if _default_database is None:
            _default_database = Database(load_settings().database_url)
        return _default_database
