import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import Session, SQLModel, create_engine

# Import all models to ensure they are registered with SQLModel metadata
from .models import Task, User  # noqa: F401

logger = logging.getLogger(__name__)


def _create_engine(database_url: str, echo: bool = False) -> Engine:
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )

    # Postgres and friends: pre-ping so stale pooled connections are replaced.
    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
    )


class Database:
    """Data-access handle owning the engine and the session factory.

    Built once per application, initialised at startup with `create_all()`
    and torn down at shutdown with `dispose()`.
    """

    def __init__(self, database_url: str, echo: bool = False) -> None:
        self.url = database_url
        self.engine = _create_engine(database_url, echo=echo)
        self._session_factory = sessionmaker(
            bind=self.engine,
            class_=Session,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    def create_all(self) -> None:
        """Create all database tables."""
        SQLModel.metadata.create_all(bind=self.engine)
        logger.info("Database ready (%s)", self.engine.url.render_as_string(hide_password=True))

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("Database connections closed")

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Get a database session (context manager style).

        Usage:
            with db.session() as session:
                # do something with session
        """
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()


def get_db(request: Request) -> Iterator[Session]:
    """Dependency yielding one session per request from the app's handle."""
    database: Database = request.app.state.db
    with database.session() as session:
        yield session
