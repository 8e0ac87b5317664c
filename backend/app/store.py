"""Explicitly constructed database client shared by the pipeline stages."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .core.config import Settings
from .db import build_engine, create_session_factory, init_db


class StoreUnavailableError(RuntimeError):
    """Raised when the backing database cannot be reached."""


class StoreClient:
    """Own the engine and session factory for one pipeline process.

    Call :meth:`open` before use and :meth:`close` afterwards (or use the
    client as a context manager). Nothing is connected at import time.
    """

    def __init__(self, url: str, *, echo: bool = False, create_schema: bool = True) -> None:
        self.url = url
        self.echo = echo
        self.create_schema = create_schema
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "StoreClient":
        return cls(settings.resolved_database_url, echo=settings.debug)

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise StoreUnavailableError("Store client is not open")
        return self._engine

    def open(self) -> "StoreClient":
        if self._engine is not None:
            return self
        engine = build_engine(self.url, echo=self.echo)
        try:
            if self.create_schema:
                init_db(engine)
        except SQLAlchemyError as exc:
            engine.dispose()
            raise StoreUnavailableError(f"Failed to initialise store: {exc}") from exc
        self._engine = engine
        self._session_factory = create_session_factory(engine)
        return self

    def health_check(self) -> bool:
        """Return True when a trivial round-trip to the database succeeds."""

        if self._engine is None:
            logger.error("Store health check failed: client is not open")
            return False
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.error("Store health check failed: {}", exc)
            return False
        return True

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        if self._session_factory is None:
            raise StoreUnavailableError("Store client is not open")
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_factory = None

    def __enter__(self) -> "StoreClient":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["StoreClient", "StoreUnavailableError"]
