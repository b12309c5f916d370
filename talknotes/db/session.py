from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from talknotes.db.models import Base

logger = logging.getLogger(__name__)


class Database:
    """Explicitly constructed persistence handle.

    The process entry point creates one, hands it to every component that
    needs the store, and disposes it on shutdown.  There is no module-level
    engine.
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        connect_args: dict[str, object] = {}
        if url.startswith("sqlite"):
            # Background jobs run on worker threads.
            connect_args["check_same_thread"] = False
        self.engine = create_engine(url, echo=echo, connect_args=connect_args)
        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self._factory = sessionmaker(self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Yield a session inside one atomic transaction.

        Commits when the block exits normally; rolls everything back and
        re-raises otherwise.
        """
        with self._factory.begin() as session:
            yield session

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a session for reads. Nothing is committed."""
        with self._factory() as session:
            yield session

    def dispose(self) -> None:
        logger.info("Disposing database engine for %s", self.engine.url.render_as_string(hide_password=True))
        self.engine.dispose()


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:  # type: ignore[no-untyped-def]
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
