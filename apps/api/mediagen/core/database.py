"""Database engine and transaction scope."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from mediagen.repositories.tables import Base


def _configure_sqlite(engine: Engine) -> None:
    # pysqlite's implicit transactions do not honor SAVEPOINT or row locks; take
    # the write lock up front so concurrent read-then-write sequences serialize.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # noqa: ARG001
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """Owns the engine and hands out transactional sessions."""

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self.url = url
        is_sqlite = url.startswith("sqlite")
        connect_args = {"check_same_thread": False, "timeout": 30} if is_sqlite else {}
        self.engine = create_engine(url, echo=echo, connect_args=connect_args, pool_pre_ping=not is_sqlite)
        if is_sqlite:
            _configure_sqlite(self.engine)
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def transaction(self, session: Session | None = None) -> Iterator[Session]:
        """Yield ``session`` unchanged, or a new session committed on success.

        Passing an outer session lets several operations share one atomic unit;
        the outer owner then decides commit or rollback.
        """
        if session is not None:
            yield session
            return

        with self.session_factory.begin() as new_session:
            yield new_session
