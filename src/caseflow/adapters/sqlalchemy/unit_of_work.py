"""SQLAlchemy-backed unit of work and engine lifecycle."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Any, Literal

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from caseflow.adapters.sqlalchemy.mappings import create_all_tables, start_mappers
from caseflow.adapters.sqlalchemy.repositories import (
    SqlAlchemyCaseRepository,
    SqlAlchemyImportLogRepository,
    SqlAlchemyNoteRepository,
)
from caseflow.config.storage import get_database_config
from caseflow.domain.ports.persistence import PersistenceError
from caseflow.domain.ports.unit_of_work import CaseRepositories, RepositoryCollection

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Connection, Engine

    from caseflow.config.storage import DatabaseConfig

log = getLogger(__name__)


class StartupError(RuntimeError):
    """The case store was used before ``startup()`` or configured twice."""


@dataclass(slots=True)
class _AdapterState:
    """Engine and session factory shared by every case unit of work."""

    engine: Engine | None = None
    _sessions: sessionmaker[Session] | None = None

    def bind(self, engine: Engine | None) -> None:
        if self.engine is not None and engine is not self.engine:
            self.engine.dispose()
        self.engine = engine
        self._sessions = None

    def sessions(self) -> sessionmaker[Session]:
        if self.engine is None:
            raise StartupError(
                "Case store not started; call startup() (or run through caseflow.app) "
                "before opening a unit of work."
            )
        if self._sessions is None:
            # loaded cases stay readable after the batch commit
            self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)
        return self._sessions


_STATE = _AdapterState()


def _sqlite_on_connect(dbapi_connection: Any, connection_record: Any) -> None:
    _ = connection_record
    # let SQLAlchemy emit BEGIN itself so SAVEPOINT works with pysqlite
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


def _sqlite_on_begin(connection: Connection) -> None:
    connection.exec_driver_sql("BEGIN")


def configure_sqlite_engine(engine: Engine) -> None:
    """Install the connection hooks SQLite needs for nested transactions."""

    if engine.dialect.name != "sqlite":
        return
    if event.contains(engine, "connect", _sqlite_on_connect):
        return
    event.listen(engine, "connect", _sqlite_on_connect)
    event.listen(engine, "begin", _sqlite_on_begin)


def build_engine(config: DatabaseConfig) -> Engine:
    if config.is_sqlite:
        connect_args: dict[str, object] = {"timeout": config.timeout_seconds}
    else:
        connect_args = {"connect_timeout": int(config.timeout_seconds)}
    return create_engine(config.uri, future=True, connect_args=connect_args)


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Open the case store: build or adopt an engine, map the model, create tables.

    Without ``engine`` the URI comes from ``database_uri`` or ``DATABASE_URI``,
    falling back to the SQLite file in the caseflow data directory.
    """

    if _STATE.engine is not None and not force:
        raise StartupError("Case store already started; pass force=True to switch engines.")

    if engine is None:
        engine = build_engine(get_database_config(uri=database_uri))

    configure_sqlite_engine(engine)
    start_mappers()
    create_all_tables(engine)
    _STATE.bind(engine)
    log.info("Case store ready on %s", engine.url.render_as_string(hide_password=True))


def configured_engine() -> Engine | None:
    return _STATE.engine


def is_started() -> bool:
    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the engine; the next unit of work needs a fresh ``startup()``."""

    _STATE.bind(None)


class BaseSqlAlchemyUnitOfWork[TRepositories: RepositoryCollection](ABC):
    """One session per ``with`` block.

    Nothing is committed implicitly: leaving the block rolls back whatever
    the last ``commit()`` did not cover, then closes the session.
    """

    def __init__(self) -> None:
        self.session_factory: sessionmaker[Session] = _STATE.sessions()
        self._session: Session | None = None
        self._repositories: TRepositories | None = None

    @abstractmethod
    def _build_repositories(self, session: Session) -> TRepositories: ...

    def __enter__(self) -> BaseSqlAlchemyUnitOfWork[TRepositories]:
        if self._session is not None:
            raise StartupError("Unit of work is already open")
        self._session = self.session_factory()
        self._repositories = self._build_repositories(self._session)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        session = self.session
        try:
            session.rollback()
        finally:
            session.close()
            self._session = None
            self._repositories = None
        return False

    def commit(self) -> None:
        """Commit the open transaction; storage failures surface as ``PersistenceError``."""

        session = self.session
        try:
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise PersistenceError(f"Commit failed: {exc}") from exc

    def rollback(self) -> None:
        self.session.rollback()

    @property
    def repositories(self) -> TRepositories:
        if self._repositories is None:
            raise StartupError("Unit of work is not open; use it as a context manager")
        return self._repositories

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work is not open; use it as a context manager")
        return self._session


class SqlAlchemyCaseUnitOfWork(BaseSqlAlchemyUnitOfWork[CaseRepositories]):
    """Unit of work exposing the case, import-log and note repositories."""

    def _build_repositories(self, session: Session) -> CaseRepositories:
        return CaseRepositories(
            cases=SqlAlchemyCaseRepository(session),
            import_logs=SqlAlchemyImportLogRepository(session),
            notes=SqlAlchemyNoteRepository(session),
        )


if TYPE_CHECKING:
    from caseflow.domain.ports.unit_of_work import CaseUnitOfWork

    _uow_check: CaseUnitOfWork = SqlAlchemyCaseUnitOfWork()
