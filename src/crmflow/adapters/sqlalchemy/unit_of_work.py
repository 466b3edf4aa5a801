"""Session lifecycle for the SQLAlchemy adapter.

``startup`` binds the module to one engine; every ``SqlAlchemyUnitOfWork``
created afterwards opens its own session on that engine and exposes the
CRM repositories for the duration of a ``with`` block.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Literal

from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from crmflow.adapters.sqlalchemy.mappings import create_all_tables, start_mappers
from crmflow.adapters.sqlalchemy.migrations import upgrade_head
from crmflow.adapters.sqlalchemy.repositories import (
    SqlAlchemyActivityRepository,
    SqlAlchemyContactRepository,
    SqlAlchemyDealRepository,
    SqlAlchemySourceEventRepository,
    SqlAlchemyTaskRepository,
)
from crmflow.config import get_database_config
from crmflow.domain.model import DuplicateEntityError
from crmflow.domain.ports.unit_of_work import CrmRepositories

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine

log = getLogger(__name__)


class StartupError(RuntimeError):
    """Raised when a SQLAlchemy unit of work is used before initialisation."""


_engine: Engine | None = None
_sessions: sessionmaker[Session] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection: object, _record: object) -> None:
    cursor = dbapi_connection.cursor()  # type: ignore[attr-defined]
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


def _create_engine() -> Engine:
    database = get_database_config()
    return create_engine(database.uri, echo=database.echo, future=True)


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
    migrate: bool = True,
) -> None:
    """Bind the adapter to an engine and bring its schema up to date.

    With ``migrate=False`` the schema is created straight from the table
    metadata instead of running the Alembic revisions.
    """

    global _engine, _sessions  # noqa: PLW0603

    if _engine is not None and not force:
        raise StartupError(
            "SQLAlchemy adapter already initialised. Pass force=True to reconfigure."
        )

    if engine is None:
        engine = create_engine(database_uri, future=True) if database_uri else _create_engine()
    if engine.dialect.name == "sqlite" and not event.contains(
        engine, "connect", _enable_sqlite_foreign_keys
    ):
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    start_mappers()
    if migrate:
        upgrade_head(engine=engine)
    else:
        create_all_tables(engine)

    _engine = engine
    _sessions = sessionmaker(bind=engine, expire_on_commit=False)
    log.debug("SQLAlchemy adapter bound to %s", engine.url.render_as_string(hide_password=True))


def configured_engine() -> Engine | None:
    return _engine


def is_started() -> bool:
    return _engine is not None


def shutdown() -> None:
    """Dispose the bound engine; ``startup`` may be called again afterwards."""

    global _engine, _sessions  # noqa: PLW0603

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _sessions = None


class SqlAlchemyUnitOfWork:
    """One session, one transaction, and the CRM repositories bound to it."""

    def __init__(self) -> None:
        if _sessions is None:
            raise StartupError(
                "SQLAlchemy adapter not initialised. Call crmflow.adapters.sqlalchemy."
                "unit_of_work.startup() before requesting a unit of work."
            )
        self._sessions = _sessions
        self._session: Session | None = None
        self._repositories: CrmRepositories | None = None

    def _build_repositories(self, session: Session) -> CrmRepositories:
        return CrmRepositories(
            source_events=SqlAlchemySourceEventRepository(session),
            activities=SqlAlchemyActivityRepository(session),
            contacts=SqlAlchemyContactRepository(session),
            tasks=SqlAlchemyTaskRepository(session),
            deals=SqlAlchemyDealRepository(session),
        )

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        if self._session is not None:
            raise StartupError("Unit of work session already initialised")
        self._session = self._sessions()
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
            if exc_type is not None:
                session.rollback()
        finally:
            session.close()
            self._session = None
            self._repositories = None
        return False

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work session not initialised")
        return self._session

    @property
    def repositories(self) -> CrmRepositories:
        if self._repositories is None:
            raise StartupError("Unit of work session not initialised")
        return self._repositories

    def commit(self) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            log.debug("Commit rejected by a constraint: %s", exc.orig)
            if not _is_unique_violation(exc):
                raise
            raise DuplicateEntityError(str(exc.orig)) from exc

    def rollback(self) -> None:
        self.session.rollback()


_UNIQUE_VIOLATION_SQLSTATE = "23505"


def _is_unique_violation(exc: IntegrityError) -> bool:
    """Tell unique-key clashes apart from NOT NULL, foreign key and check failures."""

    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate is not None:
        return sqlstate == _UNIQUE_VIOLATION_SQLSTATE
    message = str(orig).lower()
    return "unique constraint" in message or "duplicate" in message


if TYPE_CHECKING:
    from crmflow.domain.ports.unit_of_work import CrmUnitOfWork

    _uow_check: CrmUnitOfWork = SqlAlchemyUnitOfWork()
