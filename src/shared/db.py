"""Database plumbing — declarative base, engine/session wiring, schema setup.

Every context maps its records onto the single ``Base`` below. Services never
create engines themselves; they open a unit of work on the configured session
factory, which is what tests swap out for a throwaway database.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from uuid import uuid4

import structlog
from sqlalchemy import DateTime, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.types import TypeDecorator

from shared.config import get_settings

logger = structlog.get_logger(__name__)

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


class Base(DeclarativeBase):
    pass


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always round-trips as UTC.

    SQLite drops tzinfo on storage; values are normalised on the way in and
    re-tagged on the way out so comparisons with ``datetime.now(UTC)`` work on
    every backend.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ARG002
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):  # noqa: ARG002
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


def _enable_sqlite_immediate_transactions(engine: Engine) -> None:
    """Take SQLite's write lock when a transaction starts.

    pysqlite's own transaction handling is switched off so that SQLAlchemy
    emits BEGIN itself. BEGIN IMMEDIATE makes concurrent checkouts queue on the
    busy timeout instead of failing with "database is locked" when a reader
    tries to upgrade to a writer.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(connection):
        connection.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(database_uri: str, echo: bool = False) -> Engine:
    kwargs = {"echo": echo}
    if database_uri.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}

    engine = create_engine(database_uri, **kwargs)
    if engine.dialect.name == "sqlite":
        _enable_sqlite_immediate_transactions(engine)
    return engine


def configure(database_uri: str | None = None, echo: bool | None = None) -> sessionmaker[Session]:
    """(Re)bind the module-level engine and session factory."""
    global _engine, _session_factory

    settings = get_settings()
    uri = database_uri or settings.database_uri
    if _engine is not None:
        _engine.dispose()

    _engine = create_db_engine(uri, echo=settings.database_echo if echo is None else echo)
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)
    logger.info("Database configured", dialect=_engine.dialect.name)
    return _session_factory


def get_engine() -> Engine:
    if _engine is None:
        configure()
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        configure()
    return _session_factory


def dispose() -> None:
    """Release pooled connections and forget the configured engine."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


@contextmanager
def unit_of_work(session_factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """One session, one transaction: commit on success, roll back on any error."""
    factory = session_factory or get_session_factory()
    with factory.begin() as session:
        yield session


def _import_models() -> None:
    """Import every mapped module so ``Base.metadata`` is complete."""
    import catalogue.product.product  # noqa: F401
    import fulfillment.shipping.method  # noqa: F401
    import identity.customer.address  # noqa: F401
    import ordering.cart.cart  # noqa: F401
    import ordering.order.disputes  # noqa: F401
    import ordering.order.order  # noqa: F401
    import promotions.discount.code  # noqa: F401


def setup_db(engine: Engine | None = None) -> None:
    """Create database schema"""
    _import_models()
    Base.metadata.create_all(engine or get_engine())


def drop_db(engine: Engine | None = None) -> None:
    """Drop database schema"""
    _import_models()
    Base.metadata.drop_all(engine or get_engine())
