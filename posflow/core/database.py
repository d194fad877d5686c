"""
Database configuration and session management
"""

from typing import Iterator

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine
import structlog

from posflow.core.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()


def build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite connections are shared across threads"""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(url, echo=echo, future=True, connect_args=connect_args)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on"""
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)


def init_db(bind: Engine = engine) -> None:
    """Create all tables (development and tests; production uses Alembic)"""
    import posflow.models  # noqa: F401  registers every table on the metadata

    SQLModel.metadata.create_all(bind)
    logger.info("database_tables_created", url=str(bind.url))


def get_session() -> Iterator[Session]:
    """Dependency to get database session"""
    with Session(engine, expire_on_commit=False) as session:
        yield session
