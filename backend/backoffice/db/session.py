from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from backoffice.core.config import settings


def _enable_sqlite_savepoints(engine) -> None:
    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT; emit it ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(uri: str = None, **kwargs):
    """Create the async engine; sqlite:/// URIs are upgraded to aiosqlite."""
    uri = uri or settings.DATABASE_URI
    if uri.startswith("sqlite:///"):
        uri = uri.replace("sqlite:///", "sqlite+aiosqlite:///")
    engine = create_async_engine(uri, echo=settings.SQL_ECHO, future=True, **kwargs)
    if uri.startswith("sqlite"):
        _enable_sqlite_savepoints(engine)
    return engine


engine = build_engine()

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)
