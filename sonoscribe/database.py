import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sonoscribe.config import settings
from sonoscribe.models import Base

logger = logging.getLogger(__name__)

MEMORY_URL = "sqlite://"


def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


def build_engine(url: str):
    """SQLite engine for the record store.

    An in-memory URL gets a single shared connection so every session sees
    the same database; file URLs get WAL pragmas on connect.
    """
    if url == MEMORY_URL:
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    engine = create_engine(
        url,
        connect_args={"check_same_thread": False},
        echo=False,
        pool_size=5,
        pool_recycle=300,
        pool_pre_ping=True,
    )
    event.listen(engine, "connect", _set_sqlite_pragma)
    return engine


def build_session_factory(engine):
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


engine = build_engine(settings.sqlite_url)

SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


def init_db():
    settings.sqlite_db_path.parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(engine)
    logger.info(
        "Database initialized at %s (%s)",
        settings.sqlite_db_path, ", ".join(sorted(Base.metadata.tables)),
    )


@contextmanager
def get_db():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
