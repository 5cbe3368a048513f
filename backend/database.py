"""Database setup and session management."""

import logging
from functools import lru_cache
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, event, inspect
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from config import settings

logger = logging.getLogger(__name__)

BACKEND_DIR = Path(__file__).resolve().parent


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def enable_sqlite_foreign_keys(engine) -> None:
    """Register a ``connect`` listener that turns on SQLite foreign keys.

    SQLite ignores ``ON DELETE CASCADE`` unless ``PRAGMA foreign_keys``
    is set on every connection.
    """

    @event.listens_for(engine, "connect")
    def _set_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@lru_cache
def get_engine():
    """Get or create the database engine (cached)."""
    connect_args = {}
    database_url = settings.DATABASE_URL

    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    engine = create_engine(
        database_url,
        connect_args=connect_args,
        echo=False,
    )
    if database_url.startswith("sqlite"):
        enable_sqlite_foreign_keys(engine)
    return engine


def get_session_local():
    """Get a sessionmaker bound to the engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def alembic_config() -> Config:
    """Alembic config pointing at this backend's migration scripts."""
    cfg = Config(str(BACKEND_DIR / "alembic.ini"))
    cfg.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    return cfg


def init_db(engine=None) -> None:
    """Bring the schema up to the latest Alembic revision.

    A database created before migrations existed (tables present, no
    ``alembic_version``) is stamped at head instead of re-created.
    """
    engine = engine or get_engine()
    cfg = alembic_config()

    with engine.begin() as connection:
        cfg.attributes["connection"] = connection
        tables = set(inspect(connection).get_table_names())
        if "users" in tables and "alembic_version" not in tables:
            logger.info("Stamping existing schema at head")
            command.stamp(cfg, "head")
        else:
            command.upgrade(cfg, "head")
    logger.info("Database schema ready")


def get_db():
    """Dependency that provides a database session.

    Transaction conventions:
    - Default: services ``flush()``, API layer ``commit()``
    - Exceptions that commit internally:
      - ``SyncService.sync()``: per-item savepoints, commits the whole run
      - ``ConnectionService``: commits each lifecycle transition with its log entry
    """
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
