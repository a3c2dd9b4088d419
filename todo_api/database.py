from functools import lru_cache
from typing import Generator
import logging

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import create_engine, Session, SQLModel

from todo_api import config
# Make sure to import models to register them with SQLModel.metadata
from todo_api.models import User, Task  # noqa: F401

logger = logging.getLogger(__name__)


def _unicode_lower(value):
    if isinstance(value, str):
        return value.lower()
    return value


def build_engine(database_url: str, echo: bool = False, **engine_kwargs) -> Engine:
    """
    Creates an engine whose calls are bounded by DATABASE_TIMEOUT_SECONDS.
    SQLite additionally gets foreign keys switched on so ON DELETE CASCADE holds,
    and a Unicode-aware lower() in place of its ASCII-only builtin.
    """
    if database_url.startswith("sqlite"):
        connect_args = engine_kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", config.DATABASE_TIMEOUT_SECONDS)
        engine = create_engine(database_url, echo=echo, connect_args=connect_args, **engine_kwargs)

        @event.listens_for(engine, "connect")
        def _configure_connection(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
            dbapi_connection.create_function("lower", 1, _unicode_lower, deterministic=True)

        return engine

    engine_kwargs.setdefault("pool_pre_ping", True)
    engine_kwargs.setdefault("pool_timeout", config.DATABASE_TIMEOUT_SECONDS)
    return create_engine(database_url, echo=echo, **engine_kwargs)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    if not config.DATABASE_URL:
        raise ValueError("DATABASE_URL environment variable not set for production/development.")
    # Log a redacted version for verification, not the whole URL
    logger.info("Connecting to database %s...", config.DATABASE_URL[:15])
    return build_engine(config.DATABASE_URL, echo=config.DATABASE_ECHO)


def create_db_and_tables(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)


def get_session() -> Generator[Session, None, None]:
    with Session(get_engine()) as session:
        yield session
