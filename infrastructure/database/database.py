from __future__ import annotations

import os

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from config.settings import DATABASE_ECHO

# Base for models
Base = declarative_base()

_IN_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:"}


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, *, echo: bool = DATABASE_ECHO) -> Engine:
    """Create an engine; SQLite connections get foreign key enforcement."""
    kwargs = {"echo": echo}
    is_sqlite = url.startswith("sqlite")
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in _IN_MEMORY_URLS:
            # In-memory databases only live as long as their single connection.
            kwargs["poolclass"] = StaticPool

    created = create_engine(url, **kwargs)
    if is_sqlite:
        event.listen(created, "connect", _enable_sqlite_foreign_keys)
    return created


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind, class_=Session)


def _ensure_sqlite_directory(bind: Engine) -> None:
    if bind.url.get_backend_name() != "sqlite":
        return
    database = bind.url.database
    if not database or database == ":memory:":
        return
    directory = os.path.dirname(database)
    if directory:
        os.makedirs(directory, exist_ok=True)


# Ensure all model modules register with Base metadata
from infrastructure.database import models as _models  # noqa: E402,F401


def create_tables(bind: Engine) -> None:
    _ensure_sqlite_directory(bind)
    Base.metadata.create_all(bind)


def open_session(url: str) -> Session:
    """Session on ``url`` with the graph tables created if missing."""
    bind = build_engine(url)
    create_tables(bind)
    return build_session_factory(bind)()
