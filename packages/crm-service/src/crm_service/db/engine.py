"""Database engine creation and connection health."""

from __future__ import annotations

import asyncio

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine


def create_engine(url: str, **kwargs) -> AsyncEngine:
    """Create async SQLAlchemy engine backed by a connection pool."""
    options = dict(
        echo=kwargs.get("echo", False),
        pool_pre_ping=True,
    )
    if not url.startswith("sqlite") or ":memory:" not in url:
        options.update(
            pool_size=kwargs.get("pool_size", 10),
            max_overflow=kwargs.get("max_overflow", 5),
            pool_recycle=kwargs.get("pool_recycle", 1800),
        )
    engine = create_async_engine(url, **options)
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _install_sqlite_session_settings)
    return engine


def _install_sqlite_session_settings(dbapi_connection, connection_record) -> None:
    """Give each SQLite connection its own set_config/current_setting pair.

    Settings live on the connection, like PostgreSQL session settings, so a
    pooled connection keeps whatever tenant was last bound to it until the
    next directive overwrites it.
    """
    settings: dict[str, str] = {}

    def set_config(name, value, is_local):
        settings[name] = value
        return value

    def current_setting(name, missing_ok=False):
        if name not in settings and not missing_ok:
            raise KeyError(f"unrecognized configuration parameter {name}")
        return settings.get(name)

    dbapi_connection.create_function("set_config", 3, set_config)
    dbapi_connection.create_function("current_setting", 1, current_setting)
    dbapi_connection.create_function("current_setting", 2, current_setting)

    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async def ping(engine: AsyncEngine, timeout: float = 5.0) -> bool:
    """Return True when a pooled connection answers within *timeout* seconds."""

    async def _probe() -> None:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    try:
        await asyncio.wait_for(_probe(), timeout=timeout)
    except (asyncio.TimeoutError, OSError, SQLAlchemyError):
        return False
    return True
