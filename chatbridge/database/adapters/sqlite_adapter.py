"""
SQLite Database Adapter

Async SQLite through aiosqlite. Used for development, single-node deployments and the test
suite.
"""

from typing import Any

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel

from chatbridge.database.adapter import SessionFactory
from chatbridge.database.adapters._session import build_session_factory


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SQLiteAdapter:
    """SQLite adapter for SQLModel/SQLAlchemy async connections."""

    async def create_engine(self, connection_string: str, **kwargs: Any) -> AsyncEngine:
        """
        Create SQLite async engine with aiosqlite driver.

        Plain ``sqlite://`` URLs are upgraded to ``sqlite+aiosqlite://``.

        Raises:
            ValueError: If connection string is not a SQLite URL
            ConnectionError: If unable to create engine
        """
        if not connection_string.startswith("sqlite+aiosqlite://"):
            if connection_string.startswith("sqlite://"):
                connection_string = connection_string.replace(
                    "sqlite://", "sqlite+aiosqlite://", 1
                )
            else:
                raise ValueError(
                    "SQLite connection string must use sqlite+aiosqlite:// scheme"
                )

        default_config: dict[str, Any] = {
            "echo": False,
            "connect_args": {"timeout": 30},
        }
        default_config.update(kwargs)

        try:
            engine = create_async_engine(connection_string, **default_config)
        except Exception as e:
            raise ConnectionError(f"Failed to create SQLite engine: {e}") from e

        event.listen(engine.sync_engine, "connect", _enable_foreign_keys)
        return engine

    def create_session_factory(self, engine: AsyncEngine) -> SessionFactory:
        return build_session_factory(engine)

    async def initialize_schema(self, engine: AsyncEngine) -> None:
        """
        Create every table registered on ``SQLModel.metadata``.

        Raises:
            RuntimeError: If schema creation fails
        """
        try:
            async with engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
        except Exception as e:
            raise RuntimeError(f"Failed to initialize SQLite schema: {e}") from e

    async def health_check(self, engine: AsyncEngine) -> bool:
        try:
            async with engine.connect() as conn:
                result = await conn.execute(text("SELECT 1"))
                return result.scalar() == 1
        except Exception:
            return False

    async def get_connection_info(self, engine: AsyncEngine) -> dict[str, Any]:
        try:
            async with engine.connect() as conn:
                version = (await conn.execute(text("SELECT sqlite_version()"))).scalar()
                database_info = (
                    await conn.execute(text("PRAGMA database_list"))
                ).fetchall()
                return {
                    "driver": "aiosqlite",
                    "database": "sqlite",
                    "version": version,
                    "database_file": database_info[0][2] if database_info else "memory",
                    "healthy": True,
                }
        except Exception as e:
            return {
                "driver": "aiosqlite",
                "database": "sqlite",
                "error": str(e),
                "healthy": False,
            }
