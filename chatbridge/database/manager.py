"""
Database lifecycle management.

Picks the adapter from the URL scheme, owns the engine and exposes the session factory used by
the stores.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine

from chatbridge.core.logging.logger import get_logger
from chatbridge.database.adapter import DatabaseAdapter, SessionFactory
from chatbridge.database.adapters import PostgreSQLAdapter, SQLiteAdapter

# Importing the models registers their tables on SQLModel.metadata
from chatbridge.database import models  # noqa: F401

logger = get_logger(__name__)


def get_adapter(database_url: str) -> DatabaseAdapter:
    """
    Select the adapter for a database URL.

    Raises:
        ValueError: If the scheme is neither SQLite nor PostgreSQL
    """
    scheme = database_url.split("://", 1)[0].lower()
    if scheme.startswith("sqlite"):
        return SQLiteAdapter()
    if scheme.startswith(("postgresql", "postgres")):
        return PostgreSQLAdapter()
    raise ValueError(f"Unsupported database URL scheme: {scheme!r}")


class DatabaseManager:
    """Owns one async engine and its session factory."""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.echo = echo
        self.adapter = get_adapter(database_url)
        self._engine: AsyncEngine | None = None
        self._session_factory: SessionFactory | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("DatabaseManager.initialize() has not been called")
        return self._engine

    @property
    def session_factory(self) -> SessionFactory:
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager.initialize() has not been called")
        return self._session_factory

    async def initialize(self, create_schema: bool = True) -> None:
        if self._engine is not None:
            return

        self._engine = await self.adapter.create_engine(self.database_url, echo=self.echo)
        self._session_factory = self.adapter.create_session_factory(self._engine)
        if create_schema:
            await self.adapter.initialize_schema(self._engine)

        logger.info(f"Database ready ({type(self.adapter).__name__})")

    async def health_check(self) -> bool:
        if self._engine is None:
            return False
        return await self.adapter.health_check(self._engine)

    async def get_connection_info(self) -> dict[str, Any]:
        if self._engine is None:
            return {"healthy": False, "error": "not initialized"}
        return await self.adapter.get_connection_info(self._engine)

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database engine disposed")
