"""
Database Adapter Protocol

Each adapter knows how to build an async engine for one backend, hand out transactional
sessions, create the schema and answer health probes.
"""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine
    from sqlmodel.ext.asyncio.session import AsyncSession

SessionFactory = Callable[[], AbstractAsyncContextManager["AsyncSession"]]


class DatabaseAdapter(Protocol):
    """Backend-specific engine/session construction for the messaging store."""

    async def create_engine(
        self, connection_string: str, **kwargs: Any
    ) -> "AsyncEngine":
        """
        Create an async SQLAlchemy engine for the database.

        Raises:
            ValueError: If the URL scheme does not belong to this backend
            ConnectionError: If unable to create engine
        """
        ...

    def create_session_factory(self, engine: "AsyncEngine") -> SessionFactory:
        """
        Create a session factory for the engine.

        Sessions commit when the ``async with`` block exits cleanly and roll back on error.
        """
        ...

    async def initialize_schema(self, engine: "AsyncEngine") -> None: ...

    async def health_check(self, engine: "AsyncEngine") -> bool: ...

    async def get_connection_info(self, engine: "AsyncEngine") -> dict[str, Any]: ...
