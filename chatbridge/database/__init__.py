"""
Persistence for the messaging mirror.

Usage:
    from chatbridge.database import DatabaseManager

    manager = DatabaseManager("sqlite+aiosqlite:///./chatbridge.db")
    await manager.initialize()
    async with manager.session_factory() as session:
        ...
"""

from .adapter import DatabaseAdapter, SessionFactory
from .manager import DatabaseManager, get_adapter

__all__ = [
    "DatabaseAdapter",
    "DatabaseManager",
    "SessionFactory",
    "get_adapter",
]
