"""Storage module."""

from aiverse.core.storage.database import AsyncSessionLocal, Base, close_db, get_db, init_db

__all__ = ["AsyncSessionLocal", "Base", "close_db", "get_db", "init_db"]
