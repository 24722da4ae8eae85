"""Database models."""

from aiverse.models.database.api_key import ApiKey

__all__ = ["ApiKey"]
