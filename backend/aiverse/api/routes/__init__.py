"""API routes."""

from aiverse.api.routes import api_keys

__all__ = ["api_keys"]
