"""Administrator gate for key pool routes."""

import logging
import secrets

from fastapi import Header, HTTPException, status

from aiverse.core.config import settings

logger = logging.getLogger(__name__)


async def require_admin(x_admin_secret: str | None = Header(default=None)) -> None:
    """
    Reject requests that do not carry the configured admin secret.

    The admin UI sends the shared secret in the ``X-Admin-Secret`` header.
    """
    if not settings.admin_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin access is not configured (ADMIN_SECRET is empty)",
        )

    if not x_admin_secret or not secrets.compare_digest(
        x_admin_secret.encode(), settings.admin_secret.encode()
    ):
        logger.warning("Rejected admin request with missing or invalid secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing admin secret",
        )
