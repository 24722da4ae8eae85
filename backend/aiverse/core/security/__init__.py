"""Security module."""

from aiverse.core.security.admin import require_admin
from aiverse.core.security.encryption import (
    KeyEncryptionService,
    fingerprint_secret,
    get_encryption_service,
)

__all__ = ["KeyEncryptionService", "fingerprint_secret", "get_encryption_service", "require_admin"]
