"""Provider key encryption and fingerprinting using Fernet (AES-128)."""

import hashlib
import logging
import os
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from aiverse.core.config import settings

logger = logging.getLogger(__name__)


def fingerprint_secret(plaintext: str) -> str:
    """
    Deterministic SHA-256 fingerprint of a secret.

    Fernet ciphertext differs on every call, so uniqueness of stored secrets
    is enforced on this value instead.
    """
    return hashlib.sha256(plaintext.encode()).hexdigest()


class KeyEncryptionService:
    """Service for encrypting and decrypting provider API keys."""

    def __init__(self, master_key: Optional[str] = None):
        """
        Initialize encryption service with master key.

        Args:
            master_key: Base64-encoded 32-byte key. If not provided, reads from settings
                        or the environment. In development, auto-generates a key if unset.
        """
        key = master_key or settings.master_encryption_key or os.getenv("MASTER_ENCRYPTION_KEY")

        if not key:
            key = self._auto_generate_key()
            if not key:
                raise ValueError(
                    "MASTER_ENCRYPTION_KEY environment variable not set.\n"
                    "Please set up your .env file:\n"
                    "  1. cp .env.example .env\n"
                    "  2. Generate a key: python -c 'from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())'\n"
                    "  3. Add the key to .env as MASTER_ENCRYPTION_KEY=<your-key>"
                )

        try:
            self.cipher = Fernet(key.encode() if isinstance(key, str) else key)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid MASTER_ENCRYPTION_KEY: {e}") from e

    def encrypt(self, plaintext: str) -> bytes:
        """
        Encrypt a plaintext API key.

        Args:
            plaintext: The API key to encrypt

        Returns:
            Encrypted bytes
        """
        if not plaintext:
            raise ValueError("Cannot encrypt empty string")

        return self.cipher.encrypt(plaintext.encode())

    def decrypt(self, encrypted: bytes) -> str:
        """
        Decrypt an encrypted API key.

        Args:
            encrypted: The encrypted API key bytes

        Returns:
            Decrypted plaintext API key
        """
        if not encrypted:
            raise ValueError("Cannot decrypt empty bytes")

        try:
            return self.cipher.decrypt(encrypted).decode()
        except InvalidToken as e:
            raise ValueError("Failed to decrypt API key: invalid token or wrong master key") from e

    def _auto_generate_key(self, env_path: Optional[str] = None) -> Optional[str]:
        """
        Generate a master key and persist it to .env for development convenience.

        Returns:
            Generated key if it could be saved, None otherwise
        """
        env_path = os.path.abspath(env_path or ".env")
        new_key = Fernet.generate_key().decode()

        try:
            if os.path.exists(env_path):
                with open(env_path, "r") as f:
                    content = f.read()

                if "MASTER_ENCRYPTION_KEY=" in content:
                    lines = [
                        f"MASTER_ENCRYPTION_KEY={new_key}"
                        if line.startswith("MASTER_ENCRYPTION_KEY=")
                        else line
                        for line in content.split("\n")
                    ]
                    content = "\n".join(lines)
                else:
                    content += f"\nMASTER_ENCRYPTION_KEY={new_key}\n"

                with open(env_path, "w") as f:
                    f.write(content)
            else:
                with open(env_path, "w") as f:
                    f.write("# Auto-generated .env file\n")
                    f.write(f"MASTER_ENCRYPTION_KEY={new_key}\n")

            logger.warning("Auto-generated MASTER_ENCRYPTION_KEY and saved to %s", env_path)
            return new_key

        except OSError as e:
            logger.error("Could not auto-save encryption key to %s: %s", env_path, e)
            return None

    @staticmethod
    def generate_master_key() -> str:
        """
        Generate a new master encryption key.

        Returns:
            Base64-encoded 32-byte key suitable for Fernet
        """
        return Fernet.generate_key().decode()


# Global encryption service instance
_encryption_service: Optional[KeyEncryptionService] = None


def get_encryption_service() -> KeyEncryptionService:
    """
    Get or create the global encryption service instance.

    Returns:
        KeyEncryptionService instance
    """
    global _encryption_service
    if _encryption_service is None:
        _encryption_service = KeyEncryptionService()
    return _encryption_service
