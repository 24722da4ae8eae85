"""API key database model."""

from datetime import datetime
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Integer,
    LargeBinary,
    String,
    UniqueConstraint,
)

from aiverse.core.keys.providers import Provider
from aiverse.core.storage.database import Base


class ApiKey(Base):
    """One provider credential in the key pool, with its usage history."""

    __tablename__ = "api_keys"

    # Autoincrement id doubles as creation order
    id = Column(Integer, primary_key=True, autoincrement=True)
    provider = Column(Enum(Provider), nullable=False, index=True)
    encrypted_key = Column(LargeBinary, nullable=False)  # Fernet-encrypted secret
    secret_hash = Column(String(64), nullable=False)  # SHA-256 of the secret
    alias = Column(String(64), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    usage_count = Column(Integer, default=0, nullable=False)
    error_count = Column(Integer, default=0, nullable=False)
    last_used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("provider", "secret_hash", name="uq_api_keys_provider_secret"),
        # Ids are never reused after a delete
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        return f"<ApiKey {self.id} {self.provider.value if self.provider else None} {self.alias}>"
