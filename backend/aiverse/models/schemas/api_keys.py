"""Key pool API schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from aiverse.core.keys.providers import Provider


class ProviderInfo(BaseModel):
    """Schema for a supported provider."""

    id: str = Field(..., description="Provider identifier (e.g., 'openai', 'elevenlabs')")
    name: str = Field(..., description="Display name for the provider")
    format_hint: str = Field(..., description="Accepted key format")


class ApiKeyCreate(BaseModel):
    """Schema for adding a single API key."""

    provider: Provider = Field(..., description="Provider the key belongs to")
    api_key: str = Field(..., min_length=1, description="The API key to store (will be encrypted)")


class ApiKeyImport(BaseModel):
    """Schema for bulk-importing API keys."""

    provider: Provider = Field(..., description="Provider all keys belong to")
    keys: list[str] = Field(..., description="Raw keys, one per entry")


class ImportResult(BaseModel):
    """Schema for a bulk import summary."""

    imported: int
    skipped: int
    failed: int = 0


class ApiKeyStatusUpdate(BaseModel):
    """Schema for enabling or disabling a key."""

    is_active: bool


class ApiKeyResponse(BaseModel):
    """Schema for a key record (never includes the secret)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    provider: Provider
    alias: str = Field(..., description="Display-safe identifier derived from the key")
    is_active: bool
    usage_count: int
    error_count: int
    last_used_at: Optional[datetime] = None
    created_at: datetime


class ProviderStatsResponse(BaseModel):
    """Schema for one provider's key pool totals."""

    total: int
    active: int
    errors: int
    total_usage: int


class KeyTestResult(BaseModel):
    """Schema for the outcome of testing one key."""

    key_id: int
    alias: str
    success: bool
    response_time_ms: int
    error: Optional[str] = None
    error_type: Optional[str] = None
    tokens_remaining: Optional[int] = None


class ProviderTestResponse(BaseModel):
    """Schema for testing every key of a provider."""

    provider: Provider
    results: list[KeyTestResult]
    succeeded: int
    failed: int


class QuotaResponse(BaseModel):
    """Schema for a key's remaining quota (fields are null when the provider does not report them)."""

    key_id: int
    provider: Provider
    remaining: Optional[int] = None
    total: Optional[int] = None
    unit: Optional[str] = None
