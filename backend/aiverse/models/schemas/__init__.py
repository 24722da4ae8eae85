"""API schemas."""

from aiverse.models.schemas.api_keys import (
    ApiKeyCreate,
    ApiKeyImport,
    ApiKeyResponse,
    ApiKeyStatusUpdate,
    ImportResult,
    KeyTestResult,
    ProviderInfo,
    ProviderStatsResponse,
    ProviderTestResponse,
    QuotaResponse,
)

__all__ = [
    "ApiKeyCreate",
    "ApiKeyImport",
    "ApiKeyResponse",
    "ApiKeyStatusUpdate",
    "ImportResult",
    "KeyTestResult",
    "ProviderInfo",
    "ProviderStatsResponse",
    "ProviderTestResponse",
    "QuotaResponse",
]
