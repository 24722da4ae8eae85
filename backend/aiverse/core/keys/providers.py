"""Provider adapters: format rules, liveness probe requests and quota extraction.

Each supported provider has one adapter. Call sites look the adapter up once
with ``get_adapter()`` instead of branching on the provider string.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from aiverse.core.keys.errors import ProviderResponseError


class Provider(str, enum.Enum):
    """Supported AI service vendors."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    ELEVENLABS = "elevenlabs"
    MISTRAL = "mistral"


# Minimum length for providers without an adapter
FALLBACK_MIN_LENGTH = 15


@dataclass
class QuotaInfo:
    """Remaining allowance reported by a provider, when it reports one."""

    remaining: Optional[int] = None
    total: Optional[int] = None
    unit: Optional[str] = None


def _header_quota(response: httpx.Response, header: str, unit: str = "tokens") -> QuotaInfo:
    value = response.headers.get(header)
    if value is None:
        return QuotaInfo()
    try:
        return QuotaInfo(remaining=int(value), unit=unit)
    except ValueError:
        return QuotaInfo()


class ProviderAdapter(ABC):
    """Per-provider capability: validate a raw key, probe it, read its quota."""

    provider: Provider
    display_name: str
    prefix: str = ""
    min_length: int = FALLBACK_MIN_LENGTH

    def is_acceptable(self, secret: str) -> bool:
        """Cheap local format check; no network access."""
        return len(secret) >= self.min_length and secret.startswith(self.prefix)

    @property
    def format_hint(self) -> str:
        """Human readable description of the accepted format."""
        if self.prefix:
            return f"{self.prefix}... (at least {self.min_length} characters)"
        return f"API key (at least {self.min_length} characters)"

    @abstractmethod
    def build_probe_request(self, secret: str) -> httpx.Request:
        """Build the cheapest authenticated request the provider offers."""

    def extract_quota(self, response: httpx.Response) -> QuotaInfo:
        """Read remaining quota from a successful probe response."""
        return QuotaInfo()


class OpenAIAdapter(ProviderAdapter):
    provider = Provider.OPENAI
    display_name = "OpenAI"
    prefix = "sk-"
    min_length = 20

    def build_probe_request(self, secret: str) -> httpx.Request:
        return httpx.Request(
            "GET",
            "https://api.openai.com/v1/models",
            headers={"Authorization": f"Bearer {secret}"},
        )

    def extract_quota(self, response: httpx.Response) -> QuotaInfo:
        return _header_quota(response, "x-ratelimit-remaining-tokens")


class AnthropicAdapter(ProviderAdapter):
    provider = Provider.ANTHROPIC
    display_name = "Anthropic"
    prefix = "sk-ant-"
    min_length = 30

    def build_probe_request(self, secret: str) -> httpx.Request:
        return httpx.Request(
            "GET",
            "https://api.anthropic.com/v1/models",
            headers={"x-api-key": secret, "anthropic-version": "2023-06-01"},
        )

    def extract_quota(self, response: httpx.Response) -> QuotaInfo:
        return _header_quota(response, "anthropic-ratelimit-tokens-remaining")


class GoogleAdapter(ProviderAdapter):
    provider = Provider.GOOGLE
    display_name = "Google/Gemini"
    min_length = 30

    def build_probe_request(self, secret: str) -> httpx.Request:
        # Header auth keeps the key out of URLs and access logs
        return httpx.Request(
            "GET",
            "https://generativelanguage.googleapis.com/v1beta/models",
            headers={"x-goog-api-key": secret},
            params={"pageSize": 1},
        )


class ElevenLabsAdapter(ProviderAdapter):
    provider = Provider.ELEVENLABS
    display_name = "ElevenLabs"
    min_length = 20

    def build_probe_request(self, secret: str) -> httpx.Request:
        return httpx.Request(
            "GET",
            "https://api.elevenlabs.io/v1/user/subscription",
            headers={"xi-api-key": secret},
        )

    def extract_quota(self, response: httpx.Response) -> QuotaInfo:
        try:
            data = response.json()
            limit = int(data["character_limit"])
            used = int(data["character_count"])
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderResponseError("Malformed subscription response from ElevenLabs") from e
        return QuotaInfo(remaining=max(limit - used, 0), total=limit, unit="characters")


class MistralAdapter(ProviderAdapter):
    provider = Provider.MISTRAL
    display_name = "Mistral"
    min_length = 20

    def build_probe_request(self, secret: str) -> httpx.Request:
        return httpx.Request(
            "GET",
            "https://api.mistral.ai/v1/models",
            headers={"Authorization": f"Bearer {secret}"},
        )

    def extract_quota(self, response: httpx.Response) -> QuotaInfo:
        return _header_quota(response, "x-ratelimit-remaining-tokens-minute")


_ADAPTERS: dict[Provider, ProviderAdapter] = {
    adapter.provider: adapter
    for adapter in (
        OpenAIAdapter(),
        AnthropicAdapter(),
        GoogleAdapter(),
        ElevenLabsAdapter(),
        MistralAdapter(),
    )
}


def get_adapter(provider: Provider | str) -> Optional[ProviderAdapter]:
    """
    Look up the adapter for a provider.

    Args:
        provider: Provider enum member or its string tag (case-insensitive)

    Returns:
        The adapter, or None for an unknown provider
    """
    if isinstance(provider, Provider):
        return _ADAPTERS[provider]
    try:
        return _ADAPTERS[Provider(provider.lower().strip())]
    except ValueError:
        return None


def get_provider_catalogue() -> list[dict]:
    """
    List supported providers for provider pickers.

    Returns:
        List of dicts with id, name and format_hint
    """
    return [
        {"id": adapter.provider.value, "name": adapter.display_name, "format_hint": adapter.format_hint}
        for adapter in _ADAPTERS.values()
    ]
