"""Local format validation and display aliases for provider keys."""

from aiverse.core.keys.providers import FALLBACK_MIN_LENGTH, Provider, get_adapter
from aiverse.core.security.encryption import fingerprint_secret

ALIAS_PREFIX_LENGTH = 4
ALIAS_FINGERPRINT_LENGTH = 8


def is_acceptable(provider: Provider | str, raw: str | None) -> bool:
    """
    Decide whether a raw string is a plausible credential for a provider.

    Non-authoritative: only the liveness probe proves a key works. Surrounding
    whitespace is ignored; empty and whitespace-only input is rejected.
    """
    candidate = (raw or "").strip()
    if not candidate:
        return False

    adapter = get_adapter(provider)
    if adapter is None:
        return len(candidate) >= FALLBACK_MIN_LENGTH
    return adapter.is_acceptable(candidate)


def make_alias(secret: str) -> str:
    """
    Display-safe alias for a secret, e.g. ``sk-A...1f2e3d4c [23]``.

    Deterministic: the same secret always yields the same alias.
    """
    head = secret[:ALIAS_PREFIX_LENGTH]
    tail = fingerprint_secret(secret)[:ALIAS_FINGERPRINT_LENGTH]
    return f"{head}...{tail} [{len(secret)}]"
