"""Per-provider summaries of the key pool."""

from dataclasses import dataclass

from aiverse.core.keys.providers import Provider
from aiverse.core.keys.store import KeyStore


@dataclass
class ProviderStats:
    total: int = 0
    active: int = 0
    errors: int = 0
    total_usage: int = 0


async def stats_by_provider(store: KeyStore) -> dict[Provider, ProviderStats]:
    """
    Totals for every provider, computed from the store's current rows.

    Providers without keys are reported with zeros.
    """
    stats = {provider: ProviderStats() for provider in Provider}
    for provider, total, active, errors, usage in await store.aggregate_by_provider():
        stats[Provider(provider)] = ProviderStats(
            total=total,
            active=active or 0,
            errors=errors or 0,
            total_usage=usage or 0,
        )
    return stats
