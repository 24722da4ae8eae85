"""Key pool service: the single entry point for administering provider keys.

Usage:
    from aiverse.services.key_pool import KeyPoolService
    pool = KeyPoolService(db)
    summary = await pool.import_keys("openai", ["sk-...", "sk-..."])
    results = await pool.test_provider("openai")
    stats = await pool.stats()
"""

import logging
from typing import Iterable, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from aiverse.core.keys.errors import KeyValidationError
from aiverse.core.keys.importer import ImportSummary, KeyImporter
from aiverse.core.keys.prober import KeyProber, ProbeResult
from aiverse.core.keys.providers import Provider, QuotaInfo, get_adapter, get_provider_catalogue
from aiverse.core.keys.stats import ProviderStats, stats_by_provider
from aiverse.core.keys.store import KeyStore
from aiverse.core.keys.validator import is_acceptable
from aiverse.core.security.encryption import KeyEncryptionService
from aiverse.models.database import ApiKey
from aiverse.services.event_bus import EventBus, KeyEvent, get_event_bus

logger = logging.getLogger(__name__)

EVENT_SOURCE = "key_pool"


class KeyPoolService:
    """Composes store, importer, prober and stats over one database session."""

    def __init__(
        self,
        db: AsyncSession,
        event_bus: Optional[EventBus] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        encryption_service: Optional[KeyEncryptionService] = None,
        probe_timeout: Optional[float] = None,
    ):
        self.store = KeyStore(db, encryption_service)
        self.importer = KeyImporter(self.store)
        self.prober = KeyProber(self.store, timeout=probe_timeout, transport=transport)
        self.events = event_bus or get_event_bus()

    async def add_key(self, provider: Provider | str, raw_key: str) -> ApiKey:
        """
        Add a single key.

        Raises:
            KeyValidationError: the key does not match the provider's format
            DuplicateKeyError: the key is already stored
        """
        provider = Provider(provider)
        secret = (raw_key or "").strip()
        if not is_acceptable(provider, secret):
            raise KeyValidationError(
                f"Invalid {provider.value} key format. Expected: {get_adapter(provider).format_hint}"
            )

        record = await self.store.create(provider, secret)
        logger.info("Added %s key %s (id %s)", provider.value, record.alias, record.id)
        await self.events.emit(
            KeyEvent.CREATED,
            {"key_id": record.id, "provider": provider.value, "alias": record.alias},
            source=EVENT_SOURCE,
        )
        return record

    async def import_keys(self, provider: Provider | str, raw_keys: Iterable[str]) -> ImportSummary:
        """Bulk import; never raises for individual bad or duplicate keys."""
        provider = Provider(provider)
        summary = await self.importer.import_bulk(provider, raw_keys)
        await self.events.emit(
            KeyEvent.IMPORTED,
            {
                "provider": provider.value,
                "imported": summary.imported,
                "skipped": summary.skipped,
                "failed": summary.failed,
                "key_ids": list(summary.imported_ids),
            },
            source=EVENT_SOURCE,
        )
        return summary

    async def list_keys(self, provider: Optional[Provider | str] = None) -> list[ApiKey]:
        """Keys in creation order, optionally for one provider."""
        if provider is not None:
            return await self.store.list_by_provider(provider)
        grouped = await self.store.list_all()
        return sorted((r for records in grouped.values() for r in records), key=lambda r: r.id)

    async def list_all(self) -> dict[Provider, list[ApiKey]]:
        return await self.store.list_all()

    async def set_active(self, key_id: int, is_active: bool) -> ApiKey:
        """Enable or disable a key. Raises NotFoundError for unknown ids."""
        record = await self.store.set_active(key_id, is_active)
        logger.info("Key %s (%s) is_active=%s", key_id, record.alias, is_active)
        await self.events.emit(
            KeyEvent.STATUS_CHANGED,
            {"key_id": key_id, "provider": record.provider.value, "is_active": is_active},
            source=EVENT_SOURCE,
        )
        return record

    async def delete_key(self, key_id: int) -> None:
        """Hard-delete a key. Raises NotFoundError for unknown ids."""
        await self.store.delete(key_id)
        logger.info("Deleted key %s", key_id)
        await self.events.emit(KeyEvent.DELETED, {"key_id": key_id}, source=EVENT_SOURCE)

    async def test_key(self, key_id: int) -> ProbeResult:
        """Probe one key. Raises NotFoundError for unknown ids."""
        record = await self.store.get(key_id)
        result = await self.prober.test(record)
        await self._emit_tested(record.provider, result)
        return result

    async def test_provider(self, provider: Provider | str) -> list[ProbeResult]:
        """Probe every key of a provider."""
        provider = Provider(provider)
        results = await self.prober.test_all(provider)
        for result in results:
            await self._emit_tested(provider, result)
        logger.info(
            "Tested %d %s keys: %d succeeded",
            len(results),
            provider.value,
            sum(1 for r in results if r.success),
        )
        return results

    async def check_quota(self, key_id: int) -> tuple[ApiKey, QuotaInfo]:
        """
        Remaining quota for a key, as far as its provider reports it.

        Raises:
            NotFoundError: unknown id
            ProviderError: the provider call failed
        """
        record = await self.store.get(key_id)
        return record, await self.prober.check_quota(record)

    async def stats(self) -> dict[Provider, ProviderStats]:
        return await stats_by_provider(self.store)

    @staticmethod
    def providers() -> list[dict]:
        return get_provider_catalogue()

    async def _emit_tested(self, provider: Provider, result: ProbeResult) -> None:
        await self.events.emit(
            KeyEvent.TESTED,
            {
                "key_id": result.key_id,
                "provider": provider.value,
                "success": result.success,
                "error_type": result.error_type,
            },
            source=EVENT_SOURCE,
        )
