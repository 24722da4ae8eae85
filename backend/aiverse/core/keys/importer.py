"""Bulk import of raw key strings with validation and de-duplication."""

import logging
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError

from aiverse.core.keys.errors import DuplicateKeyError
from aiverse.core.keys.providers import Provider
from aiverse.core.keys.store import KeyStore
from aiverse.core.keys.validator import is_acceptable, make_alias
from aiverse.core.security.encryption import fingerprint_secret

logger = logging.getLogger(__name__)


@dataclass
class ImportSummary:
    """Outcome of one bulk import."""

    imported: int = 0
    skipped: int = 0
    failed: int = 0
    imported_ids: list[int] = field(default_factory=list)


class KeyImporter:
    """Accepts pasted batches of keys and stores the valid, new ones."""

    def __init__(self, store: KeyStore):
        self.store = store

    async def import_bulk(self, provider: Provider | str, raw_keys: Iterable[str]) -> ImportSummary:
        """
        Import a batch of raw keys for one provider, in input order.

        Blank lines are dropped. Malformed keys and keys already stored (or
        repeated earlier in the same batch) are counted as skipped. A failure
        persisting one key is counted as failed and does not stop the batch.
        Only failing to read the store at all propagates.
        """
        provider = Provider(provider)
        summary = ImportSummary()
        seen = await self.store.existing_hashes(provider)

        for raw in raw_keys:
            candidate = (raw or "").strip()
            if not candidate:
                continue

            if not is_acceptable(provider, candidate):
                summary.skipped += 1
                continue

            secret_hash = fingerprint_secret(candidate)
            if secret_hash in seen:
                summary.skipped += 1
                continue
            seen.add(secret_hash)

            try:
                record = await self.store.create(provider, candidate)
            except DuplicateKeyError:
                summary.skipped += 1
                continue
            except (SQLAlchemyError, ValueError):
                logger.exception("Failed to store %s key %s", provider.value, make_alias(candidate))
                summary.failed += 1
                continue

            summary.imported += 1
            summary.imported_ids.append(record.id)

        logger.info(
            "Imported %s keys: %d imported, %d skipped, %d failed",
            provider.value,
            summary.imported,
            summary.skipped,
            summary.failed,
        )
        return summary
