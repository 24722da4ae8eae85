"""Key record store: durable CRUD and usage accounting for provider keys."""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aiverse.core.keys.errors import DuplicateKeyError, NotFoundError
from aiverse.core.keys.providers import Provider
from aiverse.core.keys.validator import make_alias
from aiverse.core.security.encryption import (
    KeyEncryptionService,
    fingerprint_secret,
    get_encryption_service,
)
from aiverse.models.database import ApiKey

logger = logging.getLogger(__name__)


class KeyStore:
    """
    Persistence for ``ApiKey`` records over one async session.

    Every session operation runs under a single lock, so concurrent callers
    (e.g. parallel probes) never interleave on the session. Counter updates
    are single UPDATE statements, atomic at the database as well.
    """

    def __init__(
        self,
        db: AsyncSession,
        encryption_service: Optional[KeyEncryptionService] = None,
    ):
        self.db = db
        self._encryption = encryption_service or get_encryption_service()
        self._lock = asyncio.Lock()

    async def create(self, provider: Provider | str, secret: str) -> ApiKey:
        """
        Persist a new active key.

        Raises:
            DuplicateKeyError: the secret is already stored for this provider
        """
        provider = Provider(provider)
        secret_hash = fingerprint_secret(secret)
        alias = make_alias(secret)

        async with self._lock:
            existing = await self.db.execute(
                select(ApiKey.id).where(
                    ApiKey.provider == provider,
                    ApiKey.secret_hash == secret_hash,
                )
            )
            if existing.scalar_one_or_none() is not None:
                raise DuplicateKeyError(f"Key {alias} already exists for {provider.value}")

            record = ApiKey(
                provider=provider,
                encrypted_key=self._encryption.encrypt(secret),
                secret_hash=secret_hash,
                alias=alias,
                is_active=True,
                usage_count=0,
                error_count=0,
                created_at=datetime.utcnow(),
            )
            self.db.add(record)
            try:
                await self.db.commit()
            except IntegrityError as e:
                # Lost a race with another writer on the unique constraint
                await self.db.rollback()
                raise DuplicateKeyError(f"Key {alias} already exists for {provider.value}") from e
            except SQLAlchemyError:
                await self.db.rollback()
                raise
            await self.db.refresh(record)

        logger.debug("Stored %s key %s as id %s", provider.value, alias, record.id)
        return record

    async def _get(self, key_id: int) -> ApiKey:
        record = await self.db.get(ApiKey, key_id, populate_existing=True)
        if record is None:
            raise NotFoundError(key_id)
        return record

    async def get(self, key_id: int) -> ApiKey:
        """Fetch one record. Raises NotFoundError if the id is unknown."""
        async with self._lock:
            return await self._get(key_id)

    async def list_by_provider(self, provider: Provider | str) -> list[ApiKey]:
        """Records for one provider in creation order."""
        query = (
            select(ApiKey)
            .where(ApiKey.provider == Provider(provider))
            .order_by(ApiKey.id)
            .execution_options(populate_existing=True)
        )
        async with self._lock:
            result = await self.db.execute(query)
            return list(result.scalars().all())

    async def list_all(self) -> dict[Provider, list[ApiKey]]:
        """Records grouped by provider; every provider is present, possibly empty."""
        query = select(ApiKey).order_by(ApiKey.id).execution_options(populate_existing=True)
        async with self._lock:
            result = await self.db.execute(query)
            records = result.scalars().all()

        grouped: dict[Provider, list[ApiKey]] = {provider: [] for provider in Provider}
        for record in records:
            grouped[record.provider].append(record)
        return grouped

    async def existing_hashes(self, provider: Provider | str) -> set[str]:
        """Fingerprints of every secret stored for a provider."""
        query = select(ApiKey.secret_hash).where(ApiKey.provider == Provider(provider))
        async with self._lock:
            result = await self.db.execute(query)
            return set(result.scalars().all())

    async def set_active(self, key_id: int, is_active: bool) -> ApiKey:
        """Enable or disable a key. Idempotent when the state is unchanged."""
        async with self._lock:
            record = await self._get(key_id)
            if record.is_active != is_active:
                record.is_active = is_active
                try:
                    await self.db.commit()
                except SQLAlchemyError:
                    # Discards the flipped flag; the next read reloads it
                    await self.db.rollback()
                    raise
                await self.db.refresh(record)
        return record

    async def delete(self, key_id: int) -> None:
        """Hard-delete a key. Raises NotFoundError if the id is unknown."""
        async with self._lock:
            try:
                result = await self.db.execute(delete(ApiKey).where(ApiKey.id == key_id))
                await self.db.commit()
            except SQLAlchemyError:
                await self.db.rollback()
                raise
        if result.rowcount == 0:
            raise NotFoundError(key_id)

    async def record_usage(self, key_id: int, succeeded: bool, timestamp: datetime) -> None:
        """
        Count one use of a key.

        Always bumps ``usage_count`` and ``last_used_at``; bumps ``error_count``
        only for failures.
        """
        stmt = (
            update(ApiKey)
            .where(ApiKey.id == key_id)
            .values(
                usage_count=ApiKey.usage_count + 1,
                error_count=ApiKey.error_count + (0 if succeeded else 1),
                last_used_at=timestamp,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._lock:
            try:
                result = await self.db.execute(stmt)
                await self.db.commit()
            except SQLAlchemyError:
                await self.db.rollback()
                raise
        if result.rowcount == 0:
            raise NotFoundError(key_id)

    async def aggregate_by_provider(self) -> list[tuple[Provider, int, int, int, int]]:
        """Rows of (provider, total, active, errors, usage) for providers with keys."""
        query = select(
            ApiKey.provider,
            func.count(ApiKey.id),
            func.sum(case((ApiKey.is_active.is_(True), 1), else_=0)),
            func.sum(ApiKey.error_count),
            func.sum(ApiKey.usage_count),
        ).group_by(ApiKey.provider)
        async with self._lock:
            result = await self.db.execute(query)
            return [tuple(row) for row in result.all()]

    def reveal_secret(self, record: ApiKey) -> str:
        """Decrypt a record's secret for an outbound provider call."""
        return self._encryption.decrypt(record.encrypted_key)
