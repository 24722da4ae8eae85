"""Tests for the key record store."""

import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from aiverse.core.keys.errors import DuplicateKeyError, NotFoundError
from aiverse.core.keys.providers import Provider
from aiverse.core.keys.validator import make_alias

OPENAI_KEY = "sk-" + "A" * 20
OTHER_OPENAI_KEY = "sk-" + "B" * 20


@pytest.mark.unit
class TestKeyStoreCreate:
    """Test cases for creating key records."""

    @pytest.mark.asyncio
    async def test_create_defaults(self, store):
        """New records are active with zeroed counters."""
        record = await store.create(Provider.OPENAI, OPENAI_KEY)

        assert isinstance(record.id, int)
        assert record.provider == Provider.OPENAI
        assert record.is_active is True
        assert record.usage_count == 0
        assert record.error_count == 0
        assert record.last_used_at is None
        assert isinstance(record.created_at, datetime)
        assert record.alias == make_alias(OPENAI_KEY)

    @pytest.mark.asyncio
    async def test_secret_encrypted_at_rest(self, store):
        """The stored column holds ciphertext that decrypts to the secret."""
        record = await store.create(Provider.OPENAI, OPENAI_KEY)

        assert OPENAI_KEY.encode() not in record.encrypted_key
        assert store.reveal_secret(record) == OPENAI_KEY

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, store):
        """The same secret cannot be stored twice for a provider."""
        await store.create(Provider.OPENAI, OPENAI_KEY)

        with pytest.raises(DuplicateKeyError):
            await store.create(Provider.OPENAI, OPENAI_KEY)

        assert len(await store.list_by_provider(Provider.OPENAI)) == 1

    @pytest.mark.asyncio
    async def test_same_secret_other_provider(self, store):
        """Uniqueness is per provider."""
        await store.create(Provider.OPENAI, OPENAI_KEY)
        await store.create(Provider.MISTRAL, OPENAI_KEY)

        assert len(await store.list_by_provider(Provider.OPENAI)) == 1
        assert len(await store.list_by_provider(Provider.MISTRAL)) == 1


@pytest.mark.unit
class TestKeyStoreQueries:
    """Test cases for reading key records."""

    @pytest.mark.asyncio
    async def test_list_in_creation_order(self, store):
        keys = ["sk-" + c * 20 for c in "CAB"]
        for key in keys:
            await store.create(Provider.OPENAI, key)

        records = await store.list_by_provider(Provider.OPENAI)

        assert [r.alias for r in records] == [make_alias(k) for k in keys]

    @pytest.mark.asyncio
    async def test_list_is_scoped_to_provider(self, store):
        await store.create(Provider.OPENAI, OPENAI_KEY)
        await store.create(Provider.MISTRAL, "m" * 32)

        records = await store.list_by_provider("openai")

        assert [r.provider for r in records] == [Provider.OPENAI]

    @pytest.mark.asyncio
    async def test_list_all_includes_empty_providers(self, store):
        """Every provider appears in the grouping, even with no keys."""
        await store.create(Provider.OPENAI, OPENAI_KEY)

        grouped = await store.list_all()

        assert set(grouped) == set(Provider)
        assert len(grouped[Provider.OPENAI]) == 1
        assert grouped[Provider.ANTHROPIC] == []

    @pytest.mark.asyncio
    async def test_get_unknown_id(self, store):
        with pytest.raises(NotFoundError) as exc_info:
            await store.get(999)

        assert exc_info.value.key_id == 999

    @pytest.mark.asyncio
    async def test_existing_hashes(self, store):
        await store.create(Provider.OPENAI, OPENAI_KEY)

        assert len(await store.existing_hashes(Provider.OPENAI)) == 1
        assert await store.existing_hashes(Provider.GOOGLE) == set()


@pytest.mark.unit
class TestKeyStoreMutations:
    """Test cases for status changes and deletion."""

    @pytest.mark.asyncio
    async def test_set_active_toggles(self, store):
        record = await store.create(Provider.OPENAI, OPENAI_KEY)

        updated = await store.set_active(record.id, False)
        assert updated.is_active is False

        updated = await store.set_active(record.id, True)
        assert updated.is_active is True

    @pytest.mark.asyncio
    async def test_set_active_idempotent(self, store):
        """Setting the current state again changes nothing."""
        record = await store.create(Provider.OPENAI, OPENAI_KEY)

        await store.set_active(record.id, False)
        updated = await store.set_active(record.id, False)

        assert updated.is_active is False
        assert updated.usage_count == 0

    @pytest.mark.asyncio
    async def test_set_active_unknown_id(self, store):
        with pytest.raises(NotFoundError):
            await store.set_active(42, False)

    @pytest.mark.asyncio
    async def test_delete_removes_record(self, store):
        record = await store.create(Provider.OPENAI, OPENAI_KEY)
        await store.create(Provider.OPENAI, OTHER_OPENAI_KEY)

        await store.delete(record.id)

        remaining = await store.list_by_provider(Provider.OPENAI)
        assert [r.alias for r in remaining] == [make_alias(OTHER_OPENAI_KEY)]

    @pytest.mark.asyncio
    async def test_delete_unknown_id(self, store):
        with pytest.raises(NotFoundError):
            await store.delete(7)

    @pytest.mark.asyncio
    async def test_operations_after_delete(self, store):
        """A deleted id is unknown to every later operation."""
        record = await store.create(Provider.OPENAI, OPENAI_KEY)
        await store.delete(record.id)

        with pytest.raises(NotFoundError):
            await store.set_active(record.id, True)
        with pytest.raises(NotFoundError):
            await store.delete(record.id)
        with pytest.raises(NotFoundError):
            await store.record_usage(record.id, True, datetime.utcnow())

    @pytest.mark.asyncio
    async def test_deleted_secret_can_be_added_again(self, store):
        record = await store.create(Provider.OPENAI, OPENAI_KEY)
        await store.delete(record.id)

        again = await store.create(Provider.OPENAI, OPENAI_KEY)

        assert again.id != record.id


@pytest.mark.unit
class TestKeyStoreUsage:
    """Test cases for usage accounting."""

    @pytest.mark.asyncio
    async def test_failure_then_success(self, store):
        """Failures bump both counters, successes only usage."""
        record = await store.create(Provider.OPENAI, OPENAI_KEY)
        t = datetime(2026, 1, 1, 12, 0, 0)

        await store.record_usage(record.id, False, t)
        await store.record_usage(record.id, True, t + timedelta(seconds=1))

        record = await store.get(record.id)
        assert record.usage_count == 2
        assert record.error_count == 1
        assert record.last_used_at == t + timedelta(seconds=1)

    @pytest.mark.asyncio
    async def test_error_count_never_exceeds_usage(self, store):
        record = await store.create(Provider.OPENAI, OPENAI_KEY)
        for _ in range(3):
            await store.record_usage(record.id, False, datetime.utcnow())

        record = await store.get(record.id)
        assert record.error_count == record.usage_count == 3

    @pytest.mark.asyncio
    async def test_concurrent_usage_not_lost(self, store):
        """Concurrent increments on one key are all counted."""
        record = await store.create(Provider.OPENAI, OPENAI_KEY)
        outcomes = [i % 3 != 0 for i in range(25)]

        await asyncio.gather(
            *(store.record_usage(record.id, ok, datetime.utcnow()) for ok in outcomes)
        )

        record = await store.get(record.id)
        assert record.usage_count == 25
        assert record.error_count == outcomes.count(False)

    @pytest.mark.asyncio
    async def test_usage_on_one_key_only(self, store):
        first = await store.create(Provider.OPENAI, OPENAI_KEY)
        second = await store.create(Provider.OPENAI, OTHER_OPENAI_KEY)

        await store.record_usage(first.id, True, datetime.utcnow())

        second = await store.get(second.id)
        assert second.usage_count == 0
        assert second.last_used_at is None

    @pytest.mark.asyncio
    async def test_aggregate_by_provider(self, store):
        first = await store.create(Provider.OPENAI, OPENAI_KEY)
        await store.create(Provider.OPENAI, OTHER_OPENAI_KEY)
        await store.set_active(first.id, False)
        await store.record_usage(first.id, False, datetime.utcnow())

        rows = {row[0]: row[1:] for row in await store.aggregate_by_provider()}

        assert rows == {Provider.OPENAI: (2, 1, 1, 1)}


@pytest.fixture
def fail_next_commit(db_session, monkeypatch):
    """Arm a one-shot commit failure on the shared session."""
    real_commit = db_session.commit
    state = {"armed": False}

    async def commit():
        if state["armed"]:
            state["armed"] = False
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        await real_commit()

    monkeypatch.setattr(db_session, "commit", commit)

    def arm():
        state["armed"] = True

    return arm


@pytest.mark.unit
class TestKeyStoreCommitFailures:
    """Test cases for failed commits leaving the session usable."""

    @pytest.mark.asyncio
    async def test_set_active_failure_rolls_back(self, store, fail_next_commit):
        record = await store.create(Provider.OPENAI, OPENAI_KEY)
        fail_next_commit()

        with pytest.raises(SQLAlchemyError):
            await store.set_active(record.id, False)

        assert (await store.get(record.id)).is_active is True
        updated = await store.set_active(record.id, False)
        assert updated.is_active is False

    @pytest.mark.asyncio
    async def test_delete_failure_rolls_back(self, store, fail_next_commit):
        record = await store.create(Provider.OPENAI, OPENAI_KEY)
        fail_next_commit()

        with pytest.raises(SQLAlchemyError):
            await store.delete(record.id)

        assert [r.id for r in await store.list_by_provider(Provider.OPENAI)] == [record.id]
        await store.delete(record.id)
        assert await store.list_by_provider(Provider.OPENAI) == []

    @pytest.mark.asyncio
    async def test_record_usage_failure_rolls_back(self, store, fail_next_commit):
        """A failed counter update is not half-applied and later updates still land."""
        record = await store.create(Provider.OPENAI, OPENAI_KEY)
        fail_next_commit()

        with pytest.raises(SQLAlchemyError):
            await store.record_usage(record.id, False, datetime.utcnow())

        assert (await store.get(record.id)).usage_count == 0
        await store.record_usage(record.id, False, datetime.utcnow())
        record = await store.get(record.id)
        assert (record.usage_count, record.error_count) == (1, 1)
