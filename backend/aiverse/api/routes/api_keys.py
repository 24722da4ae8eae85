"""Admin key pool API routes."""

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from aiverse.core.keys.errors import (
    DuplicateKeyError,
    KeyValidationError,
    NotFoundError,
    ProviderError,
)
from aiverse.core.keys.providers import Provider
from aiverse.core.security.admin import require_admin
from aiverse.core.storage.database import get_db
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
from aiverse.services.key_pool import KeyPoolService

router = APIRouter(
    prefix="/admin/api-keys",
    tags=["api-keys"],
    dependencies=[Depends(require_admin)],
)


def get_key_pool(db: AsyncSession = Depends(get_db)) -> KeyPoolService:
    """Key pool service bound to the request's database session."""
    return KeyPoolService(db)


def _not_found(e: NotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("", response_model=dict[str, ProviderStatsResponse])
async def get_key_stats(pool: KeyPoolService = Depends(get_key_pool)):
    """Per-provider totals: key count, active keys, errors and usage."""
    stats = await pool.stats()
    return {provider.value: ProviderStatsResponse(**asdict(s)) for provider, s in stats.items()}


@router.get("/list", response_model=list[ApiKeyResponse])
async def list_api_keys(
    provider: Optional[Provider] = Query(None, description="Only keys of this provider"),
    pool: KeyPoolService = Depends(get_key_pool),
):
    """
    List stored keys in creation order.

    Only the alias is returned; the secret never leaves the server.
    """
    records = await pool.list_keys(provider)
    return [ApiKeyResponse.model_validate(r) for r in records]


@router.get("/providers", response_model=list[ProviderInfo])
async def list_providers(pool: KeyPoolService = Depends(get_key_pool)):
    """Supported providers with their accepted key formats."""
    return [ProviderInfo(**p) for p in pool.providers()]


@router.post("", response_model=ApiKeyResponse, status_code=status.HTTP_201_CREATED)
async def add_api_key(
    key_data: ApiKeyCreate,
    pool: KeyPoolService = Depends(get_key_pool),
):
    """Add a single key. The key is encrypted before storage."""
    try:
        record = await pool.add_key(key_data.provider, key_data.api_key)
    except KeyValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except DuplicateKeyError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return ApiKeyResponse.model_validate(record)


@router.post("/import", response_model=ImportResult)
async def import_api_keys(
    import_data: ApiKeyImport,
    pool: KeyPoolService = Depends(get_key_pool),
):
    """
    Bulk-import keys for one provider.

    Malformed and duplicate keys are skipped, not rejected; the response
    reports how many were imported, skipped and failed.
    """
    summary = await pool.import_keys(import_data.provider, import_data.keys)
    return ImportResult(imported=summary.imported, skipped=summary.skipped, failed=summary.failed)


@router.put("/{key_id}/status", response_model=ApiKeyResponse)
async def update_api_key_status(
    key_id: int,
    status_data: ApiKeyStatusUpdate,
    pool: KeyPoolService = Depends(get_key_pool),
):
    """Enable or disable a key."""
    try:
        record = await pool.set_active(key_id, status_data.is_active)
    except NotFoundError as e:
        raise _not_found(e)

    return ApiKeyResponse.model_validate(record)


@router.delete("/{key_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_api_key(
    key_id: int,
    pool: KeyPoolService = Depends(get_key_pool),
):
    """Permanently delete a key."""
    try:
        await pool.delete_key(key_id)
    except NotFoundError as e:
        raise _not_found(e)


@router.post("/{key_id}/test", response_model=KeyTestResult)
async def test_api_key(
    key_id: int,
    pool: KeyPoolService = Depends(get_key_pool),
):
    """
    Test a stored key against its provider.

    A rejected or unreachable key is a normal result (``success: false``),
    not an HTTP error.
    """
    try:
        result = await pool.test_key(key_id)
    except NotFoundError as e:
        raise _not_found(e)

    return KeyTestResult(**asdict(result))


@router.post("/providers/{provider}/test-all", response_model=ProviderTestResponse)
async def test_provider_keys(
    provider: Provider,
    pool: KeyPoolService = Depends(get_key_pool),
):
    """Test every key of a provider concurrently."""
    results = await pool.test_provider(provider)
    succeeded = sum(1 for r in results if r.success)

    return ProviderTestResponse(
        provider=provider,
        results=[KeyTestResult(**asdict(r)) for r in results],
        succeeded=succeeded,
        failed=len(results) - succeeded,
    )


@router.get("/{key_id}/quota", response_model=QuotaResponse)
async def get_api_key_quota(
    key_id: int,
    pool: KeyPoolService = Depends(get_key_pool),
):
    """Remaining quota for a key, where the provider reports it."""
    try:
        record, quota = await pool.check_quota(key_id)
    except NotFoundError as e:
        raise _not_found(e)
    except ProviderError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Quota check failed: {e}",
        )

    return QuotaResponse(
        key_id=record.id,
        provider=record.provider,
        remaining=quota.remaining,
        total=quota.total,
        unit=quota.unit,
    )
