"""Liveness probes: confirm a stored key still authenticates with its provider."""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import httpx

from aiverse.core.config import settings
from aiverse.core.keys.errors import (
    NotFoundError,
    ProviderAuthError,
    ProviderError,
    ProviderNetworkError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderTimeoutError,
)
from aiverse.core.keys.providers import Provider, ProviderAdapter, QuotaInfo, get_adapter
from aiverse.core.keys.store import KeyStore
from aiverse.models.database import ApiKey

logger = logging.getLogger(__name__)


@dataclass
class ProbeResult:
    """Outcome of testing one key."""

    key_id: int
    alias: str
    success: bool
    response_time_ms: int
    error: Optional[str] = None
    error_type: Optional[str] = None
    tokens_remaining: Optional[int] = None


class KeyProber:
    """Issues minimal authenticated requests and records the outcome on the key."""

    def __init__(
        self,
        store: KeyStore,
        timeout: Optional[float] = None,
        max_concurrency: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            store: Store used to read secrets and record usage
            timeout: Ceiling in seconds for one provider round-trip
            max_concurrency: Parallel probes allowed inside ``test_all``
            transport: Optional httpx transport (e.g. a mock in tests)
        """
        self.store = store
        self.timeout = timeout if timeout is not None else settings.probe_timeout_seconds
        self._semaphore = asyncio.Semaphore(max_concurrency or settings.probe_max_concurrency)
        self._transport = transport

    async def _send(self, adapter: ProviderAdapter, secret: str) -> httpx.Response:
        request = adapter.build_probe_request(secret)
        request.extensions["timeout"] = httpx.Timeout(self.timeout).as_dict()

        async with httpx.AsyncClient(transport=self._transport) as client:
            try:
                # wait_for bounds the whole exchange even if the transport ignores timeouts
                response = await asyncio.wait_for(client.send(request), timeout=self.timeout)
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                raise ProviderTimeoutError(f"Request timed out after {self.timeout:g}s") from e
            except httpx.TransportError as e:
                raise ProviderNetworkError(f"Connection error: {str(e) or e.__class__.__name__}") from e
            except httpx.RequestError as e:
                # Undecodable body, redirect loop and the like
                raise ProviderResponseError(f"Invalid response: {str(e) or e.__class__.__name__}") from e

        status = response.status_code
        if status in (401, 403):
            raise ProviderAuthError(f"Authentication failed ({status}). Check the API key.")
        if status == 429:
            raise ProviderRateLimitError("Rate limited by provider. Try again later.")
        if not response.is_success:
            raise ProviderResponseError(f"Unexpected response status {status}")
        return response

    async def _probe(self, record: ApiKey) -> ProbeResult:
        adapter = get_adapter(record.provider)
        secret = self.store.reveal_secret(record)

        started = time.perf_counter()
        try:
            response = await self._send(adapter, secret)
            quota = adapter.extract_quota(response)
        except ProviderError as e:
            return ProbeResult(
                key_id=record.id,
                alias=record.alias,
                success=False,
                response_time_ms=int((time.perf_counter() - started) * 1000),
                error=str(e),
                error_type=e.kind,
            )

        return ProbeResult(
            key_id=record.id,
            alias=record.alias,
            success=True,
            response_time_ms=int((time.perf_counter() - started) * 1000),
            tokens_remaining=quota.remaining,
        )

    async def test(self, record: ApiKey) -> ProbeResult:
        """
        Probe one key and count the attempt on it.

        Provider failures come back as ``success=False`` results, never as
        exceptions.
        """
        async with self._semaphore:
            result = await self._probe(record)

        try:
            await self.store.record_usage(record.id, result.success, datetime.utcnow())
        except NotFoundError:
            logger.warning("Key %s (%s) was deleted while being tested", record.id, record.alias)
            return ProbeResult(
                key_id=record.id,
                alias=record.alias,
                success=False,
                response_time_ms=result.response_time_ms,
                error="Key was deleted during the test",
                error_type="not_found",
            )

        if result.success:
            logger.info("Key %s (%s) OK in %dms", record.id, record.alias, result.response_time_ms)
        else:
            logger.info(
                "Key %s (%s) failed in %dms: %s",
                record.id,
                record.alias,
                result.response_time_ms,
                result.error,
            )
        return result

    async def test_all(self, provider: Provider | str) -> list[ProbeResult]:
        """
        Probe every key of a provider concurrently; each probe has its own timeout.

        Returns one result per key, in creation order. An unexpected error
        testing one key becomes that key's failed result and does not cost
        the others theirs.
        """
        records = await self.store.list_by_provider(provider)
        outcomes = await asyncio.gather(
            *(self.test(record) for record in records),
            return_exceptions=True,
        )

        results = []
        for record, outcome in zip(records, outcomes):
            if isinstance(outcome, ProbeResult):
                results.append(outcome)
                continue
            if not isinstance(outcome, Exception):
                raise outcome
            logger.error(
                "Testing key %s (%s) failed unexpectedly",
                record.id,
                record.alias,
                exc_info=outcome,
            )
            results.append(
                ProbeResult(
                    key_id=record.id,
                    alias=record.alias,
                    success=False,
                    response_time_ms=0,
                    error=f"Internal error: {outcome.__class__.__name__}",
                    error_type="internal",
                )
            )
        return results

    async def check_quota(self, record: ApiKey) -> QuotaInfo:
        """
        Ask the provider for the key's remaining allowance.

        Read-only: usage counters are not touched.

        Raises:
            ProviderError: the provider call failed
        """
        adapter = get_adapter(record.provider)
        response = await self._send(adapter, self.store.reveal_secret(record))
        return adapter.extract_quota(response)
