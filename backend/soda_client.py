"""Blockbrief Backend - Socrata (SODA) HTTP client

Every dataset query in the app goes through ``SodaClient.query_dataset``:
- one process-wide semaphore bounds in-flight requests across all datasets
- per-call timeout, raised as ``SodaTimeoutError``
- retry with linear backoff on timeouts, network errors and 408/429/5xx
- optional transport-level response cache (cachetools) keyed by request URL,
  separate from the result cache the module builders use
"""

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
from cachetools import TTLCache as ResponseCache

from config import (
    SOCRATA_APP_TOKEN, SODA_BASE_URL, SODA_CONCURRENCY,
    SODA_TIMEOUT_SECONDS, SODA_MAX_RETRIES, SODA_RETRY_BACKOFF_SECONDS,
    SODA_DEFAULT_LIMIT, SODA_RESPONSE_CACHE, SODA_RESPONSE_CACHE_SECONDS,
)

logger = logging.getLogger("blockbrief.soda")

RETRYABLE_STATUS = {408, 429}
BODY_SNIPPET_CHARS = 240


class SodaError(Exception):
    """A dataset query failed. Carries the dataset id and, when known, the HTTP status."""

    def __init__(self, dataset_id: str, message: str, status_code: Optional[int] = None,
                 body: str = "", retryable: bool = False):
        super().__init__(message)
        self.dataset_id = dataset_id
        self.status_code = status_code
        self.body = body
        self.retryable = retryable


class SodaTimeoutError(SodaError):
    def __init__(self, dataset_id: str, timeout: float):
        super().__init__(dataset_id, f"SODA {dataset_id} timed out after {timeout:g}s", retryable=True)


class SodaClient:
    def __init__(
        self,
        base_url: str = SODA_BASE_URL,
        app_token: str = SOCRATA_APP_TOKEN,
        concurrency: int = SODA_CONCURRENCY,
        timeout: float = SODA_TIMEOUT_SECONDS,
        max_retries: int = SODA_MAX_RETRIES,
        backoff_seconds: float = SODA_RETRY_BACKOFF_SECONDS,
        response_cache: bool = SODA_RESPONSE_CACHE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.app_token = app_token
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._semaphore = asyncio.Semaphore(concurrency)
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._response_cache_enabled = response_cache
        self._response_caches: dict[int, ResponseCache] = {}

    @staticmethod
    def build_params(select: Optional[str] = None, where: Optional[str] = None, order: Optional[str] = None,
                     group: Optional[str] = None, limit: Optional[int] = None) -> dict[str, str]:
        params: dict[str, str] = {}
        if select:
            params["$select"] = select
        if where:
            params["$where"] = where
        if order:
            params["$order"] = order
        if group:
            params["$group"] = group
        params["$limit"] = str(limit if limit is not None else SODA_DEFAULT_LIMIT)
        return params

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.app_token:
            headers["X-App-Token"] = self.app_token
        return headers

    async def query_dataset(
        self,
        dataset_id: str,
        select: Optional[str] = None,
        where: Optional[str] = None,
        order: Optional[str] = None,
        group: Optional[str] = None,
        limit: Optional[int] = None,
        cache_seconds: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        params = self.build_params(select, where, order, group, limit)
        url = f"{self.base_url}/{dataset_id}.json"

        cache = None
        cache_key = f"{url}?{urlencode(params)}"
        if self._response_cache_enabled:
            ttl = cache_seconds if cache_seconds is not None else SODA_RESPONSE_CACHE_SECONDS
            cache = self._response_caches.setdefault(ttl, ResponseCache(maxsize=512, ttl=ttl))
            cached = cache.get(cache_key)
            if cached is not None:
                logger.debug(f"SODA response cache hit for {dataset_id}")
                return list(cached)

        attempt = 0
        while True:
            attempt += 1
            try:
                rows = await self._fetch_once(dataset_id, url, params)
                break
            except SodaError as e:
                if not e.retryable or attempt > self.max_retries:
                    logger.warning(f"SODA {dataset_id} failed after {attempt} attempt(s): {e}")
                    raise
                delay = self.backoff_seconds * attempt
                logger.info(f"SODA {dataset_id} retry {attempt}/{self.max_retries} in {delay:.2f}s: {e}")
                await asyncio.sleep(delay)

        if cache is not None:
            cache[cache_key] = rows
        return list(rows)

    async def _fetch_once(self, dataset_id: str, url: str, params: dict[str, str]) -> list[dict[str, Any]]:
        async with self._semaphore:
            try:
                resp = await asyncio.wait_for(
                    self._client.get(url, params=params, headers=self._headers()),
                    timeout=self.timeout,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                raise SodaTimeoutError(dataset_id, self.timeout) from e
            except httpx.TransportError as e:
                raise SodaError(dataset_id, f"SODA {dataset_id} network error: {e}", retryable=True) from e

        if not resp.is_success:
            body = resp.text[:BODY_SNIPPET_CHARS]
            status = resp.status_code
            raise SodaError(
                dataset_id,
                f"SODA {dataset_id} failed ({status}): {body}",
                status_code=status,
                body=body,
                retryable=status in RETRYABLE_STATUS or status >= 500,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise SodaError(dataset_id, f"SODA {dataset_id} returned invalid JSON", status_code=resp.status_code) from e

        if not isinstance(data, list):
            raise SodaError(dataset_id, f"SODA {dataset_id} returned a non-list payload", status_code=resp.status_code)

        logger.debug(f"SODA {dataset_id}: {len(data)} rows")
        return data

    def clear_response_cache(self):
        self._response_caches.clear()

    async def aclose(self):
        await self._client.aclose()
