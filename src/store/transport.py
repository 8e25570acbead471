"""ResilientTransport — every call to the tabular store goes through here.

Per-call state machine::

    ATTEMPT -> SUCCESS
            -> RATE_LIMITED  -> BACKOFF -> ATTEMPT   (429, up to max_retries)
            -> NETWORK_ERROR -> BACKOFF -> ATTEMPT   (transport failure, same ceiling)
            -> SERVER_ERROR  -> DEGRADE              (5xx, no retry)
            -> RETRIES_EXHAUSTED -> DEGRADE
            -> CLIENT_ERROR  -> raise StoreClientError

DEGRADE returns a well-formed empty collection instead of raising, so a
struggling upstream makes callers look empty rather than broken. Successful
GET payloads are cached; degraded results never are.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import httpx

from src.models.records import Collection
from src.store.cache import TTLCache
from src.store.errors import StoreClientError
from src.store.query import Target

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class CallOutcome(StrEnum):
    """Terminal or intermediate state of one store call."""

    SUCCESS = "SUCCESS"
    RATE_LIMITED = "RATE_LIMITED"
    NETWORK_ERROR = "NETWORK_ERROR"
    SERVER_ERROR = "SERVER_ERROR"
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"
    CLIENT_ERROR = "CLIENT_ERROR"


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded linear backoff for rate limits and network failures."""

    max_retries: int = 1
    rate_limit_base_delay: float = 15.0
    rate_limit_delay_step: float = 5.0
    network_base_delay: float = 3.0
    network_delay_step: float = 2.0

    def rate_limit_delay(self, attempt: int) -> float:
        return self.rate_limit_base_delay + attempt * self.rate_limit_delay_step

    def network_delay(self, attempt: int) -> float:
        return self.network_base_delay + attempt * self.network_delay_step

    def compute_backoff_delays(self) -> list[float]:
        """Rate-limit delays for each allowed retry, in order."""
        return [self.rate_limit_delay(i) for i in range(self.max_retries)]


@dataclass(frozen=True)
class StoreResponse:
    """Parsed store reply, flagged when it is a degraded stand-in."""

    payload: Any
    outcome: CallOutcome
    status_code: int | None = None

    @property
    def degraded(self) -> bool:
        return self.outcome != CallOutcome.SUCCESS

    def collection(self) -> Collection:
        return Collection.from_payload(self.payload)

    def record(self) -> dict | None:
        """The payload as a single record, or None if degraded/non-object."""
        if self.degraded or not isinstance(self.payload, dict):
            return None
        return dict(self.payload)


def _degraded(outcome: CallOutcome, status_code: int | None = None) -> StoreResponse:
    return StoreResponse(
        payload=Collection.empty().to_payload(),
        outcome=outcome,
        status_code=status_code,
    )


class ResilientTransport:
    """Cached, retrying, degrading client for the tabular store."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: TTLCache,
        *,
        policy: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self._cache = cache
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._base = str(client.base_url).rstrip("/")

    @property
    def cache(self) -> TTLCache:
        return self._cache

    # ----- Cache keys -----

    def cache_key(self, target: Target) -> str:
        return f"GET:{self._base}{target.render()}"

    def invalidate_collection(self, table_id: str) -> int:
        """Drop every cached read of a collection, whatever its filters."""
        key = f"GET:{self._base}/{table_id}"
        dropped = int(self._cache.discard(key))
        dropped += self._cache.invalidate(f"{key}?")
        return dropped

    def invalidate_record(self, table_id: str, record_id: str) -> int:
        key = self.cache_key(Target(table_id=table_id, record_id=str(record_id)))
        dropped = int(self._cache.discard(key))
        dropped += self._cache.invalidate(f"{key}?")
        return dropped

    def invalidate_entity(self, table_id: str, record_id: str | None = None) -> int:
        """Invalidate after a write: the collection and, if given, the record."""
        dropped = self.invalidate_collection(table_id)
        if record_id is not None:
            dropped += self.invalidate_record(table_id, record_id)
        return dropped

    # ----- Operations -----

    async def get(self, target: Target, *, use_cache: bool = True) -> StoreResponse:
        key = self.cache_key(target)
        if not use_cache:
            response = await self._execute("GET", target)
            if not response.degraded:
                # Older loads still in flight for this key must not overwrite it.
                self._cache.discard(key)
                self._cache.put(key, response)
            return response

        async def load() -> tuple[StoreResponse, bool]:
            response = await self._execute("GET", target)
            return response, not response.degraded

        return await self._cache.get_or_load(key, load)

    async def fetch_all(
        self,
        target: Target,
        *,
        page_size: int = 1000,
        use_cache: bool = True,
    ) -> Collection:
        """Drain a collection with limit/offset paging.

        A degraded page degrades the whole listing to an empty collection
        rather than returning a truncated one.
        """
        items: list[dict] = []
        offset = 0
        while True:
            response = await self.get(target.page(page_size, offset), use_cache=use_cache)
            if response.degraded:
                return Collection.empty()
            page = response.collection()
            items.extend(page.items)
            if len(page.items) < page_size or len(items) >= page.total:
                break
            offset += page_size
        return Collection.of(items)

    async def post(self, target: Target, body: dict) -> StoreResponse:
        return await self._execute("POST", target, body)

    async def patch(self, target: Target, body: dict) -> StoreResponse:
        return await self._execute("PATCH", target, body)

    async def delete(self, target: Target) -> StoreResponse:
        return await self._execute("DELETE", target)

    # ----- Retry loop -----

    async def _execute(
        self,
        method: str,
        target: Target,
        body: dict | None = None,
    ) -> StoreResponse:
        url = target.render()
        attempt = 0
        while True:
            try:
                response = await self._client.request(method, url, json=body)
            except httpx.TransportError as exc:
                if attempt < self.policy.max_retries:
                    delay = self.policy.network_delay(attempt)
                    logger.warning(
                        "%s %s network error (%s); retry %d in %.1fs",
                        method, url, exc.__class__.__name__, attempt + 1, delay,
                    )
                    await self._sleep(delay)
                    attempt += 1
                    continue
                logger.warning("%s %s network error after %d attempts; degrading",
                               method, url, attempt + 1)
                return _degraded(CallOutcome.RETRIES_EXHAUSTED)

            status = response.status_code
            if status == 429:
                if attempt < self.policy.max_retries:
                    delay = self.policy.rate_limit_delay(attempt)
                    logger.warning("%s %s rate limited; retry %d in %.1fs",
                                   method, url, attempt + 1, delay)
                    await self._sleep(delay)
                    attempt += 1
                    continue
                logger.warning("%s %s still rate limited after %d attempts; degrading",
                               method, url, attempt + 1)
                return _degraded(CallOutcome.RETRIES_EXHAUSTED, status)

            if status >= 500:
                logger.warning("%s %s upstream error %d; degrading", method, url, status)
                return _degraded(CallOutcome.SERVER_ERROR, status)

            if status >= 400:
                logger.info("%s %s rejected with %d", method, url, status)
                raise StoreClientError(status, response.text[:500])

            return StoreResponse(
                payload=self._parse(response),
                outcome=CallOutcome.SUCCESS,
                status_code=status,
            )

    @staticmethod
    def _parse(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise StoreClientError(response.status_code, "malformed JSON payload") from exc
