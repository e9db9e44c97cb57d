"""Merchant-scoped unique transaction id allocation.

Uniqueness comes from the shared store's atomic "set if absent with TTL"; this
module only proposes candidates in order and takes the first one accepted.
"""

from datetime import date
from typing import Callable, Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

from paybroker.common.config import settings
from paybroker.common.errors import AllocatorUnavailable
from paybroker.common.logging import logger
from paybroker.common.metrics import transaction_id_collisions_total, transaction_ids_allocated_total


DEFAULT_PREFIX = "X"
RESERVATION_VALUE = "LOCK"


class TransactionStore(Protocol):
    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool: ...


class RedisTransactionStore:
    """Redis-backed reservation store: `SET key value NX EX ttl`."""

    def __init__(self, redis: Redis, key_prefix: str = "transaction_id:") -> None:
        self.redis = redis
        self.key_prefix = key_prefix

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        created = await self.redis.set(f"{self.key_prefix}{key}", value, nx=True, ex=ttl_seconds)
        return bool(created)

    async def close(self) -> None:
        await self.redis.aclose()


def transaction_prefix(merchant_name: str | None) -> str:
    if merchant_name is None or not merchant_name.strip():
        return DEFAULT_PREFIX
    return merchant_name.strip()[0].upper()


class TransactionIdAllocator:
    """Produces `<initial><YYYYMMDD><NN>` ids unique across all instances."""

    def __init__(
        self,
        store: TransactionStore,
        ttl_seconds: int = 86400,
        max_sequence: int = 99,
        today: Callable[[], date] = date.today,
        service_name: str | None = None,
    ) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.max_sequence = max_sequence
        self.today = today
        self.service_name = service_name or settings.service_name

    async def allocate(self, merchant_name: str | None) -> str:
        """Reserve and return the first free id for today."""

        prefix = transaction_prefix(merchant_name)
        stamp = self.today().strftime("%Y%m%d")
        for sequence in range(1, self.max_sequence + 1):
            candidate = f"{prefix}{stamp}{sequence:02d}"
            try:
                reserved = await self.store.set_if_absent(candidate, RESERVATION_VALUE, self.ttl_seconds)
            except (RedisError, OSError) as exc:
                logger.error("transaction_store_unreachable candidate=%s error=%s", candidate, exc)
                raise AllocatorUnavailable("Unable to connect to the transaction id store.") from exc
            if reserved:
                transaction_ids_allocated_total.labels(service=self.service_name).inc()
                logger.info("transaction_id_allocated transaction_id=%s attempts=%s", candidate, sequence)
                return candidate
            transaction_id_collisions_total.labels(service=self.service_name).inc()

        logger.error(
            "transaction_id_sequence_exhausted prefix=%s date=%s max_sequence=%s",
            prefix,
            stamp,
            self.max_sequence,
        )
        raise AllocatorUnavailable(f"No free transaction id left for prefix {prefix} on {stamp}.")
