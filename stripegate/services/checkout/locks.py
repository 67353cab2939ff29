"""Optional per-order submission lock backed by redis.

Off by default. When enabled, a second submission for an order that is still
being charged fails fast instead of reaching the processor.
"""

from contextlib import contextmanager
from uuid import uuid4

import redis

from stripegate.common.config import GatewaySettings
from stripegate.common.errors import FormValidationError, StorageError
from stripegate.common.logging import logger


class SubmissionLock:
    def __init__(self, rdb: redis.Redis, ttl_seconds: int = 120) -> None:
        self.rdb = rdb
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> "SubmissionLock":
        return cls(
            redis.Redis.from_url(settings.redis_url, decode_responses=True),
            ttl_seconds=settings.submission_lock_ttl_seconds,
        )

    @staticmethod
    def _key(order_id: int) -> str:
        return f"submission-lock:order:{order_id}"

    @contextmanager
    def hold(self, order_id: int):
        """Hold the lock for one order for the duration of the block."""

        key = self._key(order_id)
        token = str(uuid4())
        try:
            acquired = self.rdb.set(key, token, nx=True, ex=self.ttl_seconds)
        except redis.RedisError as exc:
            logger.error("submission lock unavailable order_id=%s error=%s", order_id, exc)
            raise StorageError("Your payment could not be started, please try again.") from exc
        if not acquired:
            logger.warning("concurrent submission rejected order_id=%s", order_id)
            raise FormValidationError("A payment for this order is already being processed.")
        try:
            yield
        finally:
            try:
                if self.rdb.get(key) == token:
                    self.rdb.delete(key)
            except redis.RedisError as exc:
                # Key expires on its own after the TTL.
                logger.warning("submission lock release failed order_id=%s error=%s", order_id, exc)
