"""
Redis-backed distributed lock for billing jobs.

Row locks on CreditBalance already serialize ledger writes per
organization. This lock is coarser: it keeps a periodic job (the credit
expiration sweep, webhook retries) from running on two workers at once.

Usage:
    from billing.locks import DistributedLock

    with DistributedLock("billing:expire-credits", ttl=600, blocking=False):
        credit_ledger.expire_sweep()
"""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

from django_redis import get_redis_connection

from billing.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis


class DistributedLock:
    """
    Token-owned Redis lock with a TTL.

    The key is set with NX and an expiry, so a crashed holder frees the lock
    once the TTL passes. Release only deletes the key while it still holds
    this instance's token.

    Args:
        key: Lock name (stored as "lock:<key>")
        ttl: Seconds before the lock frees itself
        blocking: Wait up to `timeout` seconds instead of failing at once
        timeout: Maximum wait in blocking mode
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    end
    return 0
    """

    POLL_INTERVAL = 0.05

    def __init__(
        self,
        key: str,
        ttl: int = 60,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    @property
    def redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def acquire(self) -> bool:
        """
        Acquire the lock.

        Raises:
            LockAcquisitionError: Held elsewhere (non-blocking) or still held
                after `timeout` seconds (blocking)
        """
        token = str(uuid.uuid4())
        deadline = time.monotonic() + (self.timeout if self.blocking else 0)

        while True:
            if self.redis.set(self.key, token, nx=True, ex=self.ttl):
                self._token = token
                return True
            if time.monotonic() >= deadline:
                break
            time.sleep(self.POLL_INTERVAL)

        raise LockAcquisitionError(
            f"Lock '{self.key}' is held by another worker",
            details={"key": self.key, "blocking": self.blocking},
        )

    def release(self) -> bool:
        """Release the lock if this instance still owns it."""
        if self._token is None:
            return False

        released = self.redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(released)

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False
