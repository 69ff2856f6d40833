"""
Concurrency control utilities for aid operations.

This module provides two complementary concurrency mechanisms:

1. **Distributed Locks** (DistributedLock)
   - Redis-based mutual exclusion across processes/servers
   - TTL prevents deadlocks from crashed processes
   - Use for: periodic sweeps that must not overlap across workers

2. **Row Locks** (lock_row)
   - select_for_update() inside the caller's transaction
   - Use for: every ledger and state machine mutation

Usage:

    from aid.locks import DistributedLock, lock_row

    with DistributedLock("aid:expire_transactions", ttl=300, blocking=False):
        sweep()

    with transaction.atomic():
        budget = lock_row(PartnerSchoolBudget, budget_id)
        budget.disbursed_amount += amount
        budget.save()
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING, TypeVar

from django.db import models

from django_redis import get_redis_connection

from aid.exceptions import LockAcquisitionError
from core.exceptions import NotFoundError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

T = TypeVar("T", bound=models.Model)


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    Features:
        - Automatic TTL prevents deadlocks from crashed processes
        - Token-based ownership prevents accidental release by other processes
        - Blocking and non-blocking acquisition modes
        - Lock extension for long-running sweeps

    Example:
        lock = DistributedLock("aid:expire_transactions", ttl=300, blocking=False)
        try:
            with lock:
                for batch in batches:
                    process(batch)
                    lock.extend()
        except LockAcquisitionError:
            logger.info("Sweep already running on another worker")

    Args:
        key: Lock identifier (will be prefixed with "lock:")
        ttl: Lock TTL in seconds (auto-releases after this time)
        blocking: If True, acquire() waits until lock is available
        timeout: Maximum wait time in seconds (only if blocking=True)
    """

    # Lua script for atomic check-and-delete (release)
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    # Lua script for atomic check-and-extend, TTL in milliseconds
    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("pexpire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        """Get Redis connection (lazy initialization)."""
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """
        Attempt to acquire the lock.

        Returns:
            True if lock was acquired

        Raises:
            LockAcquisitionError: If lock couldn't be acquired
        """
        token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            end_time = time.time() + self.timeout
            while time.time() < end_time:
                if self._try_acquire(redis, token):
                    self._token = token
                    return True
                time.sleep(0.05)

            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not self._try_acquire(redis, token):
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        self._token = token
        return True

    def _try_acquire(self, redis: Redis, token: str) -> bool:
        """Try once to acquire the lock (SET NX PX)."""
        return bool(redis.set(self.key, token, nx=True, px=self.ttl * 1000))

    def release(self) -> bool:
        """
        Release the lock if we hold it.

        Returns:
            True if lock was released, False if we didn't hold it
        """
        if self._token is None:
            return False

        redis = self._get_redis()
        result = redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    def extend(self, additional_ttl: int | None = None) -> bool:
        """
        Reset the lock TTL if we hold it.

        The new TTL replaces the remaining time (not added to it).

        Args:
            additional_ttl: New TTL in seconds (defaults to original TTL)

        Returns:
            True if lock was extended, False if we don't hold it
        """
        if self._token is None:
            return False

        ttl = additional_ttl or self.ttl
        redis = self._get_redis()
        result = redis.eval(self.EXTEND_SCRIPT, 1, self.key, self._token, ttl * 1000)
        return bool(result)

    @property
    def is_held(self) -> bool:
        """Check if we currently hold the lock."""
        return self._token is not None

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


# =============================================================================
# Row Locks
# =============================================================================


def lock_row(
    model_class: type[T],
    pk: Any,
    error_code: str | None = None,
    manager: str = "objects",
) -> T:
    """
    Lock a single row for update and return it.

    Args:
        model_class: Django model class
        pk: Primary key of the record
        error_code: Error code for the NotFoundError (defaults to
            "<MODEL>_NOT_FOUND")
        manager: Name of the manager to query through

    Returns:
        The locked model instance

    Raises:
        NotFoundError: If the record doesn't exist

    Note:
        Must be called within transaction.atomic(). The lock is held
        until the transaction commits or rolls back.
    """
    queryset = getattr(model_class, manager).select_for_update()
    instance = queryset.filter(pk=pk).first()
    if instance is None:
        model_name = model_class.__name__
        raise NotFoundError(
            f"{model_name} {pk} not found",
            error_code=error_code or f"{model_name.upper()}_NOT_FOUND",
            details={"pk": str(pk)},
        )
    return instance


__all__ = [
    "DistributedLock",
    "lock_row",
]
