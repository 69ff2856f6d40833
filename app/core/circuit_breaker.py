"""
Cache-backed circuit breaker for outbound provider calls.

The PayMongo adapter wraps every API request in a breaker so that a
provider outage turns into fast ExternalServiceError responses instead of
request threads piling up on timeouts. State lives in the Django cache
(Redis in production) so every web and Celery process sees the same
circuit.

States:
    - CLOSED: calls pass through, consecutive failures are counted
    - OPEN: calls fail fast with CircuitOpenError until recovery_timeout
    - HALF_OPEN: a limited number of probe calls decide whether to close

Usage:
    from core.circuit_breaker import CircuitBreaker

    paymongo_circuit = CircuitBreaker(
        name="paymongo-api",
        failure_threshold=5,
        recovery_timeout=60,
        excluded_exceptions=(ProviderInvalidRequestError,),
    )

    with paymongo_circuit.call():
        response = client.post("/v1/checkout_sessions", json=body)

Cache errors never block calls: the breaker logs and fails open.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from django.core.cache import cache

from core.exceptions import ExternalServiceError

if TYPE_CHECKING:
    from collections.abc import Generator

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    recovery_timeout: int = 60
    half_open_max_calls: int = 1
    # Must outlive recovery_timeout or an open circuit silently closes
    cache_ttl: int = 3600


class CircuitOpenError(ExternalServiceError):
    """Raised instead of calling a provider whose circuit is open."""

    default_error_code: str = "CIRCUIT_OPEN"


class CircuitBreaker:
    """
    Distributed circuit breaker keyed by name.

    Instances with the same name share state through the cache, so the
    module-level breaker in each process acts on one circuit. Every
    instance is registered so the health check can report it.

    Args:
        name: Circuit identifier, used in cache keys and logs
        failure_threshold: Consecutive failures that open the circuit
        recovery_timeout: Seconds an open circuit waits before probing
        half_open_max_calls: Probe calls allowed while half-open
        excluded_exceptions: Raised through call() without counting as
            failures (client errors that say nothing about provider health)
    """

    _registry: dict[str, CircuitBreaker] = {}

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        half_open_max_calls: int = 1,
        excluded_exceptions: tuple[type[BaseException], ...] = (),
    ):
        self.name = name
        self.excluded_exceptions = excluded_exceptions
        self.config = CircuitBreakerConfig(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            half_open_max_calls=half_open_max_calls,
        )
        prefix = f"circuit:{name}"
        self._keys = {
            "state": f"{prefix}:state",
            "failures": f"{prefix}:failures",
            "opened_at": f"{prefix}:opened_at",
            "probes": f"{prefix}:half_open_calls",
        }
        CircuitBreaker._registry[name] = self

    @classmethod
    def registered(cls) -> list[CircuitBreaker]:
        """Breakers created in this process, sorted by name."""
        return [cls._registry[name] for name in sorted(cls._registry)]

    @property
    def state(self) -> str:
        """Stored state, read without consuming a half-open probe."""
        return self._get_state().value

    # =========================================================================
    # Public API
    # =========================================================================

    def is_available(self) -> bool:
        """
        Whether a call may go through now.

        An open circuit past its recovery timeout moves to half-open and
        the call that noticed it counts as the first probe.
        """
        try:
            state = self._get_state()
            if state == CircuitState.CLOSED:
                return True

            if state == CircuitState.OPEN:
                opened_at = self._get_opened_at()
                if opened_at is None or time.time() - opened_at < self.config.recovery_timeout:
                    return False
                self._set_state(CircuitState.HALF_OPEN)
                self._put("probes", 0)
                logger.info("Circuit half-open, probing provider", extra={"circuit": self.name})

            return self._incr("probes") <= self.config.half_open_max_calls
        except Exception as e:
            logger.warning(
                f"Circuit breaker cache error, failing open: {e}",
                extra={"circuit": self.name},
            )
            return True

    def record_success(self) -> None:
        try:
            if self._get_state() == CircuitState.HALF_OPEN:
                self._set_state(CircuitState.CLOSED)
                logger.info("Circuit closed after successful probe", extra={"circuit": self.name})
            self._put("failures", 0)
        except Exception as e:
            logger.warning(
                f"Circuit breaker failed to record success: {e}",
                extra={"circuit": self.name},
            )

    def record_failure(self) -> None:
        try:
            if self._get_state() == CircuitState.HALF_OPEN:
                self._open()
                logger.warning("Circuit reopened after failed probe", extra={"circuit": self.name})
                return

            failures = self._incr("failures")
            if failures >= self.config.failure_threshold:
                self._open()
                logger.warning(
                    f"Circuit opened after {failures} consecutive failures",
                    extra={"circuit": self.name, "failure_count": failures},
                )
        except Exception as e:
            logger.warning(
                f"Circuit breaker failed to record failure: {e}",
                extra={"circuit": self.name},
            )

    @contextmanager
    def call(self) -> Generator[None, None, None]:
        """
        Guard a block of provider I/O.

        Raises:
            CircuitOpenError: The circuit is open; the block is not run
        """
        if not self.is_available():
            raise CircuitOpenError(
                f"Circuit '{self.name}' is open",
                details={"circuit": self.name},
            )

        try:
            yield
        except CircuitOpenError:
            raise
        except self.excluded_exceptions:
            self.record_success()
            raise
        except Exception:
            self.record_failure()
            raise
        else:
            self.record_success()

    def reset(self) -> None:
        """Force the circuit closed and clear its counters."""
        self._set_state(CircuitState.CLOSED)
        self._put("failures", 0)
        self._put("probes", 0)
        cache.delete(self._keys["opened_at"])

    def get_status(self) -> dict:
        """Snapshot for monitoring and admin tooling."""
        state = self._get_state()
        status = {
            "name": self.name,
            "state": state.value,
            "failure_count": cache.get(self._keys["failures"], 0),
            "failure_threshold": self.config.failure_threshold,
        }
        opened_at = self._get_opened_at()
        if state != CircuitState.CLOSED and opened_at:
            elapsed = time.time() - opened_at
            status["recovery_in_seconds"] = max(0, int(self.config.recovery_timeout - elapsed))
        return status

    def __repr__(self) -> str:
        return f"CircuitBreaker(name={self.name!r}, state={self.state})"

    # =========================================================================
    # Cache helpers
    # =========================================================================

    def _get_state(self) -> CircuitState:
        try:
            return CircuitState(cache.get(self._keys["state"], CircuitState.CLOSED.value))
        except ValueError:
            return CircuitState.CLOSED

    def _set_state(self, state: CircuitState) -> None:
        self._put("state", state.value)

    def _get_opened_at(self) -> float | None:
        return cache.get(self._keys["opened_at"])

    def _open(self) -> None:
        self._set_state(CircuitState.OPEN)
        self._put("opened_at", time.time())

    def _put(self, name: str, value) -> None:
        cache.set(self._keys[name], value, timeout=self.config.cache_ttl)

    def _incr(self, name: str) -> int:
        try:
            return cache.incr(self._keys[name])
        except ValueError:
            self._put(name, 1)
            return 1
