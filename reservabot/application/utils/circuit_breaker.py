from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, TypeVar

from reservabot.application.exceptions import CircuitOpenError

T = TypeVar("T")

STATE_CLOSED = "closed"
STATE_OPEN = "open"
STATE_HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Guards an unreliable dependency.

    CLOSED: calls pass; `failure_threshold` consecutive failures open the circuit.
    OPEN: calls are rejected with CircuitOpenError until `cooldown_seconds` elapse.
    HALF_OPEN: trial calls pass; `success_threshold` consecutive successes close
    the circuit, any failure opens it again.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self._failure_threshold = failure_threshold
        self._success_threshold = success_threshold
        self._cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._state = STATE_CLOSED
        self._failures = 0
        self._successes = 0
        self._opened_at: float | None = None
        self._total_calls = 0
        self._total_failures = 0
        self._total_rejections = 0
        self._logger = logging.getLogger(__name__)

    @property
    def state(self) -> str:
        with self._lock:
            self._maybe_half_open()
            return self._state

    def call(self, fn: Callable[[], T]) -> T:
        with self._lock:
            self._maybe_half_open()
            if self._state == STATE_OPEN:
                self._total_rejections += 1
                raise CircuitOpenError(f"Circuit '{self.name}' is open")
            self._total_calls += 1

        try:
            result = fn()
        except Exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    def _maybe_half_open(self) -> None:
        if self._state == STATE_OPEN and self._opened_at is not None:
            if self._clock() - self._opened_at >= self._cooldown_seconds:
                self._state = STATE_HALF_OPEN
                self._successes = 0
                self._logger.info("Circuit half-open", extra={"breaker": self.name})

    def _on_success(self) -> None:
        with self._lock:
            self._failures = 0
            if self._state == STATE_HALF_OPEN:
                self._successes += 1
                if self._successes >= self._success_threshold:
                    self._state = STATE_CLOSED
                    self._successes = 0
                    self._opened_at = None
                    self._logger.info("Circuit closed", extra={"breaker": self.name})

    def _on_failure(self) -> None:
        with self._lock:
            self._total_failures += 1
            self._failures += 1
            if self._state == STATE_HALF_OPEN or self._failures >= self._failure_threshold:
                self._state = STATE_OPEN
                self._opened_at = self._clock()
                self._successes = 0
                self._logger.warning(
                    "Circuit opened",
                    extra={"breaker": self.name, "failures": self._failures},
                )

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            self._maybe_half_open()
            return {
                "name": self.name,
                "state": self._state,
                "consecutive_failures": self._failures,
                "consecutive_successes": self._successes,
                "total_calls": self._total_calls,
                "total_failures": self._total_failures,
                "total_rejections": self._total_rejections,
                "opened_at": self._opened_at,
            }

    def reset(self) -> None:
        with self._lock:
            self._state = STATE_CLOSED
            self._failures = 0
            self._successes = 0
            self._opened_at = None
