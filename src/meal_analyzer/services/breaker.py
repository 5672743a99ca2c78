"""Circuit breaker guarding flaky nutrition dependencies."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

_logger = logging.getLogger(__name__)


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """Timestamp-based breaker that skips a dependency after repeated failures.

    The breaker opens after ``failure_threshold`` consecutive failures. Once
    ``cooldown_seconds`` have passed it goes half-open and lets a single trial
    call through: a failed trial reopens it immediately, a successful one
    closes it. A trial that never reports back frees its slot after another
    cooldown.
    """

    name: str
    failure_threshold: int = 5
    cooldown_seconds: float = 300.0
    clock: Callable[[], float] = time.monotonic
    _failure_count: int = field(default=0, init=False)
    _opened_at: float | None = field(default=None, init=False)
    _trial_started_at: float | None = field(default=None, init=False)

    @property
    def state(self) -> BreakerState:
        if self._opened_at is None:
            return BreakerState.CLOSED
        if self._trial_started_at is not None:
            return BreakerState.HALF_OPEN
        return BreakerState.OPEN

    @property
    def is_open(self) -> bool:
        return self._opened_at is not None

    def allow_request(self) -> bool:
        """Return True when the guarded dependency may be called."""
        if self._opened_at is None:
            return True
        now = self.clock()
        trial_started_at = self._trial_started_at
        if trial_started_at is not None:
            if now - trial_started_at < self.cooldown_seconds:
                return False
        elif now - self._opened_at < self.cooldown_seconds:
            return False
        _logger.info("Circuit breaker %s half-open, allowing a trial call", self.name)
        self._trial_started_at = now
        return True

    def record_success(self) -> None:
        if self._opened_at is not None:
            _logger.info("Circuit breaker %s closed", self.name)
        self._failure_count = 0
        self._opened_at = None
        self._trial_started_at = None

    def record_failure(self) -> None:
        self._failure_count += 1
        if self._trial_started_at is not None:
            _logger.warning("Circuit breaker %s trial call failed, reopening", self.name)
            self._open()
            return
        if self._failure_count >= self.failure_threshold and self._opened_at is None:
            _logger.warning(
                "Circuit breaker %s opened after %s failures",
                self.name,
                self._failure_count,
            )
            self._open()

    def status(self) -> dict[str, object]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self._failure_count,
        }

    def _open(self) -> None:
        self._opened_at = self.clock()
        self._trial_started_at = None
