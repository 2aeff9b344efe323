"""Circuit breaker for calls to slow or failing external dependencies.

CLOSED lets calls through and records their outcome in a rolling window.
Once the window holds at least ``volume_threshold`` calls and the error
percentage is above ``error_threshold_percentage`` the breaker OPENs and
rejects calls without invoking the dependency. After ``reset_timeout_seconds``
it is HALF_OPEN: a single trial call is admitted, success closes the breaker,
failure opens it again.

Every call is bounded by ``timeout_seconds``; a timeout is a failure.
"""

import asyncio
import inspect
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Optional, Tuple

from inquaire.logging_config import get_logger

logger = get_logger("circuit_breaker")


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitOpenError(Exception):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Circuit breaker '{name}' is open")


@dataclass(frozen=True)
class BreakerOptions:
    timeout_seconds: float = 30.0
    error_threshold_percentage: float = 50.0
    reset_timeout_seconds: float = 60.0
    volume_threshold: int = 10
    rolling_window_seconds: float = 10.0


DEFAULT_BREAKER_OPTIONS = BreakerOptions()


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        options: BreakerOptions = DEFAULT_BREAKER_OPTIONS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.options = options
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._opened_at: Optional[float] = None
        self._window: Deque[Tuple[float, bool]] = deque()
        self._trial_in_flight = False
        self._rejected = 0

    @property
    def state(self) -> CircuitState:
        if (
            self._state == CircuitState.OPEN
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self.options.reset_timeout_seconds
        ):
            self._set_state(CircuitState.HALF_OPEN)
        return self._state

    async def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run ``func`` through the breaker.

        Sync callables run in a worker thread so the timeout can be enforced.
        Raises CircuitOpenError without calling ``func`` while open.
        """
        is_trial = self._acquire()
        try:
            if inspect.iscoroutinefunction(func):
                awaitable = func(*args, **kwargs)
            else:
                awaitable = asyncio.to_thread(func, *args, **kwargs)
            result = await asyncio.wait_for(awaitable, timeout=self.options.timeout_seconds)
        except Exception as exc:
            self._record_failure(is_trial, exc)
            raise
        finally:
            if is_trial:
                self._trial_in_flight = False
        self._record_success(is_trial)
        return result

    def open(self) -> None:
        self._set_state(CircuitState.OPEN)

    def close(self) -> None:
        self._set_state(CircuitState.CLOSED)

    def status(self) -> dict:
        self._prune()
        total = len(self._window)
        failures = sum(1 for _, ok in self._window if not ok)
        return {
            "name": self.name,
            "state": self.state.value,
            "calls": total,
            "failures": failures,
            "error_percentage": round(failures * 100.0 / total, 2) if total else 0.0,
            "rejected": self._rejected,
        }

    def _acquire(self) -> bool:
        state = self.state
        if state == CircuitState.OPEN:
            self._rejected += 1
            raise CircuitOpenError(self.name)
        if state == CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                self._rejected += 1
                raise CircuitOpenError(self.name)
            self._trial_in_flight = True
            return True
        return False

    def _record_success(self, is_trial: bool) -> None:
        if is_trial:
            self._set_state(CircuitState.CLOSED)
            return
        self._window.append((self._clock(), True))
        self._prune()

    def _record_failure(self, is_trial: bool, exc: Exception) -> None:
        logger.warning(
            "Circuit breaker call failed",
            extra={"context": {"breaker": self.name, "error": str(exc) or type(exc).__name__}},
        )
        if is_trial or self._state == CircuitState.HALF_OPEN:
            self._set_state(CircuitState.OPEN)
            return
        self._window.append((self._clock(), False))
        self._prune()
        total = len(self._window)
        if total < self.options.volume_threshold:
            return
        failures = sum(1 for _, ok in self._window if not ok)
        if failures * 100.0 / total > self.options.error_threshold_percentage:
            self._set_state(CircuitState.OPEN)

    def _prune(self) -> None:
        cutoff = self._clock() - self.options.rolling_window_seconds
        while self._window and self._window[0][0] < cutoff:
            self._window.popleft()

    def _set_state(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
        elif new_state == CircuitState.CLOSED:
            self._opened_at = None
            self._window.clear()
        if old_state != new_state:
            log = logger.error if new_state == CircuitState.OPEN else logger.info
            log(
                "Circuit breaker state changed",
                extra={"context": {"breaker": self.name, "from": old_state.value, "to": new_state.value}},
            )
