import logging
import time
from dataclasses import dataclass, field
from enum import Enum

from menu_api.metrics import CIRCUIT_STATE

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


_STATE_GAUGE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


@dataclass
class CircuitBreaker:
    """Fail fast once a gateway has failed ``failure_threshold`` times in a row.

    After ``recovery_timeout`` seconds the breaker lets one trial request through
    (HALF_OPEN); a success closes it again, a failure re-opens it.
    """

    name: str
    failure_threshold: int
    recovery_timeout: float

    _failures: int = field(default=0, init=False, repr=False)
    _last_failure_time: float | None = field(default=None, init=False, repr=False)
    _state: CircuitState = field(default=CircuitState.CLOSED, init=False, repr=False)

    def __post_init__(self) -> None:
        self._publish(CircuitState.CLOSED)

    @property
    def state(self) -> CircuitState:
        if (
            self._state == CircuitState.OPEN
            and self._last_failure_time is not None
            and time.monotonic() - self._last_failure_time >= self.recovery_timeout
        ):
            self._state = CircuitState.HALF_OPEN
            self._publish(CircuitState.HALF_OPEN)
            logger.info("Circuit breaker transitioned to HALF_OPEN", extra={"provider": self.name})
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failures = 0
        self._state = CircuitState.CLOSED
        self._publish(CircuitState.CLOSED)

    def record_failure(self) -> None:
        self._failures += 1
        self._last_failure_time = time.monotonic()
        if self._state == CircuitState.HALF_OPEN or (
            self._failures >= self.failure_threshold and self._state != CircuitState.OPEN
        ):
            self._state = CircuitState.OPEN
            self._publish(CircuitState.OPEN)
            logger.warning(
                "Circuit breaker OPENED after %d consecutive failures",
                self._failures,
                extra={"provider": self.name},
            )

    def _publish(self, state: CircuitState) -> None:
        CIRCUIT_STATE.labels(provider=self.name).set(_STATE_GAUGE_VALUES[state])
