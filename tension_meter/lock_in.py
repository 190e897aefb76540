"""
Lock-in filtering of frequency readings.

Single FFT estimates jitter and are occasionally wrong (a knock, a neighbouring
string, an overtone). The lock-in filter collects readings until enough of them
agree with each other, then freezes their average as the measurement.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .constants import LOCK_COUNT, LOCK_TOLERANCE

logger = logging.getLogger(__name__)

# Returns True if a frequency reading may count toward lock-in
FrequencyValidator = Callable[[float], bool]


class LockState(Enum):
    """Measurement session state."""

    IDLE = "idle"
    LISTENING = "listening"
    LOCKED = "locked"


@dataclass(frozen=True)
class LockUpdate:
    """Outcome of feeding one reading to the filter."""
    frequency: float | None  # Reading for display, rounded to 0.1 Hz
    readings: tuple[float, ...]  # Accepted readings after this update
    state: LockState
    counted: bool = False  # Whether the reading entered the consensus buffer
    locked_frequency: float | None = None


class LockInFilter:
    """
    Consensus filter over a stream of frequency readings.

    A reading is consistent when every buffered reading lies within
    ``tolerance`` (relative) of it. Consistent readings are appended; an
    inconsistent one starts a fresh run on its own. Once ``lock_count``
    readings agree the filter locks on their mean and ignores further input
    until reset.
    """

    def __init__(
        self,
        lock_count: int = LOCK_COUNT,
        tolerance: float = LOCK_TOLERANCE,
        validator: FrequencyValidator | None = None,
    ):
        """
        Initialize lock-in filter.

        Args:
            lock_count: Consistent readings required to lock
            tolerance: Maximum relative deviation between readings
            validator: Optional predicate; rejected readings are shown but not counted
        """
        self.lock_count = lock_count
        self.tolerance = tolerance
        self.validator = validator

        self._state = LockState.IDLE
        self._readings: list[float] = []
        self._locked_frequency: float | None = None

    def start(self, validator: FrequencyValidator | None = None):
        """Begin listening with an empty buffer."""
        if validator is not None:
            self.validator = validator
        self._readings.clear()
        self._locked_frequency = None
        self._state = LockState.LISTENING

    def stop(self):
        """Return to idle, dropping readings and the validator."""
        self._readings.clear()
        self._locked_frequency = None
        self.validator = None
        self._state = LockState.IDLE

    def reset(self):
        """Start a new measurement attempt, keeping the validator."""
        if self._state == LockState.IDLE:
            self._readings.clear()
            return
        self._readings.clear()
        self._locked_frequency = None
        self._state = LockState.LISTENING

    def is_consistent(self, frequency: float) -> bool:
        return all(abs(r - frequency) / r < self.tolerance for r in self._readings)

    def update(self, frequency: float | None) -> LockUpdate:
        """
        Feed one reading.

        Args:
            frequency: Estimated frequency in Hz, None if nothing was detected

        Returns:
            LockUpdate describing the filter after the reading
        """
        if self._state != LockState.LISTENING or frequency is None:
            return self._snapshot(None)

        shown = round(frequency, 1)

        if self.validator is not None and not self.validator(frequency):
            logger.debug("Reading %.2f Hz rejected by validator", frequency)
            return self._snapshot(shown)

        if self.is_consistent(frequency):
            self._readings.append(frequency)
        else:
            logger.debug(
                "Reading %.2f Hz inconsistent with %d buffered, restarting run",
                frequency, len(self._readings),
            )
            self._readings.clear()
            self._readings.append(frequency)

        if len(self._readings) >= self.lock_count:
            average = sum(self._readings) / len(self._readings)
            self._locked_frequency = round(average, 1)
            self._state = LockState.LOCKED
            logger.info("Locked at %.1f Hz after %d readings",
                        self._locked_frequency, len(self._readings))
            return self._snapshot(self._locked_frequency, counted=True)

        return self._snapshot(shown, counted=True)

    def _snapshot(self, frequency: float | None, counted: bool = False) -> LockUpdate:
        return LockUpdate(
            frequency=frequency,
            readings=tuple(self._readings),
            state=self._state,
            counted=counted,
            locked_frequency=self._locked_frequency,
        )

    @property
    def state(self) -> LockState:
        return self._state

    @property
    def readings(self) -> tuple[float, ...]:
        return tuple(self._readings)

    @property
    def locked_frequency(self) -> float | None:
        return self._locked_frequency

    @property
    def is_locked(self) -> bool:
        return self._state == LockState.LOCKED


def status_message(reading_count: int, has_frequency: bool, lock_count: int = LOCK_COUNT) -> str:
    """Short user-facing description of lock-in progress."""
    if reading_count >= lock_count:
        return "Frequency locked!"
    if reading_count > 0:
        return f"Locking in... {reading_count}/{lock_count} readings"
    if has_frequency:
        return "Frequency detected, keep plucking"
    return "Tap or pluck a string to begin"
