"""
hidlink Models - Pure data classes with no USB dependencies.

These are shared by the session, transfer engine and CLI layers and can be
constructed freely in tests.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum, auto
from typing import Optional

from ..constants import REPLY_CAPACITY, TIMEOUT_MS

# =============================================================================
# Transfer outcomes
# =============================================================================


class Outcome(IntEnum):
    """Negative result-slot sentinels (values match libusb error codes)."""
    IO_ERROR = -1
    NO_DEVICE = -4
    TIMEOUT = -7
    INTERRUPTED = -10


class TransferState(Enum):
    """Lifecycle of one transaction attempt.

    IDLE -> ARMED -> {COMPLETED, CANCELLED, NO_DEVICE, TIMED_OUT, UNKNOWN_ERROR}.
    TIMED_OUT goes back to IDLE when the attempt is retried.
    """
    IDLE = auto()
    ARMED = auto()
    COMPLETED = auto()
    CANCELLED = auto()
    NO_DEVICE = auto()
    TIMED_OUT = auto()
    UNKNOWN_ERROR = auto()

    @property
    def is_terminal(self) -> bool:
        return self not in (TransferState.IDLE, TransferState.ARMED)


OUTCOME_TO_STATE = {
    Outcome.INTERRUPTED: TransferState.CANCELLED,
    Outcome.NO_DEVICE: TransferState.NO_DEVICE,
    Outcome.TIMEOUT: TransferState.TIMED_OUT,
    Outcome.IO_ERROR: TransferState.UNKNOWN_ERROR,
}


# =============================================================================
# Result slot
# =============================================================================


class ResultSlot:
    """Cell written by the completion callback and read by the poll loop.

    Holds ``PENDING``, a non-negative byte count, or an :class:`Outcome`.
    The callback runs re-entrantly inside the event dispatch call, so the
    poll loop must read ``value`` on every iteration rather than keep a copy.
    """

    PENDING = None

    def __init__(self) -> None:
        self._value: Optional[int] = self.PENDING

    def reset(self) -> None:
        self._value = self.PENDING

    def publish(self, value: int) -> None:
        """Store the attempt's outcome.  Raises RuntimeError if already set.

        The completion callback resets a filled slot before publishing, so
        this never raises inside libusb event handling.
        """
        if self._value is not self.PENDING:
            raise RuntimeError(f"Result slot already holds {self._value!r}")
        if value < 0:
            value = Outcome(value)
        self._value = value

    @property
    def value(self) -> Optional[int]:
        return self._value

    @property
    def pending(self) -> bool:
        return self._value is self.PENDING

    @property
    def state(self) -> TransferState:
        """Transaction state implied by the current value."""
        if self._value is self.PENDING:
            return TransferState.ARMED
        if self._value >= 0:
            return TransferState.COMPLETED
        return OUTCOME_TO_STATE[Outcome(self._value)]

    def __repr__(self) -> str:
        return f"ResultSlot({'PENDING' if self.pending else self._value!r})"


# =============================================================================
# Policy / device records
# =============================================================================


@dataclass(frozen=True)
class TransferPolicy:
    """Timing and retry settings for the transfer engine.

    ``max_attempts=None`` keeps retrying timed-out transactions forever.
    """
    timeout_ms: int = TIMEOUT_MS
    max_attempts: Optional[int] = None
    reply_capacity: int = REPLY_CAPACITY

    def __post_init__(self) -> None:
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.reply_capacity < 1:
            raise ValueError(f"reply_capacity must be >= 1, got {self.reply_capacity}")

    def allows_attempt(self, attempt: int) -> bool:
        """True if 1-based *attempt* is within the retry bound."""
        return self.max_attempts is None or attempt <= self.max_attempts


@dataclass
class DeviceInfo:
    """A USB device matching the requested identifiers."""
    vid: int
    pid: int
    bus: int = 0
    address: int = 0
    serial: str = ""

    @property
    def usb_id(self) -> str:
        return f"{self.vid:04x}:{self.pid:04x}"
