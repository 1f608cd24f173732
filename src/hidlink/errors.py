"""Exception hierarchy for hidlink.

Library code raises; only the top-level caller (``hidlink.cli``) decides
whether an error terminates the process.
"""

from __future__ import annotations

from typing import Optional

from .core.models import Outcome


class HidLinkError(RuntimeError):
    """Base class for every error raised by hidlink."""


class SessionClosed(HidLinkError):
    """Raised when a transaction is attempted without an open session."""


class DeviceNotFound(HidLinkError):
    """Raised when no device matches the vendor/product identifiers.

    This is a soft error: nothing was claimed and no state changed.
    """

    def __init__(self, vid: int, pid: int):
        super().__init__(f"Cannot find USB device {vid:04x}:{pid:04x}")
        self.vid = vid
        self.pid = pid


class TransportFatal(HidLinkError):
    """Unrecoverable USB failure (context init, interface claim, event loop)."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class DispatchError(TransportFatal):
    """Event dispatch failed with a non-transient libusb error."""


class TransportError(HidLinkError):
    """A single transaction failed; the session itself is still usable."""


class ControlTransferError(TransportError):
    """The outbound Set_Report control transfer failed."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class TransferFailed(TransportError):
    """The inbound interrupt transfer resolved with a non-retryable outcome."""

    def __init__(self, outcome: Outcome):
        super().__init__(f"Interrupt transfer failed: {outcome.name.lower()}")
        self.outcome = outcome


class RetriesExhausted(TransportError):
    """Every attempt allowed by the transfer policy timed out."""

    def __init__(self, attempts: int):
        super().__init__(f"No response from HID device after {attempts} attempts")
        self.attempts = attempts


class ShortReply(HidLinkError):
    """The reply length differs from the expected length."""

    def __init__(self, received: int, expected: int):
        super().__init__(f"Short read: {received} bytes instead of {expected}!")
        self.received = received
        self.expected = expected
