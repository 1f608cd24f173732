"""
hidlink - request/response transactions over a USB HID interface

Sends command packets to an attached device with the HID Set_Report class
request and collects each reply from the interrupt IN endpoint, using
libusb asynchronous transfers driven from the calling thread.

Features:
- Session management (find by VID/PID, kernel driver detach, claim)
- Transfer engine with retry on timeout (unbounded unless configured)
- Step-wise start()/poll() API for external event loops
- Typed errors instead of process exit

Usage:
    # As a library
    from hidlink import HidDevice
    with HidDevice(0x0483, 0xdf11) as dev:
        reply = dev.send_recv(b'\\x01\\x02', 8)

    # Command line
    hidlink detect --vid 0483 --pid df11
    hidlink send "01 02" --reply-length 8
"""

from hidlink.__version__ import __version__

__author__ = "hidlink contributors"

# Core exports
from hidlink.core.models import Outcome, ResultSlot, TransferPolicy, TransferState
from hidlink.device_hid import HidDevice, format_trace
from hidlink.errors import (
    ControlTransferError,
    DeviceNotFound,
    DispatchError,
    HidLinkError,
    RetriesExhausted,
    SessionClosed,
    ShortReply,
    TransferFailed,
    TransportError,
    TransportFatal,
)
from hidlink.session import Session, open_session
from hidlink.transfer import TransferEngine

__all__ = [
    # Version
    "__version__",
    # Lifecycle
    "HidDevice",
    "Session",
    "open_session",
    "TransferEngine",
    # Models
    "Outcome",
    "ResultSlot",
    "TransferPolicy",
    "TransferState",
    # Errors
    "HidLinkError",
    "SessionClosed",
    "DeviceNotFound",
    "TransportFatal",
    "DispatchError",
    "TransportError",
    "ControlTransferError",
    "TransferFailed",
    "RetriesExhausted",
    "ShortReply",
    # Helpers
    "format_trace",
]
