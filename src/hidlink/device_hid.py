"""
HID command/reply device: the blocking request/response API.

``HidDevice`` bundles a :class:`~hidlink.session.Session` and its
:class:`~hidlink.transfer.TransferEngine` behind ``open()`` /
``send_recv()`` / ``close()``.  ``send_recv`` guarantees the caller either
gets exactly the number of reply bytes it asked for or an exception; a
short reply is never returned as partial data.

Wire traces (``---Send`` / ``---Recv`` hex dumps) are logged at DEBUG.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from .constants import HID_INTERFACE, TRACE_BYTES_PER_LINE
from .core.models import TransferPolicy
from .errors import SessionClosed, ShortReply
from .session import Session, open_session
from .transfer import TransferEngine

log = logging.getLogger(__name__)


def format_trace(prefix: str, data: Iterable[int]) -> List[str]:
    """Format *data* as hex trace lines, 16 bytes per line.

    Continuation lines are indented to line up with the first::

        ---Send 01 02 03 ... 10
                11 12
    """
    data = bytes(data)
    indent = " " * len(prefix)
    lines = []
    for offset in range(0, len(data), TRACE_BYTES_PER_LINE):
        chunk = data[offset:offset + TRACE_BYTES_PER_LINE]
        lead = prefix if offset == 0 else indent
        lines.append(lead + "".join(f" {b:02x}" for b in chunk))
    return lines or [prefix]


def _trace(prefix: str, data: bytes) -> None:
    if log.isEnabledFor(logging.DEBUG):
        for line in format_trace(prefix, data):
            log.debug("%s", line)


class HidDevice:
    """A HID device exchanging fixed-role command and reply packets.

    Usage::

        with HidDevice(0x0483, 0xdf11) as dev:
            reply = dev.send_recv(b'\\x01\\x02', 8)
    """

    def __init__(self, vid: int, pid: int, policy: Optional[TransferPolicy] = None,
                 interface: int = HID_INTERFACE):
        self.vid = vid
        self.pid = pid
        self.policy = policy or TransferPolicy()
        self.interface = interface
        self._session: Optional[Session] = None
        self._engine: Optional[TransferEngine] = None

    @property
    def is_open(self) -> bool:
        return self._session is not None and self._session.is_open

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def engine(self) -> Optional[TransferEngine]:
        return self._engine

    def open(self) -> None:
        """Find the device and claim its interface.

        Raises:
            DeviceNotFound: No device with these identifiers (soft).
            TransportFatal: libusb init or interface claim failed.
        """
        if self.is_open:
            return
        self._session = open_session(self.vid, self.pid, interface=self.interface)
        self._engine = TransferEngine(self._session, self.policy)

    def send_recv(self, request: bytes, expected_length: int) -> bytes:
        """Send *request* and return exactly *expected_length* reply bytes.

        *expected_length* may be 0 for commands acknowledged with an empty
        report; nothing is traced for the reply then.

        Raises:
            ShortReply: The device answered with a different length.
            SessionClosed: ``open()`` has not been called.
            TransportError / TransportFatal: see TransferEngine.transact().
        """
        if self._engine is None or not self.is_open:
            raise SessionClosed("Device is not open")
        request = bytes(request)
        _trace("---Send", request)

        reply = self._engine.transact(request, expected_length)
        if len(reply) != expected_length:
            log.error("Short read: %d bytes instead of %d!", len(reply), expected_length)
            raise ShortReply(len(reply), expected_length)

        if reply:
            _trace("---Recv", reply)
        return reply

    def close(self) -> None:
        """Release the device.  No-op if it was never opened."""
        if self._session is not None:
            self._session.close()
        self._session = None
        self._engine = None

    def __enter__(self) -> HidDevice:
        self.open()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"HidDevice({self.vid:04x}:{self.pid:04x}, {state})"
