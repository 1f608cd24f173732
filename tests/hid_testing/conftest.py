"""Simulated libusb objects for HID transaction tests.

No real USB hardware required.  ``FakeContext.handleEvents()`` resolves the
submitted inbound transfer from a script of replies and fires its callback
synchronously, the way libusb does on the polling thread.
"""
from collections import deque

import pytest
import usb1

from hidlink.session import Session

VID = 0x0483
PID = 0xDF11


class FakeTransfer:
    """Stand-in for usb1.USBTransfer (interrupt transfers only)."""

    def __init__(self, bus):
        self._bus = bus
        self._submitted = False
        self._initialized = False
        self.closed = False
        self.cancel_requested = False
        self.endpoint = None
        self.length = 0
        self.timeout = None
        self.callback = None
        self.status = None
        self.actual_length = 0
        self.buffer = bytearray()

    def setInterrupt(self, endpoint, buffer_or_len, callback=None, user_data=None, timeout=0):
        if self._submitted:
            raise ValueError('Cannot alter a submitted transfer')
        if self.closed:
            raise ValueError('Transfer closed')
        self.endpoint = endpoint
        self.length = buffer_or_len
        self.buffer = bytearray(buffer_or_len)
        self.callback = callback
        self.timeout = timeout
        self._initialized = True

    def submit(self):
        if self._submitted:
            raise ValueError('Cannot submit a submitted transfer')
        if not self._initialized:
            raise ValueError('Cannot submit a transfer until it has been initialized')
        if self._bus.submit_error is not None:
            raise self._bus.submit_error
        self._bus.events.append('submit')
        self._submitted = True
        self.cancel_requested = False

    def cancel(self):
        if not self._submitted:
            raise usb1.USBErrorNotFound()
        self._bus.events.append('cancel')
        self.cancel_requested = True

    def isSubmitted(self):
        return self._submitted

    def getStatus(self):
        return self.status

    def getActualLength(self):
        return self.actual_length

    def getBuffer(self):
        return bytes(self.buffer)

    def close(self):
        if self._submitted:
            raise ValueError('Cannot close a submitted transfer')
        self.closed = True
        self._bus.freed += 1

    def resolve(self, status, payload=b''):
        """Finish the transfer and invoke its callback (as libusb does)."""
        self.status = status
        if status == usb1.TRANSFER_COMPLETED:
            data = bytes(payload[:self.length])
            self.buffer[:len(data)] = data
            self.actual_length = len(data)
        else:
            self.actual_length = 0
        self._submitted = False
        self._bus.events.append(('resolve', status))
        if self.callback is not None:
            self.callback(self)


class FakeUsb:
    """Shared state between the fake context, handle and transfers.

    ``replies`` is consumed one entry per resolved transfer:
      - bytes: TRANSFER_COMPLETED with that payload
      - int: that transfer status (e.g. usb1.TRANSFER_TIMED_OUT)
      - USBError instance: raised by handleEvents() instead
    When empty, transfers time out (a silent device).
    """

    def __init__(self):
        self.replies = deque()
        self.events = []
        self.writes = []
        self.transfers = []
        self.freed = 0
        self.control_error = None
        self.submit_error = None
        self.dispatch_calls = 0


class FakeContext:
    """Stand-in for usb1.USBContext."""

    def __init__(self, bus):
        self._bus = bus
        self.closed = False
        self.handle = None

    def open(self):
        return self

    def close(self):
        self.closed = True

    def openByVendorIDAndProductID(self, vid, pid, **kw):
        return self.handle

    def _pending_transfer(self):
        for transfer in self._bus.transfers:
            if transfer.isSubmitted():
                return transfer
        return None

    def handleEvents(self):
        self._bus.dispatch_calls += 1
        transfer = self._pending_transfer()
        if transfer is not None and transfer.cancel_requested:
            transfer.resolve(usb1.TRANSFER_CANCELLED)
            return
        if self._bus.replies and isinstance(self._bus.replies[0], usb1.USBError):
            raise self._bus.replies.popleft()
        if transfer is None:
            return
        reply = self._bus.replies.popleft() if self._bus.replies else usb1.TRANSFER_TIMED_OUT
        if isinstance(reply, (bytes, bytearray)):
            transfer.resolve(usb1.TRANSFER_COMPLETED, reply)
        else:
            transfer.resolve(reply)

    def handleEventsTimeout(self, tv=0):
        # Non-blocking: only resolve when a reply is already queued
        transfer = self._pending_transfer()
        if transfer is not None and (transfer.cancel_requested or self._bus.replies):
            self.handleEvents()
        else:
            self._bus.dispatch_calls += 1


class FakeHandle:
    """Stand-in for usb1.USBDeviceHandle."""

    def __init__(self, bus):
        self._bus = bus
        self.claimed = set()
        self.released = []
        self.closed = False
        self.kernel_driver_active = False
        self.detached = []
        self.claim_error = None

    def getTransfer(self, iso_packets=0):
        transfer = FakeTransfer(self._bus)
        self._bus.transfers.append(transfer)
        return transfer

    def controlWrite(self, request_type, request, value, index, data, timeout=0):
        self._bus.events.append('control')
        self._bus.writes.append({
            'request_type': request_type, 'request': request, 'value': value,
            'index': index, 'data': bytes(data), 'timeout': timeout,
        })
        if self._bus.control_error is not None:
            raise self._bus.control_error
        return len(data)

    def kernelDriverActive(self, interface):
        return self.kernel_driver_active

    def detachKernelDriver(self, interface):
        self.detached.append(interface)
        self.kernel_driver_active = False

    def claimInterface(self, interface):
        if self.claim_error is not None:
            raise self.claim_error
        self.claimed.add(interface)

    def releaseInterface(self, interface):
        self.released.append(interface)
        self.claimed.discard(interface)

    def getDevice(self):
        raise usb1.USBErrorNotSupported()

    def close(self):
        self.closed = True


@pytest.fixture
def fake_usb():
    """A FakeUsb with a connected context and handle: (bus, context, handle)."""
    bus = FakeUsb()
    context = FakeContext(bus)
    handle = FakeHandle(bus)
    context.handle = handle
    return bus, context, handle


@pytest.fixture
def session(fake_usb):
    """An open Session on the fake device with interface 0 claimed."""
    _, context, handle = fake_usb
    handle.claimInterface(0)
    return Session(context, handle, VID, PID)
