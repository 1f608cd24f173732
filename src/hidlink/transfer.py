"""
HID transfer engine: one request/response exchange over a claimed session.

Each attempt follows the same order so that no reply can be missed::

    1. arm the reusable interrupt IN transfer and reset the result slot
    2. submit it (asynchronous)
    3. Set_Report control write carrying the request (synchronous)
    4. pump libusb events until the completion callback fills the slot

A timed-out attempt is repeated with the identical request.  The number of
attempts is unbounded unless ``TransferPolicy.max_attempts`` is set.

``transact()`` is the blocking entry point.  ``start()`` and ``poll()``
expose the same state machine one step at a time for callers that run
their own event loop.
"""

from __future__ import annotations

import logging
from typing import Optional

import usb1

from .constants import HID_SET_REPORT, set_report_value
from .core.models import Outcome, ResultSlot, TransferPolicy, TransferState
from .errors import (
    ControlTransferError,
    DispatchError,
    RetriesExhausted,
    SessionClosed,
    TransferFailed,
)
from .session import Session

log = logging.getLogger(__name__)

# Class request, interface recipient, host-to-device
SET_REPORT_REQUEST_TYPE = usb1.TYPE_CLASS | usb1.RECIPIENT_INTERFACE | usb1.ENDPOINT_OUT

# Event dispatch errors that do not end the poll loop
TRANSIENT_DISPATCH_ERRORS = (
    usb1.USBErrorBusy,
    usb1.USBErrorTimeout,
    usb1.USBErrorOverflow,
    usb1.USBErrorInterrupted,
)

# libusb transfer status -> result slot sentinel
_STATUS_TO_OUTCOME = {
    usb1.TRANSFER_CANCELLED: Outcome.INTERRUPTED,
    usb1.TRANSFER_NO_DEVICE: Outcome.NO_DEVICE,
    usb1.TRANSFER_TIMED_OUT: Outcome.TIMEOUT,
}


class TransferEngine:
    """Drives Set_Report / interrupt-IN transactions on one session.

    Owns the single reusable inbound transfer descriptor: allocated on the
    first transaction, freed exactly once by ``close()`` (which the session
    calls on its own close).
    """

    def __init__(self, session: Session, policy: Optional[TransferPolicy] = None):
        self.session = session
        self.policy = policy or TransferPolicy()
        self.result = ResultSlot()
        self.attempts = 0
        self._receive_buf = bytearray(self.policy.reply_capacity)
        self._transfer = None
        self._state = TransferState.IDLE
        session.attach_engine(self)

    @property
    def state(self) -> TransferState:
        return self._state

    @property
    def is_armed(self) -> bool:
        """Whether an inbound transfer is currently submitted."""
        return self._transfer is not None and self._transfer.isSubmitted()

    # -- Completion callback ---------------------------------------------

    def _on_read_complete(self, transfer) -> None:
        """Publish the resolved inbound transfer to the result slot.

        Runs inside handleEvents() on the polling thread.  Must not block or
        submit transfers.  Exceptions raised here never reach the caller
        of handleEvents().
        """
        if not self.result.pending:
            log.warning("Transfer resolved twice in one attempt, replacing %r", self.result.value)
            self.result.reset()
        status = transfer.getStatus()
        if status == usb1.TRANSFER_COMPLETED:
            length = transfer.getActualLength()
            self._receive_buf[:length] = transfer.getBuffer()[:length]
            self.result.publish(length)
            return
        outcome = _STATUS_TO_OUTCOME.get(status)
        if outcome is None:
            log.debug("Unknown transfer code: %d", status)
            outcome = Outcome.IO_ERROR
        self.result.publish(outcome)

    # -- Event dispatch ----------------------------------------------------

    def _dispatch(self, block: bool) -> None:
        """Run one round of libusb event handling."""
        context = self.session.context
        try:
            if block:
                context.handleEvents()
            else:
                context.handleEventsTimeout(0)
        except TRANSIENT_DISPATCH_ERRORS as e:
            log.debug("Event dispatch interrupted (%s), polling again", e)
        except usb1.USBError as e:
            log.error("Error %d receiving data via interrupt transfer: %s", e.value, e)
            self._state = TransferState.UNKNOWN_ERROR
            raise DispatchError(f"Event dispatch failed: {e}", code=e.value) from e

    def _cancel(self) -> None:
        """Cancel the submitted inbound transfer and wait for the cancellation.

        libusb delivers the cancellation through the callback, so events are
        pumped until the descriptor is no longer submitted and can be re-armed.
        The engine is left IDLE even when the transfer had already resolved.
        """
        transfer = self._transfer
        if transfer is not None and transfer.isSubmitted():
            try:
                transfer.cancel()
            except usb1.USBErrorNotFound:
                # Completed between the check and the cancel
                pass
            while transfer.isSubmitted():
                self._dispatch(block=True)
        self._state = TransferState.IDLE

    # -- Step-wise API -----------------------------------------------------

    def start(self, request: bytes, expected_length: int) -> None:
        """Arm the inbound transfer and send *request* (one attempt).

        Raises:
            SessionClosed: The session is not open.
            ValueError: *expected_length* is outside 0..reply_capacity.
            ControlTransferError: The Set_Report write failed; the inbound
                transfer has been cancelled.
            TransferFailed: The inbound transfer could not be submitted.

        An *expected_length* of 0 sends a command whose only reply is a
        zero-length report acknowledging it.
        """
        if not self.session.is_open:
            raise SessionClosed("USB session is not open")
        if not 0 <= expected_length <= self.policy.reply_capacity:
            raise ValueError(
                f"expected_length must be 0..{self.policy.reply_capacity}, "
                f"got {expected_length}"
            )
        if self._state is TransferState.ARMED:
            raise RuntimeError("A transaction is already in flight")

        handle = self.session.handle
        if self._transfer is None:
            # Allocate transfer descriptor on first invocation
            self._transfer = handle.getTransfer()
            log.debug("Allocated inbound transfer descriptor")
        elif self._transfer.isSubmitted():
            self._cancel()

        self._transfer.setInterrupt(
            self.session.ep_in, expected_length,
            callback=self._on_read_complete,
            timeout=self.policy.timeout_ms,
        )
        self.result.reset()
        try:
            self._transfer.submit()
        except usb1.USBError as e:
            log.error("Error %d submitting interrupt transfer: %s", e.value, e)
            self._state = TransferState.IDLE
            outcome = Outcome.NO_DEVICE if isinstance(e, usb1.USBErrorNoDevice) else Outcome.IO_ERROR
            raise TransferFailed(outcome) from e
        self._state = TransferState.ARMED

        try:
            handle.controlWrite(
                SET_REPORT_REQUEST_TYPE, HID_SET_REPORT, set_report_value(),
                self.session.interface, request, self.policy.timeout_ms,
            )
        except usb1.USBError as e:
            log.error("Error %d transmitting data via control transfer: %s", e.value, e)
            # controlWrite pumps events itself, so the read may already be done
            self._cancel()
            raise ControlTransferError(
                f"Error transmitting data via control transfer: {e}", code=e.value,
            ) from e

    def poll(self, block: bool = False) -> Optional[TransferState]:
        """Pump events once and report the attempt's state.

        Returns None while the reply is pending, otherwise the terminal
        TransferState.  With ``block=False`` this never waits, so it can be
        driven from an external scheduler.
        """
        if self._state is TransferState.IDLE:
            raise RuntimeError("No transaction in flight; call start() first")
        if self._state is not TransferState.ARMED:
            return self._state
        if self.result.pending:
            self._dispatch(block)
        if self.result.pending:
            return None
        self._state = self.result.state
        return self._state

    def reply(self) -> bytes:
        """Bytes received by the last completed attempt."""
        if self._state is not TransferState.COMPLETED:
            raise RuntimeError(f"No completed reply (state={self._state.name})")
        return bytes(self._receive_buf[:self.result.value])

    # -- Blocking API ------------------------------------------------------

    def transact(self, request: bytes, expected_length: int) -> bytes:
        """Send *request* and wait for the reply, retrying on timeout.

        Returns the received bytes (which may differ in length from
        *expected_length*; enforcing the exact length is up to the caller).

        Raises:
            ControlTransferError, TransferFailed, RetriesExhausted,
            DispatchError, SessionClosed
        """
        request = bytes(request)
        attempt = 0
        while True:
            attempt += 1
            self.attempts = attempt
            self.start(request, expected_length)

            state = None
            while state is None:
                state = self.poll(block=True)

            if state is TransferState.TIMED_OUT:
                self._state = TransferState.IDLE
                log.debug("No response from HID device! (attempt %d)", attempt)
                if not self.policy.allows_attempt(attempt + 1):
                    raise RetriesExhausted(attempt)
                continue

            if state is TransferState.COMPLETED:
                data = self.reply()
                self._state = TransferState.IDLE
                return data

            self._state = TransferState.IDLE
            raise TransferFailed(Outcome(self.result.value))

    def close(self) -> None:
        """Free the transfer descriptor.  Safe to call more than once."""
        if self._transfer is None:
            return
        if self._transfer.isSubmitted() and self.session.is_open:
            try:
                self._cancel()
            except DispatchError as e:
                log.warning("Could not drain cancelled transfer: %s", e)
        if self._transfer.isSubmitted():
            # libusb forbids freeing a submitted transfer
            log.warning("Inbound transfer still submitted at close, not freed")
        else:
            self._transfer.close()
            log.debug("Freed inbound transfer descriptor")
        self._transfer = None
        self._state = TransferState.IDLE
