"""
USB session management for HID command/reply devices.

A :class:`Session` owns the libusb context and the device handle, and keeps
the HID interface claimed for as long as it is open.  It is created by
:func:`open_session` and torn down by :meth:`Session.close`.

Open sequence (libusb)::

    libusb_init(&ctx)
    libusb_open_device_with_vid_pid(ctx, vid, pid)
    libusb_kernel_driver_active / libusb_detach_kernel_driver
    libusb_claim_interface(dev, 0)

Uses python-libusb1 (``usb1``) rather than pyusb because the transfer
engine needs asynchronous transfers and explicit event handling.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import usb1

from .constants import DEFAULT_EP_IN, HID_INTERFACE
from .errors import DeviceNotFound, TransportFatal

log = logging.getLogger(__name__)


class Session:
    """An opened device with its HID interface claimed.

    Holds the context handle, device handle and claimed interface index.
    ``close()`` may be called any number of times.
    """

    def __init__(self, context: Any, handle: Any, vid: int, pid: int,
                 interface: int = HID_INTERFACE, ep_in: int = DEFAULT_EP_IN):
        self.context = context
        self.handle = handle
        self.vid = vid
        self.pid = pid
        self.interface = interface
        self.ep_in = ep_in
        # Transfer engine bound to this session; closed before the handle
        self._engine: Any = None

    @property
    def is_open(self) -> bool:
        return self.context is not None

    def attach_engine(self, engine: Any) -> None:
        """Register the transfer engine that owns this session's descriptor."""
        if self._engine is not None and self._engine is not engine:
            raise RuntimeError("Session already has a transfer engine")
        self._engine = engine

    def close(self) -> None:
        """Free the transfer descriptor, release the interface, close everything.

        libusb equivalent::

            libusb_free_transfer(transfer);
            libusb_release_interface(dev, 0);
            libusb_close(dev);
            libusb_exit(ctx);
        """
        if self.context is None:
            return

        if self._engine is not None:
            self._engine.close()
            self._engine = None

        if self.handle is not None:
            try:
                self.handle.releaseInterface(self.interface)
            except usb1.USBError as e:
                log.warning("Failed to release interface %d: %s", self.interface, e)
            try:
                self.handle.close()
            except usb1.USBError as e:
                log.warning("Failed to close device %04x:%04x: %s", self.vid, self.pid, e)
            self.handle = None

        self.context.close()
        self.context = None
        log.info("Closed USB device %04x:%04x", self.vid, self.pid)

    def __enter__(self) -> Session:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"Session({self.vid:04x}:{self.pid:04x}, interface={self.interface}, {state})"


def _detect_ep_in(handle: Any, interface: int) -> int:
    """Find the interrupt IN endpoint of *interface* from the descriptors.

    Falls back to DEFAULT_EP_IN when the descriptor walk fails or the
    interface has no interrupt IN endpoint.
    """
    try:
        for setting in handle.getDevice().iterSettings():
            if setting.getNumber() != interface:
                continue
            for endpoint in setting:
                address = endpoint.getAddress()
                kind = endpoint.getAttributes() & usb1.TRANSFER_TYPE_MASK
                if address & usb1.ENDPOINT_DIR_MASK == usb1.ENDPOINT_IN \
                        and kind == usb1.TRANSFER_TYPE_INTERRUPT:
                    log.debug("Auto-detected interrupt IN endpoint 0x%02x", address)
                    return address
    except usb1.USBError as e:
        log.debug("Endpoint auto-detection failed: %s", e)
    log.debug("Using default interrupt IN endpoint 0x%02x", DEFAULT_EP_IN)
    return DEFAULT_EP_IN


def _close_quietly(handle: Optional[Any], context: Any) -> None:
    """Tear down a half-opened session after a failed open."""
    if handle is not None:
        try:
            handle.close()
        except usb1.USBError as e:
            log.debug("Closing device handle: %s", e)
    context.close()


def open_session(vid: int, pid: int, interface: int = HID_INTERFACE) -> Session:
    """Open the first device matching *vid*:*pid* and claim its HID interface.

    Raises:
        TransportFatal: libusb could not be initialized, or the interface
            could not be claimed.
        DeviceNotFound: No matching device is present (soft error).
    """
    context = usb1.USBContext()
    try:
        context.open()
    except usb1.USBError as e:
        log.error("libusb init failed: %d: %s", e.value, e)
        raise TransportFatal(f"libusb init failed: {e}", code=e.value) from e

    try:
        handle = context.openByVendorIDAndProductID(vid, pid)
    except usb1.USBError as e:
        # libusb_open_device_with_vid_pid reports access errors as "not found"
        log.info("Cannot open USB device %04x:%04x: %s", vid, pid, e)
        handle = None
    if handle is None:
        log.info("Cannot find USB device %04x:%04x", vid, pid)
        context.close()
        raise DeviceNotFound(vid, pid)
    log.info("Found USB device %04x:%04x", vid, pid)

    try:
        if handle.kernelDriverActive(interface):
            handle.detachKernelDriver(interface)
            log.debug("Detached kernel driver from interface %d", interface)
    except usb1.USBError as e:
        log.debug("Kernel driver detach: %s", e)

    try:
        handle.claimInterface(interface)
    except usb1.USBError as e:
        log.error("Failed to claim USB interface: %d: %s", e.value, e)
        _close_quietly(handle, context)
        raise TransportFatal(f"Failed to claim USB interface {interface}: {e}",
                             code=e.value) from e

    ep_in = _detect_ep_in(handle, interface)
    return Session(context, handle, vid, pid, interface=interface, ep_in=ep_in)
