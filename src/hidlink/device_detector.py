"""
USB device detector for HID command/reply devices.

Lists the attached devices matching one vendor/product pair.  Matching is
by identifiers only; descriptors are not parsed beyond the serial string.

Uses pyusb, which is enough for read-only enumeration and does not need
the interface to be claimed.
"""

import logging
from typing import List

import usb.core
import usb.util

from .core.models import DeviceInfo

log = logging.getLogger(__name__)


def _read_serial(dev) -> str:
    """Serial number string, or "" when absent or unreadable (no permission)."""
    serial_idx = getattr(dev, 'iSerialNumber', 0)
    if not serial_idx:
        return ""
    try:
        return usb.util.get_string(dev, serial_idx) or ""
    except (usb.core.USBError, ValueError, NotImplementedError) as e:
        log.debug("Cannot read serial of %04x:%04x: %s",
                  dev.idVendor, dev.idProduct, e)
        return ""


def find_hid_devices(vid: int, pid: int) -> List[DeviceInfo]:
    """Return every attached device with the given VID/PID.

    Returns an empty list when pyusb has no usable libusb backend.
    """
    try:
        found = usb.core.find(find_all=True, idVendor=vid, idProduct=pid)
    except usb.core.NoBackendError as e:
        log.warning("No USB backend available: %s", e)
        return []

    devices = []
    for dev in found or []:
        devices.append(DeviceInfo(
            vid=vid,
            pid=pid,
            bus=getattr(dev, 'bus', 0) or 0,
            address=getattr(dev, 'address', 0) or 0,
            serial=_read_serial(dev),
        ))
    log.debug("Found %d device(s) matching %04x:%04x", len(devices), vid, pid)
    return devices
