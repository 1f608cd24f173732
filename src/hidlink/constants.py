"""Shared USB constants for hidlink.

HID class request layout from the Device Class Definition for HID 1.11,
section 7.2 (Set_Report).
"""

# Interface claimed for command/reply exchange
HID_INTERFACE = 0

# Receive timeout for both the control write and the interrupt read (ms)
TIMEOUT_MS = 500

# Reply buffer capacity of the observed device (one input report)
REPLY_CAPACITY = 42

# HID class requests
HID_SET_REPORT = 0x09

# HID report type for Set_Report (high byte of wValue)
HID_REPORT_OUTPUT = 2

# Report ID 0: device does not use numbered reports
HID_REPORT_ID = 0

# Interrupt IN endpoint used when descriptor auto-detection fails
# (endpoint 1 | ENDPOINT_IN)
DEFAULT_EP_IN = 0x81

# Bytes per line in wire traces
TRACE_BYTES_PER_LINE = 16


def set_report_value(report_type: int = HID_REPORT_OUTPUT,
                     report_id: int = HID_REPORT_ID) -> int:
    """wValue for Set_Report: report type in the high byte, ID in the low."""
    return (report_type << 8) | report_id
