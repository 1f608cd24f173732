"""
hidlink Core - data models shared across layers.

Models: Data classes only (Outcome, TransferState, ResultSlot,
TransferPolicy, DeviceInfo).
"""

from .models import (
    DeviceInfo,
    Outcome,
    ResultSlot,
    TransferPolicy,
    TransferState,
)

__all__ = [
    'DeviceInfo',
    'Outcome',
    'ResultSlot',
    'TransferPolicy',
    'TransferState',
]
