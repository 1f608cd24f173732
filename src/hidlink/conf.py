"""Configuration persistence for hidlink.

Config is stored at ~/.config/hidlink/config.json (XDG-compliant).

Usage:
    from hidlink.conf import get_transfer_policy, get_default_device

    policy = get_transfer_policy()    # TransferPolicy from the 'transfer' section
    vid, pid = get_default_device()   # CLI default identifiers

Example file::

    {
      "device": {"vid": "0483", "pid": "df11"},
      "transfer": {"timeout_ms": 500, "max_attempts": null}
    }
"""
from __future__ import annotations

import json
import logging
import os
from typing import Optional

from .core.models import TransferPolicy

log = logging.getLogger(__name__)

# =========================================================================
# Config file location (XDG-compliant)
# =========================================================================

_XDG_CONFIG = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
CONFIG_DIR = os.path.join(_XDG_CONFIG, 'hidlink')
CONFIG_PATH = os.path.join(CONFIG_DIR, 'config.json')

# Identifiers used when neither the command line nor the config names a device
DEFAULT_VID = 0x0483
DEFAULT_PID = 0xdf11

TRANSFER_KEYS = ('timeout_ms', 'max_attempts', 'reply_capacity')


# =========================================================================
# Low-level config persistence
# =========================================================================

def load_config() -> dict:
    """Load user config from disk. Returns empty dict on missing/corrupt file."""
    try:
        with open(CONFIG_PATH, 'r') as f:
            config = json.load(f)
    except FileNotFoundError:
        return {}
    except (json.JSONDecodeError, OSError) as e:
        log.warning("Ignoring unreadable config %s: %s", CONFIG_PATH, e)
        return {}
    return config if isinstance(config, dict) else {}


def save_config(config: dict):
    """Save user config to disk."""
    os.makedirs(CONFIG_DIR, exist_ok=True)
    with open(CONFIG_PATH, 'w') as f:
        json.dump(config, f, indent=2)


# =========================================================================
# Transfer policy
# =========================================================================

def get_transfer_policy() -> TransferPolicy:
    """Build a TransferPolicy from the 'transfer' section.

    Missing or invalid values fall back to the defaults one by one.
    """
    section = load_config().get('transfer', {})
    if not isinstance(section, dict):
        return TransferPolicy()

    kwargs = {}
    for key in TRANSFER_KEYS:
        if key not in section:
            continue
        value = section[key]
        if key == 'max_attempts' and value is None:
            kwargs[key] = None
            continue
        try:
            kwargs[key] = int(value)
            TransferPolicy(**{key: kwargs[key]})
        except (TypeError, ValueError):
            log.warning("Invalid transfer.%s=%r in config, using default", key, value)
            kwargs.pop(key, None)
    return TransferPolicy(**kwargs)


def save_transfer_setting(key: str, value: Optional[int]):
    """Persist a single transfer setting (timeout_ms, max_attempts, reply_capacity)."""
    if key not in TRANSFER_KEYS:
        raise KeyError(f"Unknown transfer setting: {key}")
    config = load_config()
    section = config.setdefault('transfer', {})
    section[key] = value
    save_config(config)


# =========================================================================
# Default device
# =========================================================================

def get_default_device() -> tuple[int, int]:
    """Get saved (vid, pid), defaulting to 0483:df11."""
    device = load_config().get('device', {})
    try:
        return (int(device['vid'], 16), int(device['pid'], 16))
    except (KeyError, TypeError, ValueError):
        return (DEFAULT_VID, DEFAULT_PID)


def save_default_device(vid: int, pid: int):
    """Persist default device identifiers (stored as hex strings)."""
    config = load_config()
    config['device'] = {'vid': f"{vid:04x}", 'pid': f"{pid:04x}"}
    save_config(config)
