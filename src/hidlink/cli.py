#!/usr/bin/env python3
"""
hidlink - Command Line Interface

Entry point for the hidlink package.  This is the only place where a
hidlink error turns into a process exit status.
"""

import argparse
import logging
import sys

from .__version__ import __version__


def _setup_logging(verbose: int) -> None:
    """Map -v count to a log level (-v: INFO, -vv: DEBUG with wire traces)."""
    if verbose >= 2:
        logging.basicConfig(level=logging.DEBUG, format='[%(levelname)s] %(name)s: %(message)s')
        logging.getLogger('usb').setLevel(logging.WARNING)
    elif verbose == 1:
        logging.basicConfig(level=logging.INFO, format='[%(levelname)s] %(message)s')
    else:
        logging.basicConfig(level=logging.WARNING, format='%(message)s')


def _parse_usb_id(text: str) -> int:
    """Parse a 16-bit USB identifier given in hex ('0483' or '0x0483')."""
    try:
        value = int(text, 16)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid USB id: {text!r}")
    if not 0 <= value <= 0xFFFF:
        raise argparse.ArgumentTypeError(f"USB id out of range: {text!r}")
    return value


def parse_hex_bytes(text: str) -> bytes:
    """Parse request bytes from '01 02 ff', '01:02:ff' or '0102ff'."""
    cleaned = text.replace(':', ' ').replace(',', ' ')
    parts = cleaned.split()
    if len(parts) == 1:
        return bytes.fromhex(parts[0])
    return bytes(int(p, 16) for p in parts)


def _resolve_ids(args):
    """Command-line identifiers, falling back to the configured default."""
    from .conf import get_default_device

    vid, pid = get_default_device()
    return (args.vid if args.vid is not None else vid,
            args.pid if args.pid is not None else pid)


def _add_id_args(parser):
    parser.add_argument("--vid", type=_parse_usb_id, help="Vendor ID in hex (default from config)")
    parser.add_argument("--pid", type=_parse_usb_id, help="Product ID in hex (default from config)")


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="hidlink",
        description="Request/response transactions with USB HID devices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    hidlink detect --vid 0483 --pid df11
    hidlink send "01 02" --reply-length 8
    hidlink -vv send 0102 --reply-length 8 --max-attempts 5
    hidlink config --vid 15a2 --pid 0073 --timeout-ms 1000
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v, -vv)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Detect command
    detect_parser = subparsers.add_parser("detect", help="List devices matching VID/PID")
    _add_id_args(detect_parser)

    # Send command
    send_parser = subparsers.add_parser("send", help="Send one request and print the reply")
    send_parser.add_argument("data", help="Request bytes in hex (e.g. '01 02' or 0102)")
    send_parser.add_argument("--reply-length", "-n", type=int, required=True,
                             help="Exact number of reply bytes expected")
    send_parser.add_argument("--timeout-ms", type=int, help="Per-attempt timeout in ms")
    send_parser.add_argument("--max-attempts", type=int,
                             help="Give up after N timed-out attempts (default: retry forever)")
    _add_id_args(send_parser)

    # Config command
    config_parser = subparsers.add_parser("config", help="Save default device and transfer settings")
    config_parser.add_argument("--timeout-ms", type=int, help="Per-attempt timeout in ms")
    config_parser.add_argument("--max-attempts", type=int,
                               help="Retry bound; 0 means retry forever")
    _add_id_args(config_parser)

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "detect":
        vid, pid = _resolve_ids(args)
        return detect(vid, pid)
    elif args.command == "send":
        vid, pid = _resolve_ids(args)
        try:
            request = parse_hex_bytes(args.data)
        except ValueError:
            print(f"Error: invalid hex data: {args.data!r}", file=sys.stderr)
            return 2
        return send(vid, pid, request, args.reply_length,
                    timeout_ms=args.timeout_ms, max_attempts=args.max_attempts,
                    verbose=args.verbose)
    elif args.command == "config":
        return configure(vid=args.vid, pid=args.pid,
                         timeout_ms=args.timeout_ms, max_attempts=args.max_attempts)

    return 0


def detect(vid, pid):
    """List attached devices with the given identifiers."""
    from .device_detector import find_hid_devices

    devices = find_hid_devices(vid, pid)
    if not devices:
        print(f"No device {vid:04x}:{pid:04x} found.")
        return 1
    for i, dev in enumerate(devices, 1):
        serial = f"  serial={dev.serial}" if dev.serial else ""
        print(f"[{i}] {dev.usb_id}  bus={dev.bus:03d} address={dev.address:03d}{serial}")
    return 0


def send(vid, pid, request, reply_length, timeout_ms=None, max_attempts=None, verbose=0):
    """Open the device, run one transaction, print the reply."""
    from dataclasses import replace

    from .conf import get_transfer_policy
    from .device_hid import HidDevice, format_trace
    from .errors import DeviceNotFound, HidLinkError

    try:
        policy = get_transfer_policy()
        if timeout_ms is not None:
            policy = replace(policy, timeout_ms=timeout_ms)
        if max_attempts is not None:
            policy = replace(policy, max_attempts=max_attempts or None)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        with HidDevice(vid, pid, policy=policy) as dev:
            reply = dev.send_recv(request, reply_length)
    except DeviceNotFound as e:
        if verbose:
            print(str(e), file=sys.stderr)
        return 1
    except (HidLinkError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    for line in format_trace("Reply:", reply):
        print(line)
    return 0


def configure(vid=None, pid=None, timeout_ms=None, max_attempts=None):
    """Persist defaults to the config file."""
    from .conf import (
        CONFIG_PATH,
        get_default_device,
        save_default_device,
        save_transfer_setting,
    )
    from .core.models import TransferPolicy

    try:
        if timeout_ms is not None:
            TransferPolicy(timeout_ms=timeout_ms)
            save_transfer_setting('timeout_ms', timeout_ms)
        if max_attempts is not None:
            if max_attempts < 0:
                raise ValueError(f"max_attempts must be >= 0, got {max_attempts}")
            save_transfer_setting('max_attempts', max_attempts or None)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if vid is not None or pid is not None:
        cur_vid, cur_pid = get_default_device()
        save_default_device(vid if vid is not None else cur_vid,
                            pid if pid is not None else cur_pid)

    print(f"Saved to {CONFIG_PATH}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
