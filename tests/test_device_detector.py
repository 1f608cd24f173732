"""
Tests for device_detector -- listing attached devices by VID/PID.

Tests cover:
- find_hid_devices() with mocked usb.core.find
- Serial string reading and its failure modes
- Missing libusb backend
"""

import unittest
from unittest.mock import MagicMock, patch

import usb.core

from hidlink.device_detector import _read_serial, find_hid_devices


def _make_usb_dev(bus=1, address=5, serial_idx=3, vid=0x0483, pid=0xDF11):
    dev = MagicMock()
    dev.bus = bus
    dev.address = address
    dev.iSerialNumber = serial_idx
    dev.idVendor = vid
    dev.idProduct = pid
    return dev


class TestFindHidDevices(unittest.TestCase):

    @patch('hidlink.device_detector.usb.util.get_string', return_value='ABC123')
    @patch('hidlink.device_detector.usb.core.find')
    def test_lists_matches(self, mock_find, _mock_string):
        mock_find.return_value = iter([_make_usb_dev(), _make_usb_dev(bus=2, address=9)])

        devices = find_hid_devices(0x0483, 0xDF11)

        mock_find.assert_called_once_with(find_all=True, idVendor=0x0483, idProduct=0xDF11)
        self.assertEqual(len(devices), 2)
        self.assertEqual(devices[0].usb_id, '0483:df11')
        self.assertEqual((devices[0].bus, devices[0].address), (1, 5))
        self.assertEqual((devices[1].bus, devices[1].address), (2, 9))
        self.assertEqual(devices[0].serial, 'ABC123')

    @patch('hidlink.device_detector.usb.core.find', return_value=iter([]))
    def test_none_found(self, _mock_find):
        self.assertEqual(find_hid_devices(0x0483, 0xDF11), [])

    @patch('hidlink.device_detector.usb.core.find',
           side_effect=usb.core.NoBackendError('No backend available'))
    def test_no_backend(self, _mock_find):
        with self.assertLogs('hidlink.device_detector', level='WARNING'):
            self.assertEqual(find_hid_devices(0x0483, 0xDF11), [])


class TestReadSerial(unittest.TestCase):

    def test_no_serial_index(self):
        self.assertEqual(_read_serial(_make_usb_dev(serial_idx=0)), '')

    @patch('hidlink.device_detector.usb.util.get_string',
           side_effect=usb.core.USBError('Access denied'))
    def test_permission_error(self, _mock_string):
        self.assertEqual(_read_serial(_make_usb_dev()), '')

    @patch('hidlink.device_detector.usb.util.get_string',
           side_effect=ValueError('The device has no langid'))
    def test_no_langid(self, _mock_string):
        self.assertEqual(_read_serial(_make_usb_dev()), '')

    @patch('hidlink.device_detector.usb.util.get_string', return_value=None)
    def test_none_string(self, _mock_string):
        self.assertEqual(_read_serial(_make_usb_dev()), '')
