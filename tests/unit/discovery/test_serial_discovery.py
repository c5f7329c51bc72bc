"""Unit tests for serial port discovery."""

from types import SimpleNamespace
from unittest.mock import patch

import pytest

from boardmgr.discovery import SERIAL_DISCOVERY_ID, SerialPortDiscovery
from boardmgr.errors import DiscoveryError

COMPORTS = "boardmgr.discovery.serial.tools.list_ports.comports"


def _port_info(device, vid=None, pid=None, serial_number=None, description="n/a"):
    return SimpleNamespace(device=device, vid=vid, pid=pid, serial_number=serial_number, description=description)


class TestSerialPortDiscovery:
    """Test cases for SerialPortDiscovery class."""

    def test_usb_port(self):
        info = _port_info("/dev/ttyACM0", 0x2341, 0x43, "85735313", "Arduino Uno")
        with patch(COMPORTS, return_value=[info]):
            [port] = SerialPortDiscovery().list_ports()

        assert port.address == "/dev/ttyACM0"
        assert port.protocol == "serial"
        assert port.label == "/dev/ttyACM0 (Arduino Uno)"
        assert port.protocol_label == "Serial Port (USB)"
        assert port.properties == {"vid": "0x2341", "pid": "0x0043", "serialNumber": "85735313"}

    def test_plain_port(self):
        with patch(COMPORTS, return_value=[_port_info("/dev/ttyS0")]):
            [port] = SerialPortDiscovery().list_ports()
        assert port.label == "/dev/ttyS0"
        assert port.protocol_label == "Serial Port"
        assert port.properties == {}

    def test_events(self):
        with patch(COMPORTS, return_value=[_port_info("COM3", 0x10C4, 0xEA60)]):
            [event] = SerialPortDiscovery()()
        assert event.type == "add"
        assert event.discovery_id == SERIAL_DISCOVERY_ID
        assert event.port.properties["vid"] == "0x10c4"

    def test_enumeration_failure(self):
        with patch(COMPORTS, side_effect=OSError("no sysfs")):
            with pytest.raises(DiscoveryError, match="no sysfs"):
                SerialPortDiscovery().list_ports()
