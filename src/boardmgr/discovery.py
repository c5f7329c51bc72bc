"""Board discovery events.

A discovery reports ports appearing and disappearing. Each port carries a set
of identification properties (for serial ports: ``vid``, ``pid`` and
``serialNumber``) that are matched against the ``upload_port`` / ``vid.N`` /
``pid.N`` properties of installed boards.

SerialPortDiscovery lists the serial ports currently connected through
pyserial and reports each of them as an "add" event.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List

import serial.tools.list_ports

from .errors import DiscoveryError
from .interrupt_utils import handle_keyboard_interrupt_properly

SERIAL_DISCOVERY_ID = "builtin:serial-discovery"


@dataclass
class Port:
    """A port reported by a discovery."""

    address: str
    protocol: str = "serial"
    label: str = ""
    protocol_label: str = ""
    properties: Dict[str, str] = field(default_factory=dict)


@dataclass
class DiscoveryEvent:
    """A port added to or removed from the system."""

    type: str
    port: Port
    discovery_id: str = ""


DiscoverySource = Callable[[], Iterable[DiscoveryEvent]]


def _hex_id(value) -> str:
    return f"0x{value:04x}" if value is not None else ""


class SerialPortDiscovery:
    """Lists connected serial ports as discovery events."""

    def __init__(self, discovery_id: str = SERIAL_DISCOVERY_ID):
        self.discovery_id = discovery_id

    def list_ports(self) -> List[Port]:
        """Get the serial ports currently connected.

        Raises:
            DiscoveryError: If the ports cannot be enumerated
        """
        try:
            found = list(serial.tools.list_ports.comports())
        except KeyboardInterrupt as ke:
            handle_keyboard_interrupt_properly(ke)
            raise
        except OSError as e:
            raise DiscoveryError("Listing serial ports", e) from e

        ports = []
        for info in found:
            properties = {}
            if info.vid is not None:
                properties["vid"] = _hex_id(info.vid)
            if info.pid is not None:
                properties["pid"] = _hex_id(info.pid)
            if info.serial_number:
                properties["serialNumber"] = info.serial_number
            label = info.device
            if info.description and info.description != "n/a":
                label = f"{info.device} ({info.description})"
            ports.append(
                Port(
                    address=info.device,
                    protocol="serial",
                    label=label,
                    protocol_label="Serial Port (USB)" if info.vid is not None else "Serial Port",
                    properties=properties,
                )
            )
        logging.debug(f"Found {len(ports)} serial ports")
        return ports

    def events(self) -> List[DiscoveryEvent]:
        """Report every connected serial port as an "add" event."""
        return [DiscoveryEvent("add", port, self.discovery_id) for port in self.list_ports()]

    def __call__(self) -> List[DiscoveryEvent]:
        return self.events()
