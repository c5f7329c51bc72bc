"""Unit tests for board details, board listing and connected port matching."""

from types import SimpleNamespace
from unittest.mock import patch

import pytest

from boardmgr.commands import board_details, board_list, board_list_all, platform_install
from boardmgr.discovery import DiscoveryEvent, Port
from boardmgr.errors import InvalidFQBNError, UnknownBoardError
from boardmgr.packages import PlatformReference


@pytest.fixture
def instance(registry, world, server):
    index = world.write_index(
        [
            world.package(
                "vendorA",
                platforms=[world.platform("vendorA", "arch1", "1.0.0", tools=[("vendorA", "toolX", "1.0.0")])],
                tools=[world.tool("toolX", "1.0.0")],
            )
        ]
    )
    instance_id = world.create(registry, index)
    registry.init(instance_id)
    platform_install(instance_id, PlatformReference("vendorA", "arch1"), registry=registry)
    return instance_id


class TestBoardDetails:
    """Test cases for board_details."""

    def test_details(self, registry, instance):
        details = board_details(instance, "vendorA:arch1:board1", registry=registry)

        assert details.fqbn == "vendorA:arch1:board1"
        assert details.name == "Board One"
        assert details.version == "1.0.0"
        assert details.package_maintainer == "vendorA maintainers"
        assert details.identification_properties == [{"vid": "0x2341", "pid": "0x0043"}]
        assert [(d.packager, d.name, d.version) for d in details.tool_dependencies] == [("vendorA", "toolX", "1.0.0")]
        assert details.programmers == []

        [option] = details.config_options
        assert (option.option, option.label) == ("cpu", "Processor")
        assert [(v.value, v.label, v.selected) for v in option.values] == [
            ("fast", "Fast", True),
            ("slow", "Slow", False),
        ]

    def test_selected_option(self, registry, instance):
        details = board_details(instance, "vendorA:arch1:board1:cpu=slow", registry=registry)
        assert details.fqbn == "vendorA:arch1:board1"
        assert [v.value for v in details.config_options[0].values if v.selected] == ["slow"]

    def test_unknown_board(self, registry, instance):
        with pytest.raises(UnknownBoardError):
            board_details(instance, "vendorA:arch1:nope", registry=registry)

    def test_invalid_option(self, registry, instance):
        with pytest.raises(InvalidFQBNError):
            board_details(instance, "vendorA:arch1:board1:cpu=medium", registry=registry)


class TestBoardListAll:
    """Test cases for board_list_all."""

    def test_hidden_boards_excluded(self, registry, instance):
        items = board_list_all(instance, registry=registry)
        assert [(i.name, i.fqbn, i.platform) for i in items] == [
            ("Board One", "vendorA:arch1:board1", "vendorA:arch1@1.0.0")
        ]

    def test_include_hidden(self, registry, instance):
        items = board_list_all(instance, include_hidden=True, registry=registry)
        assert [(i.name, i.hidden) for i in items] == [("Board One", False), ("Hidden Board", True)]

    def test_search(self, registry, instance):
        assert [i.fqbn for i in board_list_all(instance, "ONE", registry=registry)] == ["vendorA:arch1:board1"]
        assert [i.fqbn for i in board_list_all(instance, "arch1 board1", registry=registry)] == [
            "vendorA:arch1:board1"
        ]
        assert board_list_all(instance, "hidden", registry=registry) == []
        assert board_list_all(instance, "one zzz", registry=registry) == []

    def test_nothing_installed(self, registry, world):
        instance_id = world.create(registry)
        registry.init(instance_id)
        assert board_list_all(instance_id, registry=registry) == []


class TestBoardList:
    """Test cases for board_list."""

    def test_matches_ports(self, registry, instance):
        uno_port = Port("/dev/ttyACM0", properties={"vid": "0x2341", "pid": "0x0043", "serialNumber": "85735"})
        plain_port = Port("/dev/ttyS0")
        gone_port = Port("/dev/ttyUSB0", properties={"vid": "0x2341", "pid": "0x0043"})
        events = [
            DiscoveryEvent("add", uno_port),
            DiscoveryEvent("add", plain_port),
            DiscoveryEvent("add", gone_port),
            DiscoveryEvent("remove", Port("/dev/ttyUSB0")),
        ]

        detected = board_list(instance, events, registry=registry)

        assert [d.port.address for d in detected] == ["/dev/ttyACM0", "/dev/ttyS0"]
        assert [b.fqbn for b in detected[0].boards] == ["vendorA:arch1:board1"]
        assert detected[1].boards == []

    def test_lists_serial_ports(self, registry, instance):
        ports = [
            SimpleNamespace(device="/dev/ttyACM0", vid=0x2341, pid=0x43, serial_number="1", description="Board One"),
        ]
        with patch("boardmgr.discovery.serial.tools.list_ports.comports", return_value=ports):
            detected = board_list(instance, registry=registry)

        assert len(detected) == 1
        assert detected[0].port.label == "/dev/ttyACM0 (Board One)"
        assert [b.name for b in detected[0].boards] == ["Board One"]
