"""Board operations: resolve, details, list all, list connected."""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Union

from ..discovery import DiscoveryEvent, Port, SerialPortDiscovery
from ..packages.cores import Board, ToolDependency
from ..packages.fqbn import FQBN
from ..packages.package_manager import PackageManager
from ..packages.resolver import ResolvedBoard, resolve_fqbn
from .instances import InstanceRegistry, default_registry


@dataclass
class ConfigValue:
    value: str
    label: str
    selected: bool = False


@dataclass
class ConfigOption:
    option: str
    label: str
    values: List[ConfigValue] = field(default_factory=list)


@dataclass
class BoardDetails:
    """Description of a board of an installed platform."""

    fqbn: str
    name: str
    version: str
    package_maintainer: str
    platform_name: str
    config_options: List[ConfigOption] = field(default_factory=list)
    identification_properties: List[Dict[str, str]] = field(default_factory=list)
    tool_dependencies: List[ToolDependency] = field(default_factory=list)
    programmers: List[str] = field(default_factory=list)


@dataclass
class BoardListItem:
    name: str
    fqbn: str
    platform: str
    hidden: bool = False


@dataclass
class DetectedPort:
    """A connected port and the installed boards that match it."""

    port: Port
    boards: List[BoardListItem] = field(default_factory=list)


def _list_item(board: Board) -> BoardListItem:
    return BoardListItem(
        name=board.name,
        fqbn=board.fqbn,
        platform=str(board.platform_release),
        hidden="hide" in board.properties,
    )


def resolve(
    instance_id: int,
    fqbn: Union[str, FQBN],
    registry: Optional[InstanceRegistry] = None,
) -> ResolvedBoard:
    """Resolve an FQBN against the installed platforms of an instance.

    Raises:
        InvalidInstanceError: If the id is unknown
        UnknownFQBNError: If the FQBN cannot be resolved
    """
    registry = registry or default_registry()
    with registry.acquire(instance_id) as instance:
        return resolve_fqbn(instance.package_manager, fqbn)


def board_details(
    instance_id: int,
    fqbn: Union[str, FQBN],
    registry: Optional[InstanceRegistry] = None,
) -> BoardDetails:
    """Describe a board: config options, identification and tool dependencies.

    Raises:
        InvalidInstanceError: If the id is unknown
        UnknownFQBNError: If the FQBN cannot be resolved
    """
    registry = registry or default_registry()
    with registry.acquire(instance_id) as instance:
        resolved = resolve_fqbn(instance.package_manager, fqbn)
        board = resolved.board
        release = resolved.platform_release
        selected = board.default_configs()
        selected.update(resolved.fqbn.configs)

        options = []
        for option, label in board.config_options().items():
            values = [
                ConfigValue(value, value_label, selected.get(option) == value)
                for value, value_label in board.config_values(option).items()
            ]
            options.append(ConfigOption(option, label, values))

        return BoardDetails(
            fqbn=resolved.fqbn.board_prefix(),
            name=board.name,
            version=str(release.version),
            package_maintainer=resolved.package.maintainer,
            platform_name=release.name or resolved.platform.name,
            config_options=options,
            identification_properties=board.identification_properties(),
            tool_dependencies=list(release.tool_dependencies),
            programmers=sorted(release.programmers),
        )


def _installed_boards(pm: PackageManager) -> List[Board]:
    boards = []
    for platform in pm.packages.platforms():
        release = platform.installed_release()
        if release is not None:
            boards.extend(release.boards.values())
    return boards


def board_list_all(
    instance_id: int,
    search: str = "",
    include_hidden: bool = False,
    registry: Optional[InstanceRegistry] = None,
) -> List[BoardListItem]:
    """List the boards of every installed platform, sorted by name.

    Args:
        search: Case-insensitive words that must all appear in the name or FQBN
        include_hidden: Also list boards marked ``hide`` in boards.txt

    Raises:
        InvalidInstanceError: If the id is unknown
    """
    registry = registry or default_registry()
    words = search.lower().split()
    with registry.acquire(instance_id) as instance:
        items = []
        for board in _installed_boards(instance.package_manager):
            item = _list_item(board)
            if item.hidden and not include_hidden:
                continue
            haystack = f"{item.name} {item.fqbn}".lower()
            if all(word in haystack for word in words):
                items.append(item)
        return sorted(items, key=lambda i: (i.name.lower(), i.fqbn))


def identify_boards(pm: PackageManager, port: Port) -> List[BoardListItem]:
    """Get the installed boards whose identification properties match a port."""
    matches = [_list_item(b) for b in _installed_boards(pm) if b.identifies(port.properties)]
    return sorted(matches, key=lambda i: i.fqbn)


def board_list(
    instance_id: int,
    events: Optional[Iterable[DiscoveryEvent]] = None,
    registry: Optional[InstanceRegistry] = None,
) -> List[DetectedPort]:
    """List connected ports with the installed boards matching each of them.

    Args:
        events: Discovery events to process; by default the serial ports
            currently connected

    Raises:
        InvalidInstanceError: If the id is unknown
        DiscoveryError: If the serial ports cannot be listed
    """
    registry = registry or default_registry()
    if events is None:
        events = SerialPortDiscovery().events()
    with registry.acquire(instance_id) as instance:
        ports: Dict[str, Port] = {}
        for event in events:
            key = f"{event.port.protocol}:{event.port.address}"
            if event.type == "add":
                ports[key] = event.port
            elif event.type == "remove":
                ports.pop(key, None)
        return [DetectedPort(port, identify_boards(instance.package_manager, port)) for port in ports.values()]
