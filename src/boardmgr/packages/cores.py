"""Dependency graph of packages, platforms, tools and boards.

The graph is built from one or more package indexes and from the installed
hardware found on disk:

    Packages
    └── Package (vendor namespace, e.g. "arduino")
        ├── Platform (one architecture, e.g. "avr")
        │   └── PlatformRelease (one version, e.g. "1.8.6")
        │       ├── ToolDependency -> ToolRelease
        │       └── Board (from boards.txt, installed releases only)
        └── Tool (e.g. "avr-gcc")
            └── ToolRelease (one version, one Flavour per host)

Whether a release is installed is never stored: it is answered by looking at
its installation directory every time it is asked.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Pattern

from .platform_utils import PlatformDetector
from .properties import PropertiesMap
from .resources import DownloadResource
from .version import Version, parse_version


@dataclass(frozen=True)
class PlatformReference:
    """Lookup key for a platform release: (package, architecture, version)."""

    package: str
    architecture: str
    version: Optional[str] = None

    def __str__(self) -> str:
        text = f"{self.package}:{self.architecture}"
        if self.version:
            text += f"@{self.version}"
        return text


@dataclass(frozen=True)
class ToolDependency:
    """A tool release required by a platform release."""

    packager: str
    name: str
    version: str

    def __str__(self) -> str:
        return f"{self.packager}:{self.name}@{self.version}"


@dataclass
class Flavour:
    """The download of a tool release for one host triplet."""

    host: str
    resource: DownloadResource


def _find_version(releases, version):
    text = str(version)
    if text in releases:
        return releases[text]
    wanted = parse_version(text)
    if wanted is None:
        return None
    for release in releases.values():
        if release.version == wanted:
            return release
    return None


def _latest(releases):
    best = None
    for release in releases:
        if best is None or release.version > best.version:
            best = release
    return best


class Board:
    """A board defined in the boards.txt of an installed platform release."""

    def __init__(self, board_id: str, properties: PropertiesMap, platform_release: "PlatformRelease"):
        self.board_id = board_id
        self.properties = properties
        self.platform_release = platform_release

    @property
    def name(self) -> str:
        return self.properties.get("name", self.board_id)

    @property
    def fqbn(self) -> str:
        platform = self.platform_release.platform
        return f"{platform.package.name}:{platform.architecture}:{self.board_id}"

    def config_options(self) -> Dict[str, str]:
        """Get the custom config options of the board mapped to their labels.

        Option labels come from the ``menu.<option>`` entries at the top of
        boards.txt; an option without a label is labelled with its own id.
        """
        menus = self.platform_release.menus
        return {option: menus.get(option, option) for option in self.properties.sub_tree("menu").first_level_keys()}

    def config_values(self, option: str) -> Dict[str, str]:
        """Get the values of a config option mapped to their labels, in file order."""
        sub = self.properties.sub_tree(f"menu.{option}")
        return {value: sub.get(value, value) for value in sub.first_level_keys()}

    def default_configs(self) -> Dict[str, str]:
        """Each config option with its first value selected."""
        defaults = {}
        for option in self.config_options():
            values = list(self.config_values(option))
            if values:
                defaults[option] = values[0]
        return defaults

    def build_properties(self, configs: Optional[Dict[str, str]] = None) -> PropertiesMap:
        """Get the board properties with the selected config values applied.

        Args:
            configs: Selected config values; unselected options use their default

        Returns:
            New PropertiesMap with board and menu properties merged

        Raises:
            ValueError: If an option or a value is not defined for the board
        """
        configs = configs or {}
        options = self.config_options()
        for option, value in configs.items():
            if option not in options:
                raise ValueError(f"invalid option '{option}'")
            if value not in self.config_values(option):
                raise ValueError(f"invalid value '{value}' for option '{option}'")

        selected = self.default_configs()
        selected.update(configs)
        props = self.properties.clone()
        for option, value in selected.items():
            props.merge(self.properties.sub_tree(f"menu.{option}.{value}"))
        return props

    def identification_properties(self) -> List[Dict[str, str]]:
        """Get the property sets that identify this board on a port.

        Both ``upload_port.N.key=value`` entries and the legacy ``vid.N`` /
        ``pid.N`` pairs are returned, one dict per index N.
        """
        ids: List[Dict[str, str]] = []
        upload_port = self.properties.sub_tree("upload_port")
        for index in upload_port.first_level_keys():
            if index.isdigit():
                ids.append(upload_port.sub_tree(index).as_dict())

        vids = self.properties.sub_tree("vid")
        pids = self.properties.sub_tree("pid")
        for index in vids.first_level_keys():
            if not index.isdigit() or index not in pids:
                continue
            legacy = {"vid": vids.get(index), "pid": pids.get(index)}
            if legacy not in ids:
                ids.append(legacy)
        return ids

    def identifies(self, port_properties: Dict[str, str]) -> bool:
        """Check whether a discovered port matches one of the identification sets."""
        normalized = {k.lower(): v.lower() for k, v in port_properties.items()}
        for ids in self.identification_properties():
            if ids and all(normalized.get(k.lower()) == v.lower() for k, v in ids.items()):
                return True
        return False

    def __str__(self) -> str:
        return self.fqbn

    def __repr__(self) -> str:
        return f"Board({self.fqbn!r})"


class PlatformRelease:
    """One version of a platform."""

    def __init__(self, platform: "Platform", version: Version):
        self.platform = platform
        self.version = version
        self.name = ""
        self.category = ""
        self.resource: Optional[DownloadResource] = None
        self.tool_dependencies: List[ToolDependency] = []
        self.discovery_dependencies: List[ToolDependency] = []
        self.board_names: List[str] = []
        self.help_url = ""
        self.trusted = False
        # Filled from disk for installed releases
        self.boards: Dict[str, Board] = {}
        self.properties = PropertiesMap()
        self.menus = PropertiesMap()
        self.programmers: Dict[str, PropertiesMap] = {}

    @property
    def install_dir(self) -> Path:
        return self.platform.install_root / str(self.version)

    def is_installed(self) -> bool:
        return self.install_dir.is_dir()

    @property
    def reference(self) -> PlatformReference:
        return PlatformReference(self.platform.package.name, self.platform.architecture, str(self.version))

    @property
    def libraries_dir(self) -> Path:
        return self.install_dir / "libraries"

    def clear_installed_data(self) -> None:
        self.boards = {}
        self.properties = PropertiesMap()
        self.menus = PropertiesMap()
        self.programmers = {}

    def __str__(self) -> str:
        return f"{self.platform}@{self.version}"

    def __repr__(self) -> str:
        return f"PlatformRelease({str(self)!r})"


class Platform:
    """A board support platform for one architecture of a package."""

    def __init__(self, package: "Package", architecture: str):
        self.package = package
        self.architecture = architecture
        self.name = ""
        self.releases: Dict[str, PlatformRelease] = {}

    @property
    def install_root(self) -> Path:
        return self.package.install_root / "hardware" / self.architecture

    def get_or_create_release(self, version: str) -> PlatformRelease:
        release = _find_version(self.releases, version)
        if release is None:
            release = PlatformRelease(self, Version(version))
            self.releases[str(version)] = release
        return release

    def find_release(self, version: str) -> Optional[PlatformRelease]:
        return _find_version(self.releases, version)

    def latest_release(self) -> Optional[PlatformRelease]:
        return _latest(self.releases.values())

    def installed_releases(self) -> List[PlatformRelease]:
        return sorted((r for r in self.releases.values() if r.is_installed()), key=lambda r: r.version)

    def installed_release(self) -> Optional[PlatformRelease]:
        """The highest installed release, if any."""
        return _latest(self.installed_releases())

    def __str__(self) -> str:
        return f"{self.package.name}:{self.architecture}"


class ToolRelease:
    """One version of a tool."""

    def __init__(self, tool: "Tool", version: Version):
        self.tool = tool
        self.version = version
        self.flavours: List[Flavour] = []
        self.bundled_dir: Optional[Path] = None

    @property
    def install_dir(self) -> Path:
        if self.bundled_dir is not None:
            return self.bundled_dir
        return self.tool.install_root / str(self.version)

    def is_installed(self) -> bool:
        return self.install_dir.is_dir()

    def compatible_flavour(self, patterns: Optional[List[Pattern[str]]] = None) -> Optional[Flavour]:
        """Get the flavour matching the host, trying host patterns in order."""
        if patterns is None:
            patterns = PlatformDetector.host_patterns()
        for pattern in patterns:
            for flavour in self.flavours:
                if pattern.match(flavour.host):
                    return flavour
        return None

    def resource(self, patterns: Optional[List[Pattern[str]]] = None) -> Optional[DownloadResource]:
        flavour = self.compatible_flavour(patterns)
        return flavour.resource if flavour else None

    def __str__(self) -> str:
        return f"{self.tool.package.name}:{self.tool.name}@{self.version}"

    def __repr__(self) -> str:
        return f"ToolRelease({str(self)!r})"


class Tool:
    """A build tool of a package."""

    def __init__(self, package: "Package", name: str):
        self.package = package
        self.name = name
        self.releases: Dict[str, ToolRelease] = {}

    @property
    def install_root(self) -> Path:
        return self.package.install_root / "tools" / self.name

    def get_or_create_release(self, version: str) -> ToolRelease:
        release = _find_version(self.releases, version)
        if release is None:
            release = ToolRelease(self, Version(version))
            self.releases[str(version)] = release
        return release

    def find_release(self, version: str) -> Optional[ToolRelease]:
        return _find_version(self.releases, version)

    def latest_release(self) -> Optional[ToolRelease]:
        return _latest(self.releases.values())

    def installed_releases(self) -> List[ToolRelease]:
        return sorted((r for r in self.releases.values() if r.is_installed()), key=lambda r: r.version)

    def __str__(self) -> str:
        return f"{self.package.name}:{self.name}"


class Package:
    """A vendor namespace holding platforms and tools."""

    def __init__(self, packages: "Packages", name: str):
        self.packages = packages
        self.name = name
        self.maintainer = ""
        self.website_url = ""
        self.email = ""
        self.index_url = ""
        self.platforms: Dict[str, Platform] = {}
        self.tools: Dict[str, Tool] = {}

    @property
    def install_root(self) -> Path:
        return self.packages.packages_dir / self.name

    def get_or_create_platform(self, architecture: str) -> Platform:
        if architecture not in self.platforms:
            self.platforms[architecture] = Platform(self, architecture)
        return self.platforms[architecture]

    def get_or_create_tool(self, name: str) -> Tool:
        if name not in self.tools:
            self.tools[name] = Tool(self, name)
        return self.tools[name]

    def __str__(self) -> str:
        return self.name


@dataclass
class Packages:
    """All packages known to one package manager, keyed by name."""

    packages_dir: Path
    packages: Dict[str, Package] = field(default_factory=dict)

    def get_or_create_package(self, name: str) -> Package:
        if name not in self.packages:
            self.packages[name] = Package(self, name)
        return self.packages[name]

    def get(self, name: str) -> Optional[Package]:
        return self.packages.get(name)

    def clear(self) -> None:
        self.packages.clear()

    def platforms(self) -> Iterator[Platform]:
        for package in self.packages.values():
            yield from package.platforms.values()

    def installed_platform_releases(self) -> List[PlatformRelease]:
        releases = []
        for platform in self.platforms():
            releases.extend(platform.installed_releases())
        return releases

    def find_tool_release(self, dep: ToolDependency) -> Optional[ToolRelease]:
        package = self.packages.get(dep.packager)
        if package is None or dep.name not in package.tools:
            return None
        return package.tools[dep.name].find_release(dep.version)

    def snapshot(self) -> Dict[str, List[str]]:
        """Describe the graph as sorted strings, one list per package."""
        result = {}
        for name, package in sorted(self.packages.items()):
            entries = []
            for platform in package.platforms.values():
                for release in platform.releases.values():
                    entries.append(f"platform {release} installed={release.is_installed()} boards={sorted(release.boards)}")
            for tool in package.tools.values():
                for tool_release in tool.releases.values():
                    entries.append(f"tool {tool_release} installed={tool_release.is_installed()}")
            result[name] = sorted(entries)
        return result

    def __iter__(self) -> Iterator[Package]:
        return iter(self.packages.values())

    def __contains__(self, name: object) -> bool:
        return name in self.packages

    def __len__(self) -> int:
        return len(self.packages)

