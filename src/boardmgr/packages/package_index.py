"""Package index documents.

A package index is a JSON document listing packages with their platform and
tool releases:

    {
      "packages": [{
        "name": "arduino",
        "maintainer": "Arduino",
        "platforms": [{
          "name": "Arduino AVR Boards",
          "architecture": "avr",
          "version": "1.8.6",
          "category": "Arduino",
          "url": "https://downloads.arduino.cc/cores/avr-1.8.6.tar.bz2",
          "archiveFileName": "avr-1.8.6.tar.bz2",
          "checksum": "SHA-256:...",
          "size": "4941548",
          "boards": [{"name": "Arduino Uno"}],
          "toolsDependencies": [{"packager": "arduino", "name": "avr-gcc", "version": "7.3.0-atmel3.6.1-arduino7"}],
          "discoveryDependencies": [{"packager": "builtin", "name": "serial-discovery"}]
        }],
        "tools": [{
          "name": "avr-gcc",
          "version": "7.3.0-atmel3.6.1-arduino7",
          "systems": [{"host": "x86_64-pc-linux-gnu", "url": "...", "archiveFileName": "...",
                       "checksum": "SHA-256:...", "size": "34462042"}]
        }]
      }]
    }

Indexes from different URLs merge by package name. A release already present
in the graph takes the fields of the index merged last.
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, NoReturn, Optional

from ..errors import IndexLoadError
from .cores import Flavour, Packages, PlatformRelease, ToolDependency, ToolRelease
from .resources import DownloadResource

PACKAGES_CACHE_PATH = "packages"


def _size(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _dependencies(entries: Optional[List[Dict[str, Any]]]) -> List[ToolDependency]:
    deps = []
    for entry in entries or []:
        deps.append(ToolDependency(entry.get("packager", ""), entry.get("name", ""), entry.get("version", "")))
    return deps


def _resource(entry: Dict[str, Any]) -> Optional[DownloadResource]:
    if not entry.get("url"):
        return None
    return DownloadResource(
        url=entry["url"],
        archive_file_name=entry.get("archiveFileName", ""),
        checksum=entry.get("checksum", ""),
        size=_size(entry.get("size")),
        cache_path=PACKAGES_CACHE_PATH,
    )


_ENTRY_STRINGS = ("name", "maintainer", "websiteURL", "email", "architecture", "version", "category", "host")
_RESOURCE_STRINGS = ("url", "archiveFileName", "checksum")


class _Validator:
    """Checks the shape of a decoded index before anything is merged."""

    def __init__(self, source: str):
        self.source = source

    def fail(self, where: str, problem: str) -> NoReturn:
        raise IndexLoadError(f"Invalid package index {self.source}: {where} {problem}")

    def mapping(self, value: Any, where: str) -> Dict[str, Any]:
        if not isinstance(value, dict):
            self.fail(where, "is not an object")
        for key in _ENTRY_STRINGS + _RESOURCE_STRINGS:
            if value.get(key) is not None and not isinstance(value[key], str):
                self.fail(where, f"has a non-string {key!r}")
        if isinstance(value.get("version"), str) and value["version"] and not value["version"].strip():
            self.fail(where, "has a blank version")
        size = value.get("size")
        if size is not None and not isinstance(size, (str, int)):
            self.fail(where, "has an invalid size")
        return value

    def entries(self, value: Any, where: str) -> List[Dict[str, Any]]:
        if value is None:
            return []
        if not isinstance(value, list):
            self.fail(where, "is not a list")
        return [self.mapping(item, f"{where}[{i}]") for i, item in enumerate(value)]

    def index(self, data: Dict[str, Any]) -> None:
        for i, package in enumerate(self.entries(data.get("packages"), "packages")):
            where = f"package {package.get('name') or i}"
            for j, platform in enumerate(self.entries(package.get("platforms"), f"{where} platforms")):
                platform_where = f"{where} platform {platform.get('architecture') or j}"
                self.entries(platform.get("toolsDependencies"), f"{platform_where} toolsDependencies")
                self.entries(platform.get("discoveryDependencies"), f"{platform_where} discoveryDependencies")
                self.entries(platform.get("boards"), f"{platform_where} boards")
                help_entry = platform.get("help")
                if help_entry is not None and not isinstance(help_entry, dict):
                    self.fail(platform_where, "has a help field that is not an object")
                if isinstance(help_entry, dict) and not isinstance(help_entry.get("online") or "", str):
                    self.fail(platform_where, "has a non-string help URL")
            for j, tool in enumerate(self.entries(package.get("tools"), f"{where} tools")):
                self.entries(tool.get("systems"), f"{where} tool {tool.get('name') or j} systems")


class PackageIndex:
    """A parsed package index document."""

    def __init__(self, data: Dict[str, Any], trusted: bool = False, source: str = ""):
        """Initialize from decoded JSON.

        Args:
            data: Decoded index document
            trusted: Whether the document passed signature verification
            source: Where the document came from (used in messages)

        Raises:
            IndexLoadError: If an entry of the document has the wrong shape
        """
        if not isinstance(data, dict) or not isinstance(data.get("packages", []), list):
            raise IndexLoadError(f"Invalid package index {source}: missing packages list")
        _Validator(source).index(data)
        self.data = data
        self.trusted = trusted
        self.source = source

    @classmethod
    def from_file(cls, path: Path, trusted: bool = False) -> "PackageIndex":
        """Load an index document from a file.

        Raises:
            IndexLoadError: If the file cannot be read or is not a valid index
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise IndexLoadError(f"Reading package index {path}", e) from e
        except json.JSONDecodeError as e:
            raise IndexLoadError(f"Parsing package index {path}", e) from e
        return cls(data, trusted=trusted, source=str(path))

    @property
    def packages(self) -> List[Dict[str, Any]]:
        return self.data.get("packages", [])

    def merge_into(self, packages: Packages, index_url: str = "") -> None:
        """Add the packages, platforms and tools of this index to a graph."""
        for entry in self.packages:
            name = entry.get("name")
            if not name:
                continue
            package = packages.get_or_create_package(name)
            package.maintainer = entry.get("maintainer") or package.maintainer
            package.website_url = entry.get("websiteURL") or package.website_url
            package.email = entry.get("email") or package.email
            if index_url and not package.index_url:
                package.index_url = index_url

            for platform_entry in entry.get("platforms") or []:
                arch = platform_entry.get("architecture")
                version = platform_entry.get("version")
                if not arch or not version:
                    continue
                platform = package.get_or_create_platform(arch)
                platform.name = platform_entry.get("name") or platform.name
                release = platform.get_or_create_release(version)
                self._merge_platform_release(release, platform_entry)

            for tool_entry in entry.get("tools") or []:
                tool_name = tool_entry.get("name")
                version = tool_entry.get("version")
                if not tool_name or not version:
                    continue
                tool_release = package.get_or_create_tool(tool_name).get_or_create_release(version)
                self._merge_tool_release(tool_release, tool_entry)

    def _merge_platform_release(self, release: PlatformRelease, entry: Dict[str, Any]) -> None:
        release.name = entry.get("name") or release.name
        release.category = entry.get("category") or release.category
        resource = _resource(entry)
        if resource is not None:
            release.resource = resource
        release.tool_dependencies = _dependencies(entry.get("toolsDependencies"))
        release.discovery_dependencies = _dependencies(entry.get("discoveryDependencies"))
        release.board_names = [b.get("name", "") for b in entry.get("boards") or []]
        release.help_url = (entry.get("help") or {}).get("online") or release.help_url
        # Trust is only granted by a verified index, never withdrawn by a later one
        release.trusted = release.trusted or self.trusted

    def _merge_tool_release(self, release: ToolRelease, entry: Dict[str, Any]) -> None:
        flavours = []
        for system in entry.get("systems") or []:
            resource = _resource(system)
            if resource is not None and system.get("host"):
                flavours.append(Flavour(system["host"], resource))
        if flavours:
            release.flavours = flavours


def _platform_release_entry(release: PlatformRelease) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "name": release.name,
        "architecture": release.platform.architecture,
        "version": str(release.version),
        "category": release.category,
        "boards": [{"name": name} for name in release.board_names],
        "toolsDependencies": [{"packager": d.packager, "name": d.name, "version": d.version} for d in release.tool_dependencies],
        "discoveryDependencies": [{"packager": d.packager, "name": d.name} for d in release.discovery_dependencies],
    }
    if release.help_url:
        entry["help"] = {"online": release.help_url}
    if release.resource is not None:
        entry.update(
            {
                "url": release.resource.url,
                "archiveFileName": release.resource.archive_file_name,
                "checksum": release.resource.checksum,
                "size": str(release.resource.size),
            }
        )
    return entry


def _tool_release_entry(release: ToolRelease) -> Dict[str, Any]:
    return {
        "name": release.tool.name,
        "version": str(release.version),
        "systems": [
            {
                "host": f.host,
                "url": f.resource.url,
                "archiveFileName": f.resource.archive_file_name,
                "checksum": f.resource.checksum,
                "size": str(f.resource.size),
            }
            for f in release.flavours
        ],
    }


def installed_index_for(release: PlatformRelease, tools: Iterable[ToolRelease]) -> Dict[str, Any]:
    """Build the index document stored as installed.json next to an installed platform.

    Args:
        release: The installed platform release
        tools: Tool releases the platform depends on

    Returns:
        Index document containing the platform release and its tools
    """
    package = release.platform.package
    packages: Dict[str, Dict[str, Any]] = {
        package.name: {
            "name": package.name,
            "maintainer": package.maintainer,
            "websiteURL": package.website_url,
            "email": package.email,
            "platforms": [_platform_release_entry(release)],
            "tools": [],
        }
    }
    for tool_release in tools:
        owner = tool_release.tool.package.name
        if owner not in packages:
            packages[owner] = {"name": owner, "platforms": [], "tools": []}
        packages[owner]["tools"].append(_tool_release_entry(tool_release))
    return {"packages": list(packages.values())}


def write_installed_index(path: Path, release: PlatformRelease, tools: Iterable[ToolRelease]) -> None:
    """Write installed.json for a platform release."""
    with open(path, "w", encoding="utf-8") as f:
        json.dump(installed_index_for(release, tools), f, indent=2)
