"""Library index.

The library index is a JSON document with one entry per library release:

    {
      "libraries": [{
        "name": "Servo",
        "version": "1.2.1",
        "author": "Michael Margolis, Arduino",
        "sentence": "Allows Arduino boards to control a variety of servo motors.",
        "architectures": ["avr", "megaavr", "sam"],
        "url": "https://downloads.arduino.cc/libraries/github.com/arduino-libraries/Servo-1.2.1.zip",
        "archiveFileName": "Servo-1.2.1.zip",
        "size": 59290,
        "checksum": "SHA-256:...",
        "dependencies": [{"name": "Other", "version": "1.0.0"}]
      }]
    }
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import IndexLoadError
from ..packages.resources import DownloadResource
from ..packages.version import Version
from .library import Library

LIBRARIES_CACHE_PATH = "libraries"


@dataclass(frozen=True)
class LibraryDependency:
    name: str
    version: str = ""


class LibraryRelease:
    """One indexed version of a library."""

    def __init__(self, library: "IndexLibrary", version: Version, resource: Optional[DownloadResource]):
        self.library = library
        self.version = version
        self.resource = resource
        self.author = ""
        self.sentence = ""
        self.architectures: List[str] = []
        self.dependencies: List[LibraryDependency] = []

    @property
    def name(self) -> str:
        return self.library.name

    def __str__(self) -> str:
        return f"{self.library.name}@{self.version}"

    def __repr__(self) -> str:
        return f"LibraryRelease({str(self)!r})"


@dataclass
class IndexLibrary:
    """All indexed releases of one library."""

    name: str
    releases: Dict[str, LibraryRelease] = field(default_factory=dict)

    def latest(self) -> Optional[LibraryRelease]:
        best = None
        for release in self.releases.values():
            if best is None or release.version > best.version:
                best = release
        return best

    def find_release(self, version: Optional[str] = None) -> Optional[LibraryRelease]:
        if not version:
            return self.latest()
        if version in self.releases:
            return self.releases[version]
        for release in self.releases.values():
            if release.version == version:
                return release
        return None


class LibraryIndex:
    """Parsed library index."""

    def __init__(self):
        self.libraries: Dict[str, IndexLibrary] = {}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LibraryIndex":
        index = cls()
        entries = data.get("libraries") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise IndexLoadError("Invalid library index: missing libraries list")
        for entry in entries:
            name = entry.get("name")
            version = entry.get("version")
            if not name or not version:
                continue
            try:
                parsed = Version(version)
            except ValueError:
                continue
            library = index.libraries.setdefault(name, IndexLibrary(name))
            resource = None
            if entry.get("url"):
                resource = DownloadResource(
                    url=entry["url"],
                    archive_file_name=entry.get("archiveFileName", ""),
                    checksum=entry.get("checksum", ""),
                    size=int(entry.get("size") or 0),
                    cache_path=LIBRARIES_CACHE_PATH,
                )
            release = LibraryRelease(library, parsed, resource)
            release.author = entry.get("author", "")
            release.sentence = entry.get("sentence", "")
            release.architectures = list(entry.get("architectures") or [])
            release.dependencies = [
                LibraryDependency(d.get("name", ""), d.get("version", "")) for d in entry.get("dependencies") or []
            ]
            library.releases[version] = release
        return index

    @classmethod
    def from_file(cls, path: Path) -> "LibraryIndex":
        """Load the library index.

        Raises:
            IndexLoadError: If the file is missing, unreadable or malformed
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise IndexLoadError(f"Reading library index {path}", e) from e
        except json.JSONDecodeError as e:
            raise IndexLoadError(f"Parsing library index {path}", e) from e
        return cls.from_dict(data)

    def find_library(self, name: str) -> Optional[IndexLibrary]:
        return self.libraries.get(name)

    def find_release(self, name: str, version: Optional[str] = None) -> Optional[LibraryRelease]:
        library = self.find_library(name)
        if library is None:
            return None
        return library.find_release(version)

    def find_library_update(self, installed: Library) -> Optional[LibraryRelease]:
        """Get the indexed release newer than an installed library, if any."""
        library = self.find_library(installed.name)
        if library is None:
            return None
        latest = library.latest()
        if latest is None:
            return None
        if installed.version is None or latest.version > installed.version:
            return latest
        return None

    def __len__(self) -> int:
        return len(self.libraries)
