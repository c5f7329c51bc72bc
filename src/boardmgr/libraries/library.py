"""Installed libraries.

A library is a directory found in one of the libraries directories. Libraries
with a ``library.properties`` file declare their name and version there;
legacy libraries without it take their name from the directory and have no
version.

Layouts:
    recursive: sources live under ``src/`` and are compiled recursively
    flat:      sources live at the top level, with an optional ``utility/``
"""

from enum import Enum
from pathlib import Path
from typing import List, Optional

from ..packages.cores import PlatformRelease
from ..packages.properties import PropertiesError, PropertiesMap
from ..packages.version import Version, parse_version


class LibraryError(Exception):
    """Raised when a library directory cannot be read."""

    pass


class LibraryLocation(Enum):
    """Where an installed library comes from, lowest precedence first."""

    IDE_BUILTIN = "ide"
    PLATFORM_BUILTIN = "platform"
    USER = "user"


class LibraryLayout(Enum):
    FLAT = "flat"
    RECURSIVE = "recursive"


class Library:
    """A library installed in a libraries directory."""

    def __init__(self, name: str, install_dir: Path, location: LibraryLocation):
        self.name = name
        self.install_dir = install_dir
        self.location = location
        self.version: Optional[Version] = None
        self.layout = LibraryLayout.FLAT
        self.source_dir = install_dir
        self.utility_dir: Optional[Path] = None
        self.properties = PropertiesMap()
        self.container_platform: Optional[PlatformRelease] = None
        self.is_legacy = True

    @classmethod
    def load(
        cls,
        install_dir: Path,
        location: LibraryLocation,
        container_platform: Optional[PlatformRelease] = None,
    ) -> "Library":
        """Load a library from its directory.

        Args:
            install_dir: Library directory
            location: Libraries directory kind it was found in
            container_platform: Platform release bundling the library, if any

        Returns:
            Library instance

        Raises:
            LibraryError: If library.properties is malformed
        """
        install_dir = Path(install_dir)
        library = cls(install_dir.name, install_dir, location)
        library.container_platform = container_platform

        properties_file = install_dir / "library.properties"
        if properties_file.is_file():
            try:
                library.properties = PropertiesMap.load(properties_file)
            except PropertiesError as e:
                raise LibraryError(f"Loading library.properties of {install_dir}: {e}") from e
            library.is_legacy = False
            library.name = library.properties.get("name") or install_dir.name
            library.version = parse_version(library.properties.get("version"))

        src_dir = install_dir / "src"
        if not library.is_legacy and src_dir.is_dir():
            library.layout = LibraryLayout.RECURSIVE
            library.source_dir = src_dir
        else:
            utility = install_dir / "utility"
            if utility.is_dir():
                library.utility_dir = utility
        return library

    @property
    def architectures(self) -> List[str]:
        value = self.properties.get("architectures", "*")
        return [a.strip() for a in value.split(",") if a.strip()] or ["*"]

    @property
    def author(self) -> str:
        return self.properties.get("author")

    @property
    def sentence(self) -> str:
        return self.properties.get("sentence")

    def is_compatible_with(self, architecture: str) -> bool:
        archs = self.architectures
        return "*" in archs or architecture in archs

    def __str__(self) -> str:
        if self.version is None:
            return self.name
        return f"{self.name}@{self.version}"

    def __repr__(self) -> str:
        return f"Library({str(self)!r}, {self.location.value})"
