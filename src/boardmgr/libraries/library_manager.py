"""Library manager.

The library manager knows the libraries directories of an instance, the
libraries installed in them and the library index. Libraries are installed into
the user libraries directory, one directory per library named after the
library with unsafe characters replaced.
"""

import logging
import re
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import (
    AlreadyInstalledError,
    BoardManagerError,
    FailedInstallError,
    FailedUninstallError,
    IndexLoadError,
    LibraryNotFoundError,
)
from ..packages.archive_utils import ArchiveExtractor
from ..packages.cores import PlatformRelease
from ..packages.directories import Directories
from ..packages.downloader import PackageDownloader, ProgressCallback
from .library import Library, LibraryError, LibraryLocation
from .library_index import LibraryIndex, LibraryRelease

_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_.\-]")


def sanitize_name(name: str) -> str:
    """Directory name for a library: characters other than [A-Za-z0-9_.-] become '_'."""
    return _UNSAFE_NAME_RE.sub("_", name)


@dataclass
class LibrariesDir:
    """A directory containing libraries."""

    path: Path
    location: LibraryLocation
    platform_release: Optional[PlatformRelease] = None


class LibraryManager:
    """Manages the libraries of one instance."""

    def __init__(
        self,
        directories: Directories,
        downloader: Optional[PackageDownloader] = None,
        extractor: Optional[ArchiveExtractor] = None,
    ):
        self.directories = directories
        self.downloader = downloader or PackageDownloader()
        self.extractor = extractor or ArchiveExtractor()
        self.libraries_dirs: List[LibrariesDir] = []
        self.libraries: Dict[str, List[Library]] = {}
        self.index = LibraryIndex()

    @property
    def user_libraries_dir(self) -> Path:
        return self.directories.user_libraries_dir

    def add_libraries_dir(
        self,
        path: Path,
        location: LibraryLocation,
        platform_release: Optional[PlatformRelease] = None,
    ) -> None:
        """Register a libraries directory; a path already registered is ignored."""
        path = Path(path)
        for existing in self.libraries_dirs:
            if existing.path == path:
                return
        logging.debug(f"Added libraries dir {path} ({location.value})")
        self.libraries_dirs.append(LibrariesDir(path, location, platform_release))

    def remove_libraries_dirs(self, location: LibraryLocation) -> None:
        """Forget every registered libraries directory of a location."""
        self.libraries_dirs = [d for d in self.libraries_dirs if d.location != location]

    def rescan_libraries_dirs(self) -> List[BoardManagerError]:
        """Reload the installed libraries from every registered directory.

        Returns:
            Errors for the libraries that could not be loaded
        """
        self.libraries = {}
        errors: List[BoardManagerError] = []
        for libraries_dir in self.libraries_dirs:
            if not libraries_dir.path.is_dir():
                continue
            for lib_dir in sorted(libraries_dir.path.iterdir()):
                if not lib_dir.is_dir() or lib_dir.name.startswith("."):
                    continue
                try:
                    library = Library.load(lib_dir, libraries_dir.location, libraries_dir.platform_release)
                except LibraryError as e:
                    errors.append(BoardManagerError(f"Loading library from {lib_dir}", e))
                    continue
                self.libraries.setdefault(library.name, []).append(library)
        return errors

    def load_index(self) -> LibraryIndex:
        """Load the local copy of the library index.

        Raises:
            IndexLoadError: If the index has not been downloaded or is invalid
        """
        path = self.directories.library_index_path
        if not path.is_file():
            raise IndexLoadError(f"Library index not found at {path}, update the libraries index first")
        self.index = LibraryIndex.from_file(path)
        logging.info(f"Loaded library index with {len(self.index)} libraries")
        return self.index

    def find_installed(self, name: str, location: Optional[LibraryLocation] = None) -> Optional[Library]:
        for library in self.libraries.get(name, []):
            if location is None or library.location == location:
                return library
        return None

    def installed_libraries(self, location: Optional[LibraryLocation] = None) -> List[Library]:
        result = []
        for alternatives in self.libraries.values():
            for library in alternatives:
                if location is None or library.location == location:
                    result.append(library)
        return sorted(result, key=lambda lib: lib.name.lower())

    def find_release(self, name: str, version: Optional[str] = None) -> LibraryRelease:
        """Find an indexed library release; without a version the latest one.

        Raises:
            LibraryNotFoundError: If the library or version is not in the index
        """
        release = self.index.find_release(name, version)
        if release is None:
            label = f"{name}@{version}" if version else name
            raise LibraryNotFoundError(f"Library {label} not found")
        return release

    def install_dir_for(self, release: LibraryRelease) -> Path:
        return self.user_libraries_dir / sanitize_name(release.name)

    def install_prerequisite_check(self, release: LibraryRelease) -> Optional[Library]:
        """Check a library release can be installed in the user directory.

        Returns:
            The installed user library the release replaces, if any

        Raises:
            AlreadyInstalledError: If the same version is already installed
        """
        installed = self.find_installed(release.name, LibraryLocation.USER)
        if installed is None:
            return None
        if installed.version is not None and installed.version == release.version:
            raise AlreadyInstalledError(f"Library {release} is already installed")
        return installed

    def download(
        self,
        release: LibraryRelease,
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> bool:
        if release.resource is None:
            raise LibraryNotFoundError(f"Library {release} has no download")
        return release.resource.download(self.directories.downloads_dir, self.downloader, progress, cancel_event)

    def install(self, release: LibraryRelease, replaced: Optional[Library] = None) -> Path:
        """Install a downloaded library release into the user libraries directory.

        Args:
            release: Library release to install
            replaced: Installed library the release replaces

        Returns:
            Installation directory

        Raises:
            FailedInstallError: If the archive cannot be installed
        """
        if release.resource is None:
            raise FailedInstallError(f"Library {release} has no download")
        dest = self.install_dir_for(release)
        try:
            if replaced is not None and replaced.install_dir != dest and replaced.install_dir.is_dir():
                shutil.rmtree(replaced.install_dir)
            release.resource.install(self.directories.downloads_dir, self.directories.tmp_dir, dest, self.extractor)
        except (BoardManagerError, OSError) as e:
            raise FailedInstallError(f"Installing library {release}", e) from e

        if replaced is not None:
            self._forget(replaced)
        try:
            library = Library.load(dest, LibraryLocation.USER)
        except LibraryError as e:
            raise FailedInstallError(f"Loading installed library {release}", e) from e
        self.libraries.setdefault(library.name, []).append(library)
        logging.info(f"Installed library {release} in {dest}")
        return dest

    def uninstall(self, library: Library) -> None:
        """Remove an installed library.

        Raises:
            FailedUninstallError: If the directory cannot be removed
        """
        try:
            shutil.rmtree(library.install_dir)
        except OSError as e:
            raise FailedUninstallError(f"Removing library {library}", e) from e
        self._forget(library)
        logging.info(f"Uninstalled library {library}")

    def _forget(self, library: Library) -> None:
        alternatives = self.libraries.get(library.name, [])
        remaining = [lib for lib in alternatives if lib.install_dir != library.install_dir]
        if remaining:
            self.libraries[library.name] = remaining
        else:
            self.libraries.pop(library.name, None)
