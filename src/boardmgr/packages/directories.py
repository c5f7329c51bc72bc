"""Directory layout for a boardmgr instance.

This module maps the configured data, downloads and user directories to the
concrete paths the package and library managers work with.

Layout:
    {data}/
    ├── packages/
    │   └── {package}/
    │       ├── hardware/
    │       │   └── {architecture}/
    │       │       └── {version}/      # Installed platform release
    │       └── tools/
    │           └── {tool}/
    │               └── {version}/      # Installed tool release
    ├── tmp/                            # Extraction staging (same filesystem)
    ├── package_index.json              # Local copy of each package index
    ├── package_index.json.sig
    ├── library_index.json
    └── library_index.json.sig
    {downloads}/
    ├── packages/                       # Platform and tool archives
    └── libraries/                      # Library archives
    {user}/
    └── libraries/                      # User-installed libraries

The tmp/ directory lives under the data directory so that the final rename of
an extracted archive onto its destination never crosses a filesystem boundary.
"""

import posixpath
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

from ..config import Settings
from ..errors import PermissionDeniedError


class Directories:
    """Resolves and provisions the directories of one instance."""

    def __init__(self, settings: Settings):
        """Initialize the layout from settings.

        Args:
            settings: Instance settings
        """
        self.settings = settings

        data_dir = settings.get_path("directories.data")
        if data_dir is None:
            data_dir = Path.home() / ".boardmgr"
        self.data_dir = data_dir

        downloads_dir = settings.get_path("directories.downloads")
        self.downloads_dir = downloads_dir or (self.data_dir / "staging")

        user_dir = settings.get_path("directories.user")
        self.user_dir = user_dir or (Path.home() / "BoardMgr")

    @property
    def packages_dir(self) -> Path:
        """Directory holding installed platforms and tools."""
        return self.data_dir / "packages"

    @property
    def tmp_dir(self) -> Path:
        """Staging directory for archive extraction."""
        return self.data_dir / "tmp"

    @property
    def user_libraries_dir(self) -> Path:
        """Directory for user-installed libraries."""
        return self.user_dir / "libraries"

    @property
    def builtin_libraries_dir(self) -> Optional[Path]:
        """Directory of libraries bundled with the host application, if any."""
        return self.settings.get_path("directories.builtin.libraries")

    @property
    def builtin_tools_dirs(self) -> List[Path]:
        """Directories of tools bundled with the host application."""
        return self.settings.get_paths("directories.builtin.tools")

    @property
    def library_index_path(self) -> Path:
        return self.data_dir / "library_index.json"

    @property
    def library_index_signature_path(self) -> Path:
        return self.data_dir / "library_index.json.sig"

    def package_index_path(self, url: str) -> Path:
        """Get the local copy of a package index downloaded from a URL.

        Args:
            url: Index URL (e.g. 'https://example.com/package_example_index.json')

        Returns:
            Path to the local copy in the data directory
        """
        name = posixpath.basename(urlparse(url).path)
        return self.data_dir / name

    def ensure_directories(self) -> None:
        """Create the downloads and packages directories if they don't exist.

        Raises:
            PermissionDeniedError: If a directory cannot be created
        """
        for directory, label in (
            (self.downloads_dir, "downloads"),
            (self.packages_dir, "data"),
        ):
            if directory.is_dir():
                continue
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise PermissionDeniedError(f"Failed to create {label} directory {directory}", e) from e
