"""Package management for boardmgr.

This module handles the package indexes, the dependency graph of platforms and
tools, and the download, verification and installation of their archives.
"""

from .archive_utils import ArchiveExtractor, find_package_root
from .cores import (
    Board,
    Flavour,
    Package,
    Packages,
    Platform,
    PlatformReference,
    PlatformRelease,
    Tool,
    ToolDependency,
    ToolRelease,
)
from .directories import Directories
from .downloader import PackageDownloader
from .fqbn import FQBN
from .integrity import IndexSignaturePolicy, SignatureVerifier, verify_checksum
from .package_index import PackageIndex
from .package_manager import PackageManager
from .platform_utils import PlatformDetector, PlatformError
from .properties import PropertiesError, PropertiesMap
from .resolver import ResolvedBoard, resolve_fqbn
from .resources import DownloadResource
from .version import Version, parse_version

__all__ = [
    "ArchiveExtractor",
    "find_package_root",
    "Board",
    "Flavour",
    "Package",
    "Packages",
    "Platform",
    "PlatformReference",
    "PlatformRelease",
    "Tool",
    "ToolDependency",
    "ToolRelease",
    "Directories",
    "PackageDownloader",
    "FQBN",
    "IndexSignaturePolicy",
    "SignatureVerifier",
    "verify_checksum",
    "PackageIndex",
    "PackageManager",
    "PlatformDetector",
    "PlatformError",
    "PropertiesError",
    "PropertiesMap",
    "ResolvedBoard",
    "resolve_fqbn",
    "DownloadResource",
    "Version",
    "parse_version",
]
