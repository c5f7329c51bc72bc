"""Package manager: the dependency graph of one instance and its disk state.

The package manager loads package indexes and installed hardware into a
Packages graph and performs the single-step operations on it (download,
install and uninstall of one platform or tool release). Multi-step
transactions such as upgrades are composed from these steps by the command
layer.
"""

import logging
import shutil
import threading
from pathlib import Path
from typing import Dict, List, Optional, Pattern, Tuple
from urllib.parse import unquote, urlparse

from ..errors import (
    BoardManagerError,
    DiscoveryError,
    FailedInstallError,
    FailedUninstallError,
    IndexLoadError,
    InvalidURLError,
    PlatformNotFoundError,
    PlatformNotInstalledError,
    ToolNotFoundError,
)
from .archive_utils import ArchiveExtractor
from .cores import Board, Package, Packages, Platform, PlatformReference, PlatformRelease, Tool, ToolDependency, ToolRelease
from .directories import Directories
from .downloader import PackageDownloader, ProgressCallback
from .integrity import IndexSignaturePolicy, SignatureVerifier
from .package_index import PackageIndex, write_installed_index
from .platform_utils import PlatformDetector
from .post_install import run_post_install_script
from .properties import PropertiesError, PropertiesMap
from .resources import is_dir_empty

BUILTIN_PACKAGE = "builtin"
INSTALLED_JSON = "installed.json"


class PackageManager:
    """Holds the packages graph of one instance and operates on its directories."""

    def __init__(
        self,
        directories: Directories,
        downloader: Optional[PackageDownloader] = None,
        extractor: Optional[ArchiveExtractor] = None,
        signature_policy: Optional[IndexSignaturePolicy] = None,
        verifier: Optional[SignatureVerifier] = None,
        host_patterns: Optional[List[Pattern[str]]] = None,
        post_install_timeout: float = 300.0,
    ):
        """Initialize package manager.

        Args:
            directories: Directory layout of the instance
            downloader: Downloader for archives (default: PackageDownloader())
            extractor: Archive extractor (default: ArchiveExtractor())
            signature_policy: Which index origins must be signed (default: none)
            verifier: Detached signature verifier for indexes
            host_patterns: Tool flavour patterns for the host (default: detected)
            post_install_timeout: Seconds before a post-install script is killed
        """
        self.directories = directories
        self.downloader = downloader or PackageDownloader()
        self.extractor = extractor or ArchiveExtractor()
        self.signature_policy = signature_policy or IndexSignaturePolicy([], enforce=False)
        self.verifier = verifier or SignatureVerifier()
        self._host_patterns = host_patterns
        self.post_install_timeout = post_install_timeout
        self.packages = Packages(directories.packages_dir)
        self.discoveries: Dict[str, ToolRelease] = {}

    @property
    def host_patterns(self) -> List[Pattern[str]]:
        if self._host_patterns is None:
            self._host_patterns = PlatformDetector.host_patterns()
        return self._host_patterns

    @property
    def downloads_dir(self) -> Path:
        return self.directories.downloads_dir

    @property
    def tmp_dir(self) -> Path:
        return self.directories.tmp_dir

    def clear(self) -> None:
        """Drop every loaded package, platform and tool."""
        self.packages.clear()
        self.discoveries.clear()

    # ------------------------------------------------------------------
    # Index loading
    # ------------------------------------------------------------------

    def local_index_path(self, url: str) -> Path:
        """Get the file an index URL is loaded from.

        ``file://`` URLs and plain paths point at the index itself; any other URL
        is loaded from its local copy in the data directory.

        Raises:
            InvalidURLError: If the URL cannot be parsed
        """
        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise InvalidURLError(f"Invalid index URL {url!r}", e) from e
        if parsed.scheme == "file":
            return Path(unquote(parsed.path))
        if parsed.scheme in ("http", "https"):
            if not parsed.netloc or not parsed.path.strip("/"):
                raise InvalidURLError(f"Invalid index URL {url!r}")
            return self.directories.package_index_path(url)
        if not parsed.scheme:
            return Path(url)
        raise InvalidURLError(f"Unsupported index URL scheme {parsed.scheme!r} in {url!r}")

    def load_package_index(self, url: str) -> PackageIndex:
        """Load the local copy of a package index into the graph.

        The index is marked trusted when a ``.sig`` file next to it verifies.
        Indexes whose origin requires a signature are rejected without one.

        Raises:
            InvalidURLError: If the URL is malformed
            IndexLoadError: If the index is missing or unreadable
            SignatureVerificationError: If a required signature does not verify
        """
        path = self.local_index_path(url)
        if not path.is_file():
            raise IndexLoadError(f"Index {url} not found locally at {path}, update the index first")

        trusted = False
        signature = path.with_name(path.name + ".sig")
        if signature.is_file():
            trusted = self.verifier.verify_detached(path, signature)
        if self.signature_policy.requires_signature(url) and not trusted:
            raise IndexLoadError(f"Index {url} requires a valid signature")

        index = PackageIndex.from_file(path, trusted=trusted)
        index.merge_into(self.packages, index_url=url)
        logging.info(f"Loaded package index {url} (trusted={trusted})")
        return index

    def load_package_index_from_file(self, path: Path, index_url: str = "", trusted: bool = False) -> PackageIndex:
        index = PackageIndex.from_file(path, trusted=trusted)
        index.merge_into(self.packages, index_url=index_url)
        return index

    # ------------------------------------------------------------------
    # Hardware loading
    # ------------------------------------------------------------------

    def load_hardware(self) -> List[BoardManagerError]:
        """Load installed platforms and tools from disk into the graph.

        Returns:
            Errors for the entries that could not be loaded; loading continues past them
        """
        errors: List[BoardManagerError] = []
        packages_dir = self.directories.packages_dir
        if packages_dir.is_dir():
            for package_dir in sorted(p for p in packages_dir.iterdir() if p.is_dir()):
                package = self.packages.get_or_create_package(package_dir.name)
                errors.extend(self._load_package_hardware(package, package_dir / "hardware"))
                self._load_package_tools(package, package_dir / "tools")

        for tools_dir in self.directories.builtin_tools_dirs:
            self._load_bundled_tools(tools_dir)
        return errors

    def _load_package_hardware(self, package: Package, hardware_dir: Path) -> List[BoardManagerError]:
        errors: List[BoardManagerError] = []
        if not hardware_dir.is_dir():
            return errors
        for arch_dir in sorted(p for p in hardware_dir.iterdir() if p.is_dir()):
            platform = package.get_or_create_platform(arch_dir.name)
            for version_dir in sorted(p for p in arch_dir.iterdir() if p.is_dir()):
                try:
                    installed_json = version_dir / INSTALLED_JSON
                    if installed_json.is_file():
                        self.load_package_index_from_file(installed_json)
                    release = platform.get_or_create_release(version_dir.name)
                    self.load_platform_release(release)
                except (BoardManagerError, PropertiesError, ValueError) as e:
                    logging.warning(f"Skipping platform {platform}@{version_dir.name}: {e}")
                    errors.append(FailedInstallError(f"Loading platform {platform}@{version_dir.name}", e))
        return errors

    def _load_package_tools(self, package: Package, tools_dir: Path) -> None:
        if not tools_dir.is_dir():
            return
        for tool_dir in sorted(p for p in tools_dir.iterdir() if p.is_dir()):
            tool = package.get_or_create_tool(tool_dir.name)
            for version_dir in sorted(p for p in tool_dir.iterdir() if p.is_dir()):
                try:
                    tool.get_or_create_release(version_dir.name)
                except ValueError:
                    logging.warning(f"Ignoring tool directory with invalid version: {version_dir}")

    def _load_bundled_tools(self, tools_dir: Path) -> None:
        """Load tools shipped with the host application: ``{dir}/{packager}/{tool}/{version}``."""
        if not tools_dir.is_dir():
            return
        for packager_dir in sorted(p for p in tools_dir.iterdir() if p.is_dir()):
            package = self.packages.get_or_create_package(packager_dir.name)
            for tool_dir in sorted(p for p in packager_dir.iterdir() if p.is_dir()):
                tool = package.get_or_create_tool(tool_dir.name)
                for version_dir in sorted(p for p in tool_dir.iterdir() if p.is_dir()):
                    release = tool.get_or_create_release(version_dir.name)
                    release.bundled_dir = version_dir

    def load_platform_release(self, release: PlatformRelease) -> None:
        """Read platform.txt, boards.txt and programmers.txt of an installed release.

        Raises:
            PropertiesError: If one of the files is malformed
        """
        release.clear_installed_data()
        install_dir = release.install_dir

        properties = PropertiesMap()
        for name in ("platform.txt", "platform.local.txt"):
            path = install_dir / name
            if path.is_file():
                properties.merge(PropertiesMap.load(path))
        release.properties = properties

        boards = PropertiesMap()
        for name in ("boards.txt", "boards.local.txt"):
            path = install_dir / name
            if path.is_file():
                boards.merge(PropertiesMap.load(path))
        release.menus = boards.sub_tree("menu")
        for board_id, board_props in boards.first_level_of().items():
            if board_id == "menu":
                continue
            release.boards[board_id] = Board(board_id, board_props, release)

        programmers_txt = install_dir / "programmers.txt"
        if programmers_txt.is_file():
            release.programmers = PropertiesMap.load(programmers_txt).first_level_of()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_platform(self, ref: PlatformReference) -> Platform:
        """Find a platform by package and architecture.

        Raises:
            PlatformNotFoundError: If the package or platform is unknown
        """
        package = self.packages.get(ref.package)
        if package is None:
            raise PlatformNotFoundError(f"Package {ref.package} not found")
        platform = package.platforms.get(ref.architecture)
        if platform is None:
            raise PlatformNotFoundError(f"Platform {ref.package}:{ref.architecture} not found")
        return platform

    def find_platform_release(self, ref: PlatformReference) -> PlatformRelease:
        """Find a platform release; without a version the latest release is returned.

        Raises:
            PlatformNotFoundError: If the platform or the release is unknown
        """
        platform = self.find_platform(ref)
        if ref.version:
            release = platform.find_release(ref.version)
        else:
            release = platform.latest_release()
        if release is None:
            raise PlatformNotFoundError(f"Platform release {ref} not found")
        return release

    def get_installed_platform_release(self, platform: Platform) -> Optional[PlatformRelease]:
        return platform.installed_release()

    def find_tool_dependency(self, dep: ToolDependency) -> ToolRelease:
        """Resolve a tool dependency to a known tool release.

        Raises:
            ToolNotFoundError: If the tool release is unknown
        """
        tool_release = self.packages.find_tool_release(dep)
        if tool_release is None:
            raise ToolNotFoundError(f"Tool {dep} not found")
        return tool_release

    def find_platform_release_dependencies(self, ref: PlatformReference) -> Tuple[PlatformRelease, List[ToolRelease]]:
        """Get a platform release and every tool release it needs.

        Returns:
            Tuple of (platform release, required tool releases)

        Raises:
            PlatformNotFoundError: If the platform release is unknown
            ToolNotFoundError: If a required tool release is unknown
        """
        release = self.find_platform_release(ref)
        tools = []
        for dep in release.tool_dependencies:
            tool_release = self.find_tool_dependency(dep)
            if tool_release not in tools:
                tools.append(tool_release)
        return release, tools

    def is_tool_required(self, tool_release: ToolRelease) -> bool:
        """Check whether any installed platform release depends on a tool release."""
        for release in self.packages.installed_platform_releases():
            for dep in release.tool_dependencies:
                if self.packages.find_tool_release(dep) is tool_release:
                    return True
        return False

    def builtin_tools(self) -> List[Tool]:
        package = self.packages.get(BUILTIN_PACKAGE)
        if package is None:
            return []
        return list(package.tools.values())

    def installed_tool_release(self, packager: str, name: str) -> Optional[ToolRelease]:
        """The highest installed release of a tool, if any."""
        package = self.packages.get(packager)
        if package is None or name not in package.tools:
            return None
        installed = package.tools[name].installed_releases()
        return installed[-1] if installed else None

    # ------------------------------------------------------------------
    # Download / install / uninstall
    # ------------------------------------------------------------------

    def download_platform_release(
        self,
        release: PlatformRelease,
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> bool:
        """Download the archive of a platform release.

        Returns:
            True if a transfer happened, False if the archive was already cached
        """
        if release.resource is None:
            raise PlatformNotFoundError(f"Platform release {release} has no download")
        return release.resource.download(self.downloads_dir, self.downloader, progress, cancel_event)

    def tool_resource(self, tool_release: ToolRelease):
        resource = tool_release.resource(self.host_patterns)
        if resource is None:
            raise ToolNotFoundError(f"Tool {tool_release} is not available for this host")
        return resource

    def download_tool_release(
        self,
        tool_release: ToolRelease,
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> bool:
        """Download the archive of a tool release for the running host."""
        return self.tool_resource(tool_release).download(self.downloads_dir, self.downloader, progress, cancel_event)

    def install_platform(self, release: PlatformRelease) -> None:
        """Install a downloaded platform release and load it into the graph.

        Raises:
            FailedInstallError: If the archive cannot be installed
        """
        if release.resource is None:
            raise FailedInstallError(f"Platform release {release} has no download")
        try:
            release.resource.install(self.downloads_dir, self.tmp_dir, release.install_dir, self.extractor)
        except BoardManagerError as e:
            raise FailedInstallError(f"Installing platform {release}", e) from e

        tools = [t for t in (self.packages.find_tool_release(d) for d in release.tool_dependencies) if t is not None]
        try:
            write_installed_index(release.install_dir / INSTALLED_JSON, release, tools)
        except OSError as e:
            logging.warning(f"Could not write {INSTALLED_JSON} for {release}: {e}")

        try:
            self.load_platform_release(release)
        except PropertiesError as e:
            raise FailedInstallError(f"Loading installed platform {release}", e) from e
        logging.info(f"Installed platform {release}")

    def install_tool(self, tool_release: ToolRelease) -> None:
        """Install a downloaded tool release.

        Raises:
            FailedInstallError: If the archive cannot be installed
        """
        try:
            resource = self.tool_resource(tool_release)
            resource.install(self.downloads_dir, self.tmp_dir, tool_release.install_dir, self.extractor)
        except BoardManagerError as e:
            raise FailedInstallError(f"Installing tool {tool_release}", e) from e
        logging.info(f"Installed tool {tool_release}")

    def _remove_install_dir(self, install_dir: Path, label: str) -> None:
        try:
            shutil.rmtree(install_dir)
        except OSError as e:
            raise FailedUninstallError(f"Removing {label}", e) from e
        parent = install_dir.parent
        if is_dir_empty(parent):
            shutil.rmtree(parent, ignore_errors=True)

    def uninstall_platform(self, release: PlatformRelease) -> None:
        """Remove an installed platform release from disk.

        Raises:
            PlatformNotInstalledError: If the release is not installed
            FailedUninstallError: If the files cannot be removed
        """
        if not release.is_installed():
            raise PlatformNotInstalledError(f"Platform {release} is not installed")
        self._remove_install_dir(release.install_dir, f"platform {release}")
        release.clear_installed_data()
        logging.info(f"Uninstalled platform {release}")

    def uninstall_tool(self, tool_release: ToolRelease) -> None:
        """Remove an installed tool release from disk.

        Raises:
            FailedUninstallError: If the tool is bundled, not installed or cannot be removed
        """
        if tool_release.bundled_dir is not None:
            raise FailedUninstallError(f"Tool {tool_release} is bundled and cannot be uninstalled")
        if not tool_release.is_installed():
            raise FailedUninstallError(f"Tool {tool_release} is not installed")
        self._remove_install_dir(tool_release.install_dir, f"tool {tool_release}")
        logging.info(f"Uninstalled tool {tool_release}")

    def run_post_install(self, release: PlatformRelease) -> bool:
        """Run the post-install script of an installed platform release, if any."""
        return run_post_install_script(release.install_dir, self.post_install_timeout)

    # ------------------------------------------------------------------
    # Discoveries
    # ------------------------------------------------------------------

    @staticmethod
    def required_discoveries(release: PlatformRelease) -> List[str]:
        """Get the ``packager:tool`` discovery references of an installed release."""
        refs = []
        for dep in release.discovery_dependencies:
            refs.append(f"{dep.packager}:{dep.name}")
        props = release.properties
        for key in ("pluggable_discovery.required", "discovery.required"):
            if props.get(key):
                refs.append(props.get(key))
            indexed = props.sub_tree(key)
            for index in indexed.first_level_keys():
                if index.isdigit():
                    refs.append(indexed.get(index))
        unique: List[str] = []
        for ref in refs:
            if ref and ref not in unique:
                unique.append(ref)
        return unique

    def load_discoveries(self) -> List[BoardManagerError]:
        """Resolve the discovery tools required by installed platforms.

        Returns:
            One DiscoveryError per reference that cannot be resolved
        """
        self.discoveries.clear()
        errors: List[BoardManagerError] = []
        for release in self.packages.installed_platform_releases():
            for ref in self.required_discoveries(release):
                packager, sep, name = ref.partition(":")
                if not sep or not packager or not name:
                    errors.append(DiscoveryError(f"Invalid discovery reference {ref!r} in {release}"))
                    continue
                tool_release = self.installed_tool_release(packager, name)
                if tool_release is None:
                    errors.append(DiscoveryError(f"Discovery {ref} required by {release} is not installed"))
                    continue
                self.discoveries[ref] = tool_release
        return errors

    def tools_of(self, release: PlatformRelease) -> Dict[str, ToolRelease]:
        """Map tool names to the releases used for a platform's runtime properties.

        Dependencies of the release come first; other installed tools fill the gaps
        with their highest installed version.
        """
        tools: Dict[str, ToolRelease] = {}
        for package in self.packages:
            for tool in package.tools.values():
                installed = tool.installed_releases()
                if installed and tool.name not in tools:
                    tools[tool.name] = installed[-1]
        for dep in release.tool_dependencies:
            tool_release = self.packages.find_tool_release(dep)
            if tool_release is not None and tool_release.is_installed():
                tools[dep.name] = tool_release
        return tools
