"""Resolution of fully qualified board names.

An FQBN names a board inside an installed platform. Resolving it yields the
installed platform release defining the board and the merged build properties
used by a build:

    platform.txt of the build platform
    + runtime properties (paths of the platform, core, variant and tools)
    + board properties with the selected menu options applied

A board may take its core or its variant from another package by writing
``build.core=vendor:core`` or ``build.variant=vendor:variant``. The build
platform is then the installed platform of the same architecture in that
package ("actual platform").
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from ..errors import InvalidFQBNError, UnknownBoardError, UnknownPackageError, UnknownPlatformError
from .cores import Board, Package, Packages, Platform, PlatformRelease
from .fqbn import FQBN
from .package_manager import PackageManager
from .properties import PropertiesMap


@dataclass
class ResolvedBoard:
    """Result of resolving an FQBN."""

    fqbn: FQBN
    package: Package
    platform: Platform
    platform_release: PlatformRelease
    board: Board
    build_properties: PropertiesMap
    build_platform_release: PlatformRelease

    @property
    def actual_platform(self) -> PlatformRelease:
        return self.build_platform_release


def _installed_release(packages: Packages, package_name: str, architecture: str) -> Tuple[Package, Platform, PlatformRelease]:
    package = packages.get(package_name)
    if package is None:
        raise UnknownPackageError(f"Unknown package {package_name}")
    platform = package.platforms.get(architecture)
    if platform is None:
        raise UnknownPlatformError(f"Unknown platform {package_name}:{architecture}")
    release = platform.installed_release()
    if release is None:
        raise UnknownPlatformError(f"Platform {package_name}:{architecture} is not installed")
    return package, platform, release


def _split_reference(value: str) -> Tuple[Optional[str], str]:
    vendor, sep, name = value.partition(":")
    if sep:
        return vendor, name
    return None, value


def resolve_fqbn(pm: PackageManager, fqbn: Union[str, FQBN]) -> ResolvedBoard:
    """Resolve an FQBN against the installed platforms of a package manager.

    Args:
        pm: Package manager with indexes and hardware loaded
        fqbn: FQBN string or parsed FQBN

    Returns:
        ResolvedBoard

    Raises:
        InvalidFQBNError: If the FQBN is malformed or selects an undefined option
        UnknownPackageError: If the package is unknown
        UnknownPlatformError: If the platform is unknown or not installed
        UnknownBoardError: If the board is not defined by the installed platform
    """
    if not isinstance(fqbn, FQBN):
        fqbn = FQBN.parse(fqbn)

    package, platform, release = _installed_release(pm.packages, fqbn.package, fqbn.platform_arch)
    board = release.boards.get(fqbn.board_id)
    if board is None:
        raise UnknownBoardError(f"Board {fqbn.board_id} not found in platform {release}")

    try:
        board_props = board.build_properties(fqbn.configs)
    except ValueError as e:
        raise InvalidFQBNError(f"Getting build properties for board {fqbn}", e) from e

    build_release = release
    core = board_props.get("build.core", "arduino")
    core_vendor, core = _split_reference(core)
    if core_vendor is not None:
        _, _, build_release = _installed_release(pm.packages, core_vendor, fqbn.platform_arch)
        board_props.set("build.core", core)

    variant_release = release
    variant = board_props.get("build.variant")
    variant_vendor, variant = _split_reference(variant)
    if variant_vendor is not None:
        _, _, variant_release = _installed_release(pm.packages, variant_vendor, fqbn.platform_arch)
        board_props.set("build.variant", variant)

    build_props = build_release.properties.clone()
    runtime = PropertiesMap()
    runtime.set("build.fqbn", str(fqbn))
    runtime.set("build.arch", platform.architecture.upper())
    runtime.set("runtime.platform.path", str(release.install_dir))
    runtime.set("runtime.hardware.path", str(release.install_dir.parent))
    runtime.set("build.core.path", str(build_release.install_dir / "cores" / core))
    runtime.set("build.system.path", str(build_release.install_dir / "system"))
    if variant:
        runtime.set("build.variant.path", str(variant_release.install_dir / "variants" / variant))
    for name, tool_release in sorted(pm.tools_of(release).items()):
        runtime.set(f"runtime.tools.{name}.path", str(tool_release.install_dir))
        runtime.set(f"runtime.tools.{name}-{tool_release.version}.path", str(tool_release.install_dir))
    build_props.merge(runtime, board_props)

    return ResolvedBoard(
        fqbn=fqbn,
        package=package,
        platform=platform,
        platform_release=release,
        board=board,
        build_properties=build_props,
        build_platform_release=build_release,
    )
