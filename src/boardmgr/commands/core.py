"""Platform operations: download, install, uninstall.

Installing a platform release is a transaction over several steps:

    1. download every required tool that is not installed, then the platform
    2. install those tools, then the platform
    3. uninstall the previously installed release of the same platform; if that
       fails, uninstall the new release again (rollback)
    4. uninstall the tools of the previous release no installed platform needs
    5. run the post-install script of the new release

Downloads all happen before any install so a failed download leaves no tool
half installed. Tools are never rolled back: another platform may share them.
Failures of steps 4 and 5 are warnings and do not fail the transaction.
"""

import logging
import threading
from typing import List, Optional

from ..errors import (
    AlreadyInstalledError,
    BoardManagerError,
    FailedInstallError,
    InvalidArgumentError,
    PlatformNotInstalledError,
    PostInstallError,
    RollbackError,
)
from ..packages.cores import PlatformReference, PlatformRelease, ToolRelease
from ..packages.package_manager import PackageManager
from .instances import InstanceRegistry, default_registry
from .progress import ProgressReporter, ProgressSink, reporter_for
from .results import Outcome, OutcomeStatus


def parse_platform_reference(text: str) -> PlatformReference:
    """Parse ``package:architecture[@version]``.

    Raises:
        InvalidArgumentError: If the reference is malformed
    """
    ref, _, version = text.partition("@")
    package, sep, arch = ref.partition(":")
    if not sep or not package or not arch or ":" in arch:
        raise InvalidArgumentError(f"Invalid platform reference {text!r}, expected package:architecture[@version]")
    return PlatformReference(package, arch, version or None)


def download_tool(
    pm: PackageManager,
    tool_release: ToolRelease,
    reporter: ProgressReporter,
    cancel_event: Optional[threading.Event] = None,
) -> None:
    resource = pm.tool_resource(tool_release)
    reporter.download_started(resource.url, resource.archive_file_name)
    fetched = pm.download_tool_release(
        tool_release, reporter.download_callback(resource.url, resource.archive_file_name), cancel_event
    )
    message = f"{tool_release} downloaded" if fetched else f"{tool_release} already downloaded"
    reporter.download_completed(resource.url, resource.archive_file_name, message)


def download_platform(
    pm: PackageManager,
    release: PlatformRelease,
    reporter: ProgressReporter,
    cancel_event: Optional[threading.Event] = None,
) -> None:
    if release.resource is None:
        pm.download_platform_release(release)
        return
    url, name = release.resource.url, release.resource.archive_file_name
    reporter.download_started(url, name)
    fetched = pm.download_platform_release(release, reporter.download_callback(url, name), cancel_event)
    message = f"{release} downloaded" if fetched else f"{release} already downloaded"
    reporter.download_completed(url, name, message)


def uninstall_unused_tools(
    pm: PackageManager,
    tools: List[ToolRelease],
    reporter: ProgressReporter,
) -> List[str]:
    """Uninstall the tools no installed platform needs anymore.

    Returns:
        One warning per tool that could not be removed
    """
    warnings = []
    for tool_release in tools:
        if not tool_release.is_installed() or pm.is_tool_required(tool_release):
            continue
        reporter.task(f"Uninstalling {tool_release}, tool is no more required")
        try:
            pm.uninstall_tool(tool_release)
        except BoardManagerError as e:
            warning = f"Error uninstalling tool {tool_release}: {e}"
            logging.warning(warning)
            reporter.task(f"Uninstalling {tool_release}", warning, completed=True)
            warnings.append(warning)
            continue
        reporter.task(f"Uninstalling {tool_release}", f"{tool_release} uninstalled", completed=True)
    return warnings


def _known_dependencies(pm: PackageManager, release: PlatformRelease) -> List[ToolRelease]:
    tools = []
    for dep in release.tool_dependencies:
        tool_release = pm.packages.find_tool_release(dep)
        if tool_release is not None and tool_release not in tools:
            tools.append(tool_release)
    return tools


def install_platform_release(
    pm: PackageManager,
    release: PlatformRelease,
    required_tools: List[ToolRelease],
    reporter: ProgressReporter,
    skip_post_install: bool = False,
    cancel_event: Optional[threading.Event] = None,
) -> List[str]:
    """Install a platform release, replacing the installed release of the platform.

    Args:
        pm: Package manager of the instance
        release: Release to install
        required_tools: Tool releases the release depends on
        reporter: Progress reporter
        skip_post_install: Do not run the post-install script
        cancel_event: Cancels the downloads

    Returns:
        Warnings from tool cleanup and post-install

    Raises:
        AlreadyInstalledError: If the release is already installed
        FailedDownloadError: If a download fails (nothing is installed then)
        FailedInstallError: If a tool or the platform cannot be installed, or the
            previous release cannot be removed and the new one was rolled back
        RollbackError: If the rollback itself fails
    """
    platform = release.platform
    installed = platform.installed_release()
    if installed is release:
        raise AlreadyInstalledError(f"Platform {release} already installed")
    old_tools = _known_dependencies(pm, installed) if installed is not None else []

    tools_to_install = [t for t in required_tools if not t.is_installed()]
    for tool_release in tools_to_install:
        download_tool(pm, tool_release, reporter, cancel_event)
    download_platform(pm, release, reporter, cancel_event)

    for tool_release in tools_to_install:
        reporter.task(f"Installing {tool_release}")
        pm.install_tool(tool_release)
        reporter.task(f"Installing {tool_release}", f"{tool_release} installed", completed=True)

    reporter.task(f"Installing platform {release}")
    pm.install_platform(release)
    reporter.task(f"Installing platform {release}", f"Platform {release} installed", completed=True)

    warnings: List[str] = []
    if installed is not None:
        reporter.task(f"Uninstalling platform {installed}")
        try:
            pm.uninstall_platform(installed)
        except BoardManagerError as e:
            reporter.error(e, f"Uninstalling previous release {installed}")
            try:
                pm.uninstall_platform(release)
            except BoardManagerError as rollback_error:
                error = RollbackError(str(platform), str(installed.version), str(release.version), rollback_error)
                logging.critical(str(error))
                raise error from rollback_error
            raise FailedInstallError(f"Replacing platform {installed} with {release}", e) from e
        reporter.task(f"Uninstalling platform {installed}", f"Platform {installed} uninstalled", completed=True)
        warnings.extend(uninstall_unused_tools(pm, old_tools, reporter))

    if not skip_post_install:
        try:
            if pm.run_post_install(release):
                reporter.task(f"Configuring platform {release}", "Post-install script done", completed=True)
        except PostInstallError as e:
            warning = f"Cannot run post-install script of {release}: {e}"
            logging.warning(warning)
            reporter.task(f"Configuring platform {release}", warning, completed=True)
            warnings.append(warning)
    return warnings


def platform_download(
    instance_id: int,
    ref: PlatformReference,
    sink: Optional[ProgressSink] = None,
    cancel_event: Optional[threading.Event] = None,
    registry: Optional[InstanceRegistry] = None,
) -> PlatformRelease:
    """Download a platform release and the tools it needs without installing them.

    Raises:
        InvalidInstanceError: If the id is unknown
        PlatformNotFoundError: If the release is unknown
        ToolNotFoundError: If a required tool is unknown
        FailedDownloadError: If a download fails
    """
    registry = registry or default_registry()
    reporter = reporter_for(sink)
    with registry.acquire(instance_id) as instance:
        pm = instance.package_manager
        release, tools = pm.find_platform_release_dependencies(ref)
        for tool_release in tools:
            if not tool_release.is_installed():
                download_tool(pm, tool_release, reporter, cancel_event)
        download_platform(pm, release, reporter, cancel_event)
        return release


def platform_install(
    instance_id: int,
    ref: PlatformReference,
    sink: Optional[ProgressSink] = None,
    skip_post_install: bool = False,
    no_overwrite: bool = False,
    cancel_event: Optional[threading.Event] = None,
    registry: Optional[InstanceRegistry] = None,
) -> Outcome:
    """Install a platform release; without a version the latest one.

    A different installed release of the platform is replaced.

    Returns:
        Outcome with status SUCCESS or ALREADY_INSTALLED

    Raises:
        InvalidInstanceError: If the id is unknown
        PlatformNotFoundError: If the release is unknown
        AlreadyInstalledError: If no_overwrite is set and another release is installed
        FailedDownloadError, FailedInstallError, RollbackError: See install_platform_release
    """
    registry = registry or default_registry()
    reporter = reporter_for(sink)
    with registry.acquire(instance_id) as instance:
        pm = instance.package_manager
        release, tools = pm.find_platform_release_dependencies(ref)
        if release.is_installed():
            reporter.task(f"Installing platform {release}", f"Platform {release} already installed", completed=True)
            return Outcome(str(release), OutcomeStatus.ALREADY_INSTALLED)
        installed = release.platform.installed_release()
        if installed is not None and no_overwrite:
            raise AlreadyInstalledError(f"Platform {installed} already installed")
        warnings = install_platform_release(pm, release, tools, reporter, skip_post_install, cancel_event)
        return Outcome(str(release), OutcomeStatus.SUCCESS, warnings=warnings)


def platform_uninstall(
    instance_id: int,
    ref: PlatformReference,
    sink: Optional[ProgressSink] = None,
    registry: Optional[InstanceRegistry] = None,
) -> Outcome:
    """Uninstall a platform release and the tools nothing else needs.

    Without a version the installed release of the platform is removed.

    Raises:
        InvalidInstanceError: If the id is unknown
        PlatformNotFoundError: If the platform is unknown
        PlatformNotInstalledError: If the release is not installed
        FailedUninstallError: If the platform files cannot be removed
    """
    registry = registry or default_registry()
    reporter = reporter_for(sink)
    with registry.acquire(instance_id) as instance:
        pm = instance.package_manager
        if ref.version:
            release = pm.find_platform_release(ref)
        else:
            release = pm.find_platform(ref).installed_release()
            if release is None:
                raise PlatformNotInstalledError(f"Platform {ref} is not installed")
        tools = _known_dependencies(pm, release)

        reporter.task(f"Uninstalling platform {release}")
        pm.uninstall_platform(release)
        reporter.task(f"Uninstalling platform {release}", f"Platform {release} uninstalled", completed=True)
        warnings = uninstall_unused_tools(pm, tools, reporter)
        return Outcome(str(release), OutcomeStatus.SUCCESS, warnings=warnings)
