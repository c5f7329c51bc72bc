"""Outdated and Upgrade.

Outdated lists the installed platforms and user libraries that have a newer
release in the loaded indexes. Upgrade brings each of them to that release,
libraries first, then platforms. One failing target does not stop the others:
every target gets an outcome in the returned report.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..errors import AlreadyInstalledError, BoardManagerError, RollbackError
from ..libraries import Library, LibraryLocation, LibraryRelease
from ..packages.cores import PlatformRelease
from .core import install_platform_release
from .instances import Instance, InstanceRegistry, default_registry
from .progress import ErrorCode, ProgressReporter, ProgressSink, reporter_for
from .results import OperationReport, OutcomeStatus


@dataclass
class OutdatedReport:
    """Installed items with a newer release available."""

    platforms: List[Tuple[PlatformRelease, PlatformRelease]] = field(default_factory=list)
    libraries: List[Tuple[Library, LibraryRelease]] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.platforms and not self.libraries


def _outdated_platforms(instance: Instance) -> List[Tuple[PlatformRelease, PlatformRelease]]:
    result = []
    for platform in instance.package_manager.packages.platforms():
        installed = platform.installed_release()
        if installed is None:
            continue
        latest = platform.latest_release()
        if latest is not None and latest.version > installed.version:
            result.append((installed, latest))
    return result


def _user_libraries(instance: Instance) -> List[Tuple[Library, Optional[LibraryRelease]]]:
    lm = instance.library_manager
    result = []
    for library in lm.installed_libraries(LibraryLocation.USER):
        if lm.index.find_library(library.name) is None:
            continue
        result.append((library, lm.index.find_library_update(library)))
    return result


def outdated(instance_id: int, registry: Optional[InstanceRegistry] = None) -> OutdatedReport:
    """List installed platforms and user libraries with a newer release.

    Only the state loaded by Init is consulted.

    Raises:
        InvalidInstanceError: If the id is unknown
    """
    registry = registry or default_registry()
    with registry.acquire(instance_id) as instance:
        report = OutdatedReport()
        report.platforms = _outdated_platforms(instance)
        report.libraries = [(lib, update) for lib, update in _user_libraries(instance) if update is not None]
        return report


def _cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def _upgrade_library(
    instance: Instance,
    library: Library,
    release: LibraryRelease,
    reporter: ProgressReporter,
    report: OperationReport,
    cancel_event: Optional[threading.Event],
) -> None:
    lm = instance.library_manager
    try:
        replaced = lm.install_prerequisite_check(release)
    except AlreadyInstalledError:
        reporter.task(f"Upgrading {library}", f"Library {release} is already installed", completed=True)
        report.add(library, OutcomeStatus.ALREADY_INSTALLED)
        return
    try:
        reporter.task(f"Upgrading {library} to {release.version}")
        lm.download(release, None, cancel_event)
        lm.install(release, replaced)
    except BoardManagerError as e:
        reporter.error(e, f"Upgrading library {library}")
        report.add(library, OutcomeStatus.FAILED, e)
        return
    reporter.task(f"Upgrading {library} to {release.version}", f"Library {release} installed", completed=True)
    report.add(library, OutcomeStatus.SUCCESS)


def _upgrade_platform(
    instance: Instance,
    installed: PlatformRelease,
    latest: PlatformRelease,
    reporter: ProgressReporter,
    report: OperationReport,
    skip_post_install: bool,
    cancel_event: Optional[threading.Event],
) -> None:
    pm = instance.package_manager
    target = str(installed.platform)
    try:
        reporter.task(f"Upgrading platform {installed} to {latest.version}")
        _, tools = pm.find_platform_release_dependencies(latest.reference)
        warnings = install_platform_release(pm, latest, tools, reporter, skip_post_install, cancel_event)
    except RollbackError as e:
        reporter.error(e, code=ErrorCode.INTERNAL)
        report.add(target, OutcomeStatus.ROLLBACK_FAILED, e)
        return
    except BoardManagerError as e:
        reporter.error(e, f"Upgrading platform {installed}")
        report.add(target, OutcomeStatus.FAILED, e)
        return
    reporter.task(f"Upgrading platform {installed} to {latest.version}", f"Platform {latest} installed", completed=True)
    report.add(target, OutcomeStatus.SUCCESS, warnings=warnings)


def upgrade(
    instance_id: int,
    sink: Optional[ProgressSink] = None,
    skip_post_install: bool = False,
    cancel_event: Optional[threading.Event] = None,
    registry: Optional[InstanceRegistry] = None,
) -> OperationReport:
    """Upgrade every outdated user library, then every outdated platform.

    A set cancel_event stops the upgrade before the next target starts; the
    targets not processed are reported as CANCELLED.

    Raises:
        InvalidInstanceError: If the id is unknown
    """
    registry = registry or default_registry()
    reporter = reporter_for(sink)
    with registry.acquire(instance_id) as instance:
        report = OperationReport("upgrade")

        for library, release in _user_libraries(instance):
            if _cancelled(cancel_event):
                report.add(library, OutcomeStatus.CANCELLED)
                continue
            if release is None:
                reporter.task(f"Upgrading {library}", f"Library {library} is already installed", completed=True)
                report.add(library, OutcomeStatus.ALREADY_INSTALLED)
                continue
            _upgrade_library(instance, library, release, reporter, report, cancel_event)

        for installed, latest in _outdated_platforms(instance):
            if _cancelled(cancel_event):
                report.add(installed.platform, OutcomeStatus.CANCELLED)
                continue
            _upgrade_platform(instance, installed, latest, reporter, report, skip_post_install, cancel_event)

        if _cancelled(cancel_event):
            logging.info("Upgrade cancelled")
        return report
