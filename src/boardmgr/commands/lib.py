"""Library operations: download, install, uninstall."""

import threading
from typing import List, Optional

from ..errors import AlreadyInstalledError, LibraryNotFoundError
from ..libraries import LibraryLocation, LibraryManager, LibraryRelease
from .instances import InstanceRegistry, default_registry
from .progress import ProgressReporter, ProgressSink, reporter_for
from .results import OperationReport, OutcomeStatus


def _download(
    lm: LibraryManager,
    release: LibraryRelease,
    reporter: ProgressReporter,
    cancel_event: Optional[threading.Event],
) -> None:
    if release.resource is None:
        lm.download(release)
        return
    url, name = release.resource.url, release.resource.archive_file_name
    reporter.download_started(url, name)
    fetched = lm.download(release, reporter.download_callback(url, name), cancel_event)
    message = f"{release} downloaded" if fetched else f"{release} already downloaded"
    reporter.download_completed(url, name, message)


def resolve_dependencies(lm: LibraryManager, release: LibraryRelease) -> List[LibraryRelease]:
    """Get a release and, recursively, the releases of its dependencies.

    A dependency without a version resolves to its latest release. The
    requested release comes last.

    Raises:
        LibraryNotFoundError: If a dependency is not in the index
    """
    ordered: List[LibraryRelease] = []
    seen = set()

    def visit(current: LibraryRelease) -> None:
        if current.name in seen:
            return
        seen.add(current.name)
        for dep in current.dependencies:
            if dep.name == current.name:
                continue
            visit(lm.find_release(dep.name, dep.version or None))
        ordered.append(current)

    visit(release)
    return ordered


def library_download(
    instance_id: int,
    name: str,
    version: Optional[str] = None,
    sink: Optional[ProgressSink] = None,
    cancel_event: Optional[threading.Event] = None,
    registry: Optional[InstanceRegistry] = None,
) -> LibraryRelease:
    """Download a library release into the downloads cache.

    Raises:
        InvalidInstanceError: If the id is unknown
        LibraryNotFoundError: If the release is not in the index
        FailedDownloadError: If the download fails
    """
    registry = registry or default_registry()
    reporter = reporter_for(sink)
    with registry.acquire(instance_id) as instance:
        lm = instance.library_manager
        release = lm.find_release(name, version)
        _download(lm, release, reporter, cancel_event)
        return release


def library_install(
    instance_id: int,
    name: str,
    version: Optional[str] = None,
    sink: Optional[ProgressSink] = None,
    no_deps: bool = False,
    cancel_event: Optional[threading.Event] = None,
    registry: Optional[InstanceRegistry] = None,
) -> OperationReport:
    """Install a library release and its dependencies in the user directory.

    A different installed version of a library is replaced. Libraries already
    installed at the requested version are reported as ALREADY_INSTALLED.

    Raises:
        InvalidInstanceError: If the id is unknown
        LibraryNotFoundError: If the library or a dependency is not in the index
        FailedDownloadError, FailedInstallError: On the first failing library
    """
    registry = registry or default_registry()
    reporter = reporter_for(sink)
    with registry.acquire(instance_id) as instance:
        lm = instance.library_manager
        release = lm.find_release(name, version)
        releases = [release] if no_deps else resolve_dependencies(lm, release)

        report = OperationReport("library_install")
        plan = []
        for item in releases:
            try:
                replaced = lm.install_prerequisite_check(item)
            except AlreadyInstalledError:
                reporter.task(f"Installing {item}", f"Library {item} is already installed", completed=True)
                report.add(item, OutcomeStatus.ALREADY_INSTALLED)
                continue
            plan.append((item, replaced))

        for item, _ in plan:
            _download(lm, item, reporter, cancel_event)
        for item, replaced in plan:
            reporter.task(f"Installing {item}")
            lm.install(item, replaced)
            reporter.task(f"Installing {item}", f"Installed {item}", completed=True)
            report.add(item, OutcomeStatus.SUCCESS)
        return report


def library_uninstall(
    instance_id: int,
    name: str,
    sink: Optional[ProgressSink] = None,
    registry: Optional[InstanceRegistry] = None,
) -> None:
    """Remove a user-installed library.

    Raises:
        InvalidInstanceError: If the id is unknown
        LibraryNotFoundError: If no user library has that name
        FailedUninstallError: If the directory cannot be removed
    """
    registry = registry or default_registry()
    reporter = reporter_for(sink)
    with registry.acquire(instance_id) as instance:
        lm = instance.library_manager
        library = lm.find_installed(name, LibraryLocation.USER)
        if library is None:
            raise LibraryNotFoundError(f"Library {name} is not installed")
        reporter.task(f"Uninstalling {library}")
        lm.uninstall(library)
        reporter.task(f"Uninstalling {library}", f"{library} uninstalled", completed=True)
