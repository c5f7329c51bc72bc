"""Instance registry.

An instance is a session scoped to one configuration: it owns a package
manager and a library manager working on the directories of that
configuration. Callers create an instance, initialize it, run operations
against its id and finally destroy it.

Locking:
    - a master lock guards the table of instances
    - every instance has its own re-entrant lock, held for the whole duration of
      Init and of every operation that changes the graph or the disk

Operations on different instances never wait for each other. Ids come from a
counter and are never handed out twice, so a destroyed id stays invalid.
"""

import gzip
import itertools
import logging
import shutil
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Union
from urllib.parse import unquote, urlparse

from ..config import Settings, SettingsError
from ..errors import (
    BoardManagerError,
    FailedDownloadError,
    IndexLoadError,
    InvalidInstanceError,
    InvalidURLError,
    MissingConfigurationError,
    PermissionDeniedError,
    SignatureVerificationError,
)
from ..libraries import LibraryLocation, LibraryManager
from ..logging_config import setup_logging
from ..packages.directories import Directories
from ..packages.downloader import PackageDownloader
from ..packages.integrity import IndexSignaturePolicy, SignatureVerifier
from ..packages.package_index import PackageIndex
from ..packages.package_manager import PackageManager
from .progress import ErrorCode, ProgressReporter, ProgressSink, reporter_for
from .results import OperationReport, OutcomeStatus

ConfigSource = Union[Settings, Mapping[str, object], str, Path, None]


class Instance:
    """One session: settings, directories and the managers built on them."""

    def __init__(
        self,
        instance_id: int,
        settings: Settings,
        directories: Directories,
        package_manager: PackageManager,
        library_manager: LibraryManager,
    ):
        self.id = instance_id
        self.settings = settings
        self.directories = directories
        self.package_manager = package_manager
        self.library_manager = library_manager
        self.lock = threading.RLock()
        self.destroyed = False

    def index_urls(self) -> List[str]:
        """The default index URL followed by the additional ones, without duplicates."""
        urls: List[str] = []
        default_url = self.settings.get_string("board_manager.default_url")
        for url in [default_url] + self.settings.get_list("board_manager.additional_urls"):
            if url and url not in urls:
                urls.append(url)
        return urls

    def __repr__(self) -> str:
        return f"Instance({self.id}, data={self.directories.data_dir})"


def _load_settings(config: ConfigSource) -> Settings:
    if config is None:
        raise MissingConfigurationError()
    if isinstance(config, Settings):
        return config
    if isinstance(config, (str, Path)):
        try:
            return Settings.from_file(Path(config))
        except SettingsError as e:
            raise MissingConfigurationError(f"Loading configuration {config}", e) from e
    return Settings(config)


def build_package_manager(settings: Settings, directories: Directories) -> PackageManager:
    """Build a package manager configured from settings."""
    downloader = PackageDownloader(
        timeout=settings.get_int("network.connection_timeout", 30),
        proxy=settings.get_string("network.proxy"),
    )
    policy = IndexSignaturePolicy(
        settings.get_list("security.trusted_hosts"),
        enforce=settings.get_bool("security.enforce_signatures", True),
    )
    return PackageManager(
        directories,
        downloader=downloader,
        signature_policy=policy,
        verifier=SignatureVerifier(settings.get_path("security.keyring")),
        post_install_timeout=settings.get_int("post_install.timeout", 300),
    )


class InstanceRegistry:
    """Process-wide table of live instances."""

    def __init__(self):
        self._lock = threading.Lock()
        self._instances: Dict[int, Instance] = {}
        self._ids = itertools.count(1)
        self.locale = "en"
        self.locale_hook: Optional[Callable[[str], None]] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(self, config: ConfigSource) -> int:
        """Create an instance from a configuration source.

        Args:
            config: Settings, a mapping of dotted keys, or the path of an INI file

        Returns:
            The new instance id

        Raises:
            MissingConfigurationError: If no configuration source is given
            PermissionDeniedError: If the directories cannot be created
        """
        settings = _load_settings(config)

        log_file = settings.get_path("logging.file")
        if log_file is not None:
            setup_logging(log_file, settings.get_string("logging.level", "info"))

        directories = Directories(settings)
        directories.ensure_directories()

        package_manager = build_package_manager(settings, directories)
        library_manager = LibraryManager(directories, package_manager.downloader, package_manager.extractor)
        builtin_libraries = directories.builtin_libraries_dir
        if builtin_libraries is not None:
            library_manager.add_libraries_dir(builtin_libraries, LibraryLocation.IDE_BUILTIN)
        library_manager.add_libraries_dir(directories.user_libraries_dir, LibraryLocation.USER)

        with self._lock:
            instance_id = next(self._ids)
            self._instances[instance_id] = Instance(instance_id, settings, directories, package_manager, library_manager)
        logging.info(f"Created instance {instance_id} with data directory {directories.data_dir}")
        return instance_id

    def destroy(self, instance_id: int) -> None:
        """Remove an instance.

        Raises:
            InvalidInstanceError: If the id is unknown
        """
        with self._lock:
            instance = self._instances.pop(instance_id, None)
        if instance is None:
            raise InvalidInstanceError(instance_id)
        instance.destroyed = True
        logging.info(f"Destroyed instance {instance_id}")

    def get_instance(self, instance_id: int) -> Instance:
        """Get a live instance.

        Raises:
            InvalidInstanceError: If the id is unknown
        """
        with self._lock:
            instance = self._instances.get(instance_id)
        if instance is None:
            raise InvalidInstanceError(instance_id)
        return instance

    def get_package_manager(self, instance_id: int) -> Optional[PackageManager]:
        with self._lock:
            instance = self._instances.get(instance_id)
        return instance.package_manager if instance else None

    def get_library_manager(self, instance_id: int) -> Optional[LibraryManager]:
        with self._lock:
            instance = self._instances.get(instance_id)
        return instance.library_manager if instance else None

    @contextmanager
    def acquire(self, instance_id: int) -> Iterator[Instance]:
        """Hold the exclusive lock of an instance.

        Raises:
            InvalidInstanceError: If the id is unknown or the instance is destroyed
                while waiting for the lock
        """
        instance = self.get_instance(instance_id)
        with instance.lock:
            if instance.destroyed:
                raise InvalidInstanceError(instance_id)
            yield instance

    def instance_ids(self) -> List[int]:
        with self._lock:
            return sorted(self._instances)

    # ------------------------------------------------------------------
    # Init
    # ------------------------------------------------------------------

    def init(
        self,
        instance_id: int,
        sink: Optional[ProgressSink] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> OperationReport:
        """Reload indexes, installed hardware, tools and libraries into an instance.

        Every step is best effort: failures are reported through the sink and in
        the returned report, and the remaining steps still run. The graph is
        cleared first so repeated calls never keep stale entries.

        Raises:
            InvalidInstanceError: If the id is unknown
        """
        reporter = reporter_for(sink)
        with self.acquire(instance_id) as instance:
            report = OperationReport("init")
            pm = instance.package_manager
            pm.clear()

            for url in instance.index_urls():
                try:
                    pm.load_package_index(url)
                    report.add(url, OutcomeStatus.SUCCESS)
                except BoardManagerError as e:
                    reporter.error(e, f"Loading index {url}")
                    report.add(url, OutcomeStatus.FAILED, e)

            self._report_errors(reporter, report, "hardware", pm.load_hardware())

            if self._install_builtin_tools(instance, reporter, report, cancel_event):
                self._report_errors(reporter, report, "hardware", pm.load_hardware())

            self._report_errors(reporter, report, "discovery", pm.load_discoveries())

            lm = instance.library_manager
            lm.remove_libraries_dirs(LibraryLocation.PLATFORM_BUILTIN)
            for platform in pm.packages.platforms():
                release = platform.installed_release()
                if release is not None:
                    lm.add_libraries_dir(release.libraries_dir, LibraryLocation.PLATFORM_BUILTIN, release)
            try:
                lm.load_index()
            except IndexLoadError as e:
                reporter.error(e, "Loading library index")
                report.add("library_index", OutcomeStatus.FAILED, e)
            self._report_errors(reporter, report, "libraries", lm.rescan_libraries_dirs())

            self._refresh_locale(instance.settings.get_string("locale", "en"))
            return report

    @staticmethod
    def _report_errors(
        reporter: ProgressReporter,
        report: OperationReport,
        target: str,
        errors: List[BoardManagerError],
    ) -> None:
        for error in errors:
            reporter.error(error)
            report.add(target, OutcomeStatus.FAILED, error)

    def _install_builtin_tools(
        self,
        instance: Instance,
        reporter: ProgressReporter,
        report: OperationReport,
        cancel_event: Optional[threading.Event],
    ) -> bool:
        """Install the latest release of every builtin tool missing on disk."""
        pm = instance.package_manager
        installed_any = False
        for tool in pm.builtin_tools():
            latest = tool.latest_release()
            if latest is None:
                error = BoardManagerError(f"Can't find latest release of tool {tool}")
                reporter.error(error, code=ErrorCode.INTERNAL)
                report.add(tool, OutcomeStatus.FAILED, error)
                continue
            if latest.is_installed():
                continue
            try:
                reporter.task(f"Downloading {latest}")
                resource = pm.tool_resource(latest)
                pm.download_tool_release(latest, reporter.download_callback(resource.url, resource.archive_file_name), cancel_event)
                reporter.task(f"Downloading {latest}", completed=True)
                reporter.task(f"Installing {latest}")
                pm.install_tool(latest)
                reporter.task(f"Installing {latest}", completed=True)
            except BoardManagerError as e:
                reporter.error(e, f"Installing builtin tool {latest}")
                report.add(latest, OutcomeStatus.FAILED, e)
                continue
            report.add(latest, OutcomeStatus.SUCCESS)
            installed_any = True
        return installed_any

    def _refresh_locale(self, locale: str) -> None:
        self.locale = locale or "en"
        if self.locale_hook is not None:
            self.locale_hook(self.locale)

    # ------------------------------------------------------------------
    # Index updates
    # ------------------------------------------------------------------

    def update_index(self, instance_id: int, sink: Optional[ProgressSink] = None) -> OperationReport:
        """Download every configured package index into the data directory.

        Indexes from trusted hosts are downloaded with their ``.sig`` file and
        kept only if the signature verifies. ``file://`` indexes are only checked
        for validity. A failing URL does not stop the others.

        Raises:
            InvalidInstanceError: If the id is unknown
        """
        reporter = reporter_for(sink)
        with self.acquire(instance_id) as instance:
            report = OperationReport("update_index")
            for url in instance.index_urls():
                try:
                    self._update_one_index(instance, url, reporter)
                    report.add(url, OutcomeStatus.SUCCESS)
                except BoardManagerError as e:
                    reporter.error(e, f"Updating index {url}")
                    report.add(url, OutcomeStatus.FAILED, e)
            return report

    def _update_one_index(self, instance: Instance, url: str, reporter: ProgressReporter) -> None:
        pm = instance.package_manager
        parsed = urlparse(url)
        if parsed.scheme == "file":
            PackageIndex.from_file(Path(unquote(parsed.path)))
            reporter.task(f"Checked {url}", completed=True)
            return
        if parsed.scheme not in ("http", "https"):
            raise InvalidURLError(f"Unsupported index URL {url!r}")

        dest = pm.local_index_path(url)
        signature_dest = dest.with_name(dest.name + ".sig")
        with self._staging_dir(instance) as staging:
            tmp_index = staging / dest.name
            reporter.download_started(url, dest.name)
            pm.downloader.download(url, tmp_index, reporter.download_callback(url, dest.name), resume=False)
            PackageIndex.from_file(tmp_index)

            tmp_signature = None
            if pm.signature_policy.requires_signature(url):
                signature_url = pm.signature_policy.signature_url(url)
                tmp_signature = staging / signature_dest.name
                pm.downloader.download(signature_url, tmp_signature, resume=False)
                if not pm.verifier.verify_detached(tmp_index, tmp_signature):
                    raise SignatureVerificationError(url)

            self._move_into_place(tmp_index, dest)
            if tmp_signature is not None:
                self._move_into_place(tmp_signature, signature_dest)
            elif signature_dest.exists():
                signature_dest.unlink()
            reporter.download_completed(url, dest.name, f"Updated index {url}")

    def update_libraries_index(self, instance_id: int, sink: Optional[ProgressSink] = None) -> None:
        """Download the library index and its signature into the data directory.

        Raises:
            InvalidInstanceError: If the id is unknown
            FailedDownloadError: If a download fails
            SignatureVerificationError: If a required signature does not verify
        """
        reporter = reporter_for(sink)
        with self.acquire(instance_id) as instance:
            pm = instance.package_manager
            directories = instance.directories
            index_url = instance.settings.get_string("library.index_url")
            signature_url = instance.settings.get_string("library.signature_url")
            if not index_url:
                raise InvalidURLError("No library index URL configured")

            with self._staging_dir(instance) as staging:
                downloaded_name = Path(urlparse(index_url).path).name or "library_index.json"
                downloaded = staging / downloaded_name
                reporter.download_started(index_url, downloaded_name)
                pm.downloader.download(
                    index_url, downloaded, reporter.download_callback(index_url, downloaded_name), resume=False
                )
                tmp_index = staging / directories.library_index_path.name
                if downloaded_name.endswith(".gz"):
                    try:
                        with gzip.open(downloaded, "rb") as src, open(tmp_index, "wb") as dst:
                            shutil.copyfileobj(src, dst)
                    except OSError as e:
                        raise FailedDownloadError(f"Decompressing {downloaded_name}", e) from e
                elif downloaded != tmp_index:
                    downloaded.replace(tmp_index)

                tmp_signature = None
                if signature_url and pm.signature_policy.requires_signature(index_url):
                    tmp_signature = staging / directories.library_index_signature_path.name
                    pm.downloader.download(signature_url, tmp_signature, resume=False)
                    if not pm.verifier.verify_detached(tmp_index, tmp_signature):
                        raise SignatureVerificationError(index_url)

                self._move_into_place(tmp_index, directories.library_index_path)
                if tmp_signature is not None:
                    self._move_into_place(tmp_signature, directories.library_index_signature_path)
                elif directories.library_index_signature_path.exists():
                    directories.library_index_signature_path.unlink()
                reporter.download_completed(index_url, downloaded_name, "Updated library index")

    @contextmanager
    def _staging_dir(self, instance: Instance) -> Iterator[Path]:
        tmp_root = instance.directories.tmp_dir
        try:
            tmp_root.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix="index-", dir=tmp_root))
        except OSError as e:
            raise PermissionDeniedError(f"Creating temp dir in {tmp_root}", e) from e
        try:
            yield staging
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    @staticmethod
    def _move_into_place(src: Path, dest: Path) -> None:
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(src), str(dest))
        except OSError as e:
            raise PermissionDeniedError(f"Saving {dest}", e) from e


_default_registry = InstanceRegistry()


def default_registry() -> InstanceRegistry:
    return _default_registry


def create(config: ConfigSource) -> int:
    return _default_registry.create(config)


def init(
    instance_id: int,
    sink: Optional[ProgressSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> OperationReport:
    return _default_registry.init(instance_id, sink, cancel_event)


def destroy(instance_id: int) -> None:
    _default_registry.destroy(instance_id)


def get_package_manager(instance_id: int) -> Optional[PackageManager]:
    return _default_registry.get_package_manager(instance_id)


def get_library_manager(instance_id: int) -> Optional[LibraryManager]:
    return _default_registry.get_library_manager(instance_id)


def update_index(instance_id: int, sink: Optional[ProgressSink] = None) -> OperationReport:
    return _default_registry.update_index(instance_id, sink)


def update_libraries_index(instance_id: int, sink: Optional[ProgressSink] = None) -> None:
    _default_registry.update_libraries_index(instance_id, sink)
