"""Downloadable resources: platform, tool and library archives.

A DownloadResource describes one archive referenced by an index: where to
fetch it, how to verify it and where it is cached. The cache path of an
archive is ``{downloads}/{cache_path}/{archive_file_name}``.

Install protocol:
    1. re-check the integrity of the cached archive
    2. unpack it into a fresh temporary directory under the temp root
    3. require exactly one root directory in the unpacked content
    4. remove the previous destination and rename the root directory onto it

The temp root and the destination must be on the same filesystem: the rename
in step 4 is what makes the new content appear at the destination all at once.
"""

import logging
import shutil
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..errors import ChecksumError, FailedDownloadError, FailedInstallError, PermissionDeniedError
from .archive_utils import ArchiveExtractor, find_package_root
from .downloader import PackageDownloader, ProgressCallback
from .integrity import verify_checksum, verify_size


def is_dir_empty(path: Path) -> bool:
    """Return True if path is an existing directory without entries."""
    try:
        return path.is_dir() and not any(path.iterdir())
    except OSError:
        return False


@dataclass
class DownloadResource:
    """A fetchable and verifiable archive."""

    url: str
    archive_file_name: str
    checksum: str
    size: int = 0
    cache_path: str = "packages"

    def archive_path(self, downloads_dir: Path) -> Path:
        """Get the cache path of the archive, creating its staging directory.

        Args:
            downloads_dir: Root of the downloads cache

        Returns:
            Path where the archive is (or will be) stored

        Raises:
            PermissionDeniedError: If the staging directory cannot be created
        """
        staging = Path(downloads_dir) / self.cache_path
        try:
            staging.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PermissionDeniedError(f"Creating staging directory {staging}", e) from e
        return staging / self.archive_file_name

    def is_cached(self, downloads_dir: Path) -> bool:
        """Check whether the archive file exists in the cache (unverified)."""
        return self.archive_path(downloads_dir).exists()

    def test_local_archive_integrity(self, downloads_dir: Path) -> bool:
        """Check the cached archive against its declared size and checksum.

        Args:
            downloads_dir: Root of the downloads cache

        Returns:
            True if the archive exists and is intact

        Raises:
            ChecksumError: If the declared checksum is malformed
        """
        path = self.archive_path(downloads_dir)
        if not path.is_file():
            return False
        if not verify_size(path, self.size):
            return False
        return verify_checksum(path, self.checksum)

    def download(
        self,
        downloads_dir: Path,
        downloader: PackageDownloader,
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> bool:
        """Download the archive unless an intact copy is already cached.

        A cached copy that fails verification is deleted and fetched again.

        Args:
            downloads_dir: Root of the downloads cache
            downloader: Downloader used for the transfer
            progress: Optional callback receiving (downloaded_bytes, total_bytes)
            cancel_event: Optional event that cancels the transfer

        Returns:
            True if a transfer happened, False if the archive was already cached

        Raises:
            FailedDownloadError: If the transfer fails
            ChecksumError: If the downloaded archive does not verify
        """
        path = self.archive_path(downloads_dir)

        if path.exists():
            if self.test_local_archive_integrity(downloads_dir):
                logging.info(f"Using cached {self.archive_file_name}")
                return False
            logging.warning(f"Cached {self.archive_file_name} is corrupted, downloading again")
            try:
                path.unlink()
            except OSError as e:
                raise FailedDownloadError(f"Removing corrupted archive file {path}", e) from e

        downloader.download(self.url, path, progress=progress, cancel_event=cancel_event)

        if not self.test_local_archive_integrity(downloads_dir):
            path.unlink()
            raise ChecksumError(f"Downloaded archive {self.archive_file_name} does not match its checksum")
        return True

    def install(
        self,
        downloads_dir: Path,
        temp_root: Path,
        dest_dir: Path,
        extractor: Optional[ArchiveExtractor] = None,
    ) -> None:
        """Install the cached archive into dest_dir.

        Args:
            downloads_dir: Root of the downloads cache
            temp_root: Directory for temporary extraction (same filesystem as dest_dir)
            dest_dir: Final installation directory, replaced if it exists

        Raises:
            ChecksumError: If the cached archive fails verification
            ExtractionError: If the archive cannot be unpacked
            AmbiguousArchiveLayoutError: If the archive has no unique root directory
            FailedInstallError: If the final move fails
        """
        if not self.test_local_archive_integrity(downloads_dir):
            raise ChecksumError(f"Checking local archive integrity of {self.archive_file_name}")

        extractor = extractor or ArchiveExtractor()
        temp_root = Path(temp_root)
        dest_dir = Path(dest_dir)
        try:
            temp_root.mkdir(parents=True, exist_ok=True)
            temp_dir = Path(tempfile.mkdtemp(prefix="package-", dir=temp_root))
        except OSError as e:
            raise PermissionDeniedError("Creating temp dir for extraction", e) from e

        dest_parent = dest_dir.parent
        try:
            extractor.unpack(self.archive_path(downloads_dir), temp_dir)
            root = find_package_root(temp_dir)

            dest_parent.mkdir(parents=True, exist_ok=True)
            if dest_dir.is_dir():
                shutil.rmtree(dest_dir)
            try:
                root.rename(dest_dir)
            except OSError as e:
                raise FailedInstallError(f"Moving extracted archive to {dest_dir}", e) from e
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)
            if is_dir_empty(dest_parent):
                shutil.rmtree(dest_parent, ignore_errors=True)
