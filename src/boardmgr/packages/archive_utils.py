"""Archive Extraction Utilities.

This module unpacks platform, tool and library archives. Supported formats are
.zip and tar archives (.tar, .tar.gz/.tgz, .tar.bz2/.tbz2, .tar.xz/.txz).
Members that would land outside the extraction directory are rejected.
"""

import os
import tarfile
import zipfile
from pathlib import Path

from ..errors import AmbiguousArchiveLayoutError, ExtractionError
from ..interrupt_utils import handle_keyboard_interrupt_properly

TAR_SUFFIXES = (".tar", ".tar.gz", ".tgz", ".tar.bz2", ".tbz2", ".tar.xz", ".txz")


def _is_within(base: Path, target: Path) -> bool:
    base = base.resolve()
    try:
        target.resolve().relative_to(base)
    except ValueError:
        return False
    return True


class ArchiveExtractor:
    """Unpacks an archive file into a directory."""

    def unpack(self, archive_path: Path, dest_dir: Path) -> None:
        """Extract an archive into a directory.

        Args:
            archive_path: Path to the archive file
            dest_dir: Directory to extract into (created if missing)

        Raises:
            ExtractionError: If the format is unsupported or extraction fails
        """
        archive_path = Path(archive_path)
        dest_dir = Path(dest_dir)

        if not archive_path.exists():
            raise ExtractionError(f"Archive not found: {archive_path}")

        dest_dir.mkdir(parents=True, exist_ok=True)
        name = archive_path.name.lower()

        try:
            if name.endswith(".zip"):
                self._extract_zip(archive_path, dest_dir)
            elif name.endswith(TAR_SUFFIXES):
                self._extract_tar(archive_path, dest_dir)
            else:
                raise ExtractionError(f"Unsupported archive format: {archive_path.name}")
        except ExtractionError:
            raise
        except KeyboardInterrupt as ke:
            handle_keyboard_interrupt_properly(ke)
        except (OSError, tarfile.TarError, zipfile.BadZipFile) as e:
            raise ExtractionError(f"Failed to extract {archive_path.name}", e) from e

    def _extract_tar(self, archive_path: Path, dest_dir: Path) -> None:
        """Extract a tar archive.

        Args:
            archive_path: Path to tar archive
            dest_dir: Destination directory
        """
        with tarfile.open(archive_path, "r:*") as tar:
            for member in tar.getmembers():
                if not _is_within(dest_dir, dest_dir / member.name):
                    raise ExtractionError(f"Archive member escapes destination: {member.name}")
                if member.issym() or member.islnk():
                    link_base = dest_dir / os.path.dirname(member.name)
                    if not _is_within(dest_dir, link_base / member.linkname):
                        raise ExtractionError(f"Archive link escapes destination: {member.name}")
            if hasattr(tarfile, "data_filter"):
                tar.extractall(dest_dir, filter="data")
            else:
                tar.extractall(dest_dir)

    def _extract_zip(self, archive_path: Path, dest_dir: Path) -> None:
        """Extract a zip archive.

        Args:
            archive_path: Path to zip archive
            dest_dir: Destination directory
        """
        with zipfile.ZipFile(archive_path, "r") as zip_file:
            for member in zip_file.namelist():
                if not _is_within(dest_dir, dest_dir / member):
                    raise ExtractionError(f"Archive member escapes destination: {member}")
            zip_file.extractall(dest_dir)


def find_package_root(parent: Path) -> Path:
    """Find the single root directory of an extracted archive.

    Plain files next to the root directory are ignored; what matters is that
    exactly one directory sits at the top level.

    Args:
        parent: Directory the archive was extracted into

    Returns:
        Path to the root directory

    Raises:
        AmbiguousArchiveLayoutError: If there is no directory or more than one
    """
    try:
        entries = sorted(parent.iterdir())
    except OSError as e:
        raise ExtractionError(f"Reading package root dir {parent}", e) from e

    root = None
    for entry in entries:
        if not entry.is_dir():
            continue
        if root is None:
            root = entry
        else:
            raise AmbiguousArchiveLayoutError(
                f"No unique root dir in archive, found '{root.name}' and '{entry.name}'"
            )
    if root is None:
        raise AmbiguousArchiveLayoutError("Files in archive must be placed in a subdirectory")
    return root
