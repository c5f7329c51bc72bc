"""Exception hierarchy for boardmgr.

Every error raised by the package, library and instance layers derives from
BoardManagerError so callers can catch the whole family at once, while the
concrete subclasses keep the categories apart (configuration, instance,
resolution, download, integrity, archive, install, rollback).
"""

from typing import Optional


class BoardManagerError(Exception):
    """Base exception for all boardmgr errors."""

    def __init__(self, message: str = "", cause: Optional[BaseException] = None):
        self.message = message or self.default_message()
        self.cause = cause
        text = self.message
        if cause is not None:
            text = f"{text}: {cause}"
        super().__init__(text)

    def default_message(self) -> str:
        return self.__class__.__name__


class MissingConfigurationError(BoardManagerError):
    """Raised when an instance is created without a configuration source."""

    def default_message(self) -> str:
        return "Missing configuration source"


class PermissionDeniedError(BoardManagerError):
    """Raised when a directory or file cannot be created or written."""

    pass


class InvalidInstanceError(BoardManagerError):
    """Raised when an operation references an unknown or destroyed instance."""

    def __init__(self, instance_id: Optional[int] = None):
        self.instance_id = instance_id
        super().__init__(f"Invalid instance: {instance_id}")


class InvalidArgumentError(BoardManagerError):
    """Raised when a request argument is malformed."""

    pass


class InvalidURLError(InvalidArgumentError):
    """Raised when an index URL cannot be parsed."""

    pass


class NotFoundError(BoardManagerError):
    """Raised when a package, platform, tool or library cannot be found."""

    pass


class PlatformNotFoundError(NotFoundError):
    """Raised when a platform or platform release is not in the index."""

    pass


class ToolNotFoundError(NotFoundError):
    """Raised when a tool release required by a platform is not known."""

    pass


class LibraryNotFoundError(NotFoundError):
    """Raised when a library or library release is not known."""

    pass


class PlatformNotInstalledError(NotFoundError):
    """Raised when an operation needs an installed platform release."""

    pass


class UnknownFQBNError(NotFoundError):
    """Raised when a fully qualified board name cannot be resolved."""

    pass


class InvalidFQBNError(UnknownFQBNError):
    """Raised when a fully qualified board name is syntactically invalid."""

    pass


class UnknownPackageError(UnknownFQBNError):
    """Raised when the package segment of an FQBN is unknown."""

    pass


class UnknownPlatformError(UnknownFQBNError):
    """Raised when the platform segment of an FQBN is unknown or not installed."""

    pass


class UnknownBoardError(UnknownFQBNError):
    """Raised when the board segment of an FQBN is unknown."""

    pass


class FailedDownloadError(BoardManagerError):
    """Raised when a download fails at the transport layer."""

    pass


class DownloadCancelledError(FailedDownloadError):
    """Raised when a download is interrupted by a cancellation request."""

    pass


class IntegrityError(BoardManagerError):
    """Base class for checksum and signature failures."""

    pass


class ChecksumError(IntegrityError):
    """Raised when a file does not match its declared checksum or size."""

    pass


class SignatureVerificationError(IntegrityError):
    """Raised when a detached signature does not verify."""

    def __init__(self, file: str, cause: Optional[BaseException] = None):
        self.file = file
        super().__init__(f"Signature verification failed for {file}", cause)


class ArchiveError(BoardManagerError):
    """Base class for archive extraction failures."""

    pass


class ExtractionError(ArchiveError):
    """Raised when an archive cannot be unpacked."""

    pass


class AmbiguousArchiveLayoutError(ArchiveError):
    """Raised when an archive does not contain exactly one root directory."""

    pass


class IndexLoadError(BoardManagerError):
    """Raised when a package or library index cannot be read or parsed."""

    pass


class FailedInstallError(BoardManagerError):
    """Raised when installing a platform, tool or library fails."""

    pass


class RollbackError(FailedInstallError):
    """Raised when undoing a failed upgrade fails too.

    The installed set may be inconsistent after this error: both the previous
    and the new release of the platform may be present on disk.
    """

    def __init__(
        self,
        platform: str,
        installed_version: str,
        new_version: str,
        cause: Optional[BaseException] = None,
    ):
        self.platform = platform
        self.installed_version = installed_version
        self.new_version = new_version
        super().__init__(
            f"Error rolling back upgrade of {platform} from {installed_version} "
            f"to {new_version}; manual repair required",
            cause,
        )


class FailedUninstallError(BoardManagerError):
    """Raised when removing an installed platform, tool or library fails."""

    pass


class AlreadyInstalledError(BoardManagerError):
    """Raised when the requested release is already installed."""

    pass


class PostInstallError(BoardManagerError):
    """Raised when a platform post-install script fails."""

    pass


class DiscoveryError(BoardManagerError):
    """Raised when a board discovery cannot be configured or run."""

    pass
