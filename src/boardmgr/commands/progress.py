"""Progress events streamed by long-running operations.

Operations report what they do through a sink: any callable taking one event.
Events are delivered synchronously, in the order they happen, on the calling
thread. A sink of None drops every event.

Event kinds:
    TaskProgress     - a named step started or completed
    DownloadProgress - bytes transferred for one download
    ErrorEvent       - a failure that did not stop the whole operation
"""

import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Union

from ..errors import (
    BoardManagerError,
    InvalidArgumentError,
    InvalidInstanceError,
    NotFoundError,
    PermissionDeniedError,
)


class ErrorCode(Enum):
    """Category of a reported error."""

    INVALID_ARGUMENT = "invalid_argument"
    FAILED_PRECONDITION = "failed_precondition"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    INTERNAL = "internal"

    @classmethod
    def for_error(cls, error: BaseException) -> "ErrorCode":
        """Map an exception to its error code."""
        if isinstance(error, (InvalidArgumentError, InvalidInstanceError)):
            return cls.INVALID_ARGUMENT
        if isinstance(error, NotFoundError):
            return cls.NOT_FOUND
        if isinstance(error, PermissionDeniedError):
            return cls.PERMISSION_DENIED
        if isinstance(error, BoardManagerError):
            return cls.FAILED_PRECONDITION
        return cls.INTERNAL


@dataclass
class TaskProgress:
    """A step of an operation started (completed=False) or finished."""

    name: str
    message: str = ""
    completed: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DownloadProgress:
    """Progress of one download."""

    url: str
    file: str = ""
    total_size: int = 0
    downloaded: int = 0
    completed: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ErrorEvent:
    """A non-fatal failure reported while an operation continues."""

    code: ErrorCode
    message: str
    cause: Optional[BaseException] = None

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message, "cause": str(self.cause) if self.cause else None}


ProgressEvent = Union[TaskProgress, DownloadProgress, ErrorEvent]
ProgressSink = Callable[[ProgressEvent], Any]


class ProgressReporter:
    """Delivers events to an optional sink."""

    def __init__(self, sink: Optional[ProgressSink] = None):
        self.sink = sink

    def emit(self, event: ProgressEvent) -> None:
        if self.sink is not None:
            self.sink(event)

    def task(self, name: str, message: str = "", completed: bool = False) -> None:
        self.emit(TaskProgress(name, message, completed))

    def error(self, error: BaseException, message: str = "", code: Optional[ErrorCode] = None) -> ErrorEvent:
        """Report a failure and log it at warning level."""
        text = message or str(error)
        if message and str(error):
            text = f"{message}: {error}"
        event = ErrorEvent(code or ErrorCode.for_error(error), text, error)
        logging.warning(text)
        self.emit(event)
        return event

    def download_callback(self, url: str, file: str) -> Callable[[int, int], None]:
        """Build a downloader progress callback that emits DownloadProgress events."""

        def callback(downloaded: int, total: int) -> None:
            self.emit(DownloadProgress(url, file, total, downloaded, total > 0 and downloaded >= total))

        return callback

    def download_started(self, url: str, file: str) -> None:
        self.emit(DownloadProgress(url, file))

    def download_completed(self, url: str, file: str, message: str = "") -> None:
        self.emit(DownloadProgress(url, file, completed=True))
        if message:
            self.task(file, message, completed=True)


class ProgressCollector:
    """A sink that keeps every event it receives."""

    def __init__(self):
        self.events: List[ProgressEvent] = []

    def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def of_type(self, kind: type) -> List[Any]:
        return [e for e in self.events if isinstance(e, kind)]

    @property
    def errors(self) -> List[ErrorEvent]:
        return self.of_type(ErrorEvent)

    @property
    def tasks(self) -> List[TaskProgress]:
        return self.of_type(TaskProgress)


def reporter_for(sink: Union[ProgressSink, ProgressReporter, None]) -> ProgressReporter:
    if isinstance(sink, ProgressReporter):
        return sink
    return ProgressReporter(sink)
