"""Instance-scoped operations of boardmgr.

Every operation takes the id of an instance created with ``create``. The
module-level functions work on the process-wide default registry; pass
``registry=`` to work on another one.
"""

from .board import BoardDetails, BoardListItem, DetectedPort, board_details, board_list, board_list_all, resolve
from .core import parse_platform_reference, platform_download, platform_install, platform_uninstall
from .instances import (
    Instance,
    InstanceRegistry,
    create,
    default_registry,
    destroy,
    get_library_manager,
    get_package_manager,
    init,
    update_index,
    update_libraries_index,
)
from .lib import library_download, library_install, library_uninstall
from .progress import (
    DownloadProgress,
    ErrorCode,
    ErrorEvent,
    ProgressCollector,
    ProgressReporter,
    TaskProgress,
)
from .results import OperationReport, Outcome, OutcomeStatus
from .upgrade import OutdatedReport, outdated, upgrade

__all__ = [
    "BoardDetails",
    "BoardListItem",
    "DetectedPort",
    "board_details",
    "board_list",
    "board_list_all",
    "resolve",
    "parse_platform_reference",
    "platform_download",
    "platform_install",
    "platform_uninstall",
    "Instance",
    "InstanceRegistry",
    "create",
    "default_registry",
    "destroy",
    "get_library_manager",
    "get_package_manager",
    "init",
    "update_index",
    "update_libraries_index",
    "library_download",
    "library_install",
    "library_uninstall",
    "DownloadProgress",
    "ErrorCode",
    "ErrorEvent",
    "ProgressCollector",
    "ProgressReporter",
    "TaskProgress",
    "OperationReport",
    "Outcome",
    "OutcomeStatus",
    "OutdatedReport",
    "outdated",
    "upgrade",
]
