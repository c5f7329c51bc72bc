"""Library management for boardmgr."""

from .library import Library, LibraryError, LibraryLayout, LibraryLocation
from .library_index import IndexLibrary, LibraryIndex, LibraryRelease
from .library_manager import LibraryManager, sanitize_name

__all__ = [
    "Library",
    "LibraryError",
    "LibraryLayout",
    "LibraryLocation",
    "IndexLibrary",
    "LibraryIndex",
    "LibraryRelease",
    "LibraryManager",
    "sanitize_name",
]
