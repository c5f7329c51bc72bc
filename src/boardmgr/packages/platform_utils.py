"""Host Detection Utilities.

This module detects the running host and maps it to the host triplets used by
tool flavours in package indexes (e.g. "x86_64-pc-linux-gnu",
"arm64-apple-darwin", "i686-mingw32").

Supported Hosts:
    - Windows: i686, x86_64 (falls back to 32-bit flavours)
    - Linux: x86_64, i686, armhf, aarch64
    - macOS: x86_64, arm64 (falls back to x86_64 flavours)
"""

import platform
import re
import sys
from typing import List, Pattern, Tuple

from ..errors import BoardManagerError


class PlatformError(BoardManagerError):
    """Raised when host detection fails or the host is unsupported."""

    pass


class PlatformDetector:
    """Detects the current host and the tool flavours it can run."""

    @staticmethod
    def detect_host() -> Tuple[str, str]:
        """Detect host operating system and architecture.

        Returns:
            Tuple of (system, architecture)
            System: 'windows', 'linux', or 'darwin'
            Architecture: 'x86_64', 'i686', 'aarch64', 'armv7l'

        Raises:
            PlatformError: If the operating system is not supported
        """
        system = platform.system().lower()
        machine = platform.machine().lower()

        if system not in ("windows", "linux", "darwin"):
            raise PlatformError(f"Unsupported platform: {system}")

        if machine in ("x86_64", "amd64"):
            arch = "x86_64"
        elif machine in ("i386", "i686", "x86"):
            arch = "i686"
        elif machine in ("aarch64", "arm64"):
            arch = "aarch64"
        elif machine.startswith("arm"):
            arch = "armv7l"
        elif system == "windows":
            arch = "x86_64" if sys.maxsize > 2**32 else "i686"
        else:
            arch = "x86_64"

        return system, arch

    @classmethod
    def host_patterns(cls) -> List[Pattern[str]]:
        """Get flavour host patterns for the running host, best match first.

        Returns:
            Compiled regular expressions matched against flavour host strings
        """
        system, arch = cls.detect_host()
        return [re.compile(p) for p in cls.patterns_for(system, arch)]

    @staticmethod
    def patterns_for(system: str, arch: str) -> List[str]:
        """Get flavour host patterns for a given system and architecture."""
        if system == "linux":
            if arch == "x86_64":
                return [r"x86_64-.*linux-gnu.*"]
            if arch == "i686":
                return [r"i[3456]86-.*linux-gnu.*"]
            if arch == "aarch64":
                return [r"(aarch64|arm64)-linux-gnu.*"]
            return [r"arm.*-linux-gnueabihf.*"]
        if system == "windows":
            if arch == "x86_64":
                return [r"x86_64-.*(mingw32|cygwin)", r"i[3456]86-.*(mingw32|cygwin)"]
            return [r"i[3456]86-.*(mingw32|cygwin)"]
        if system == "darwin":
            if arch == "aarch64":
                return [r"arm64-apple-darwin.*", r"(amd64|x86_64)-apple-darwin.*", r"i[3456]86-apple-darwin.*"]
            return [r"(amd64|x86_64)-apple-darwin.*", r"i[3456]86-apple-darwin.*"]
        raise PlatformError(f"Unsupported platform: {system} {arch}")

    @staticmethod
    def os_suffix() -> str:
        """Get the properties key suffix used for OS-specific values."""
        system = platform.system().lower()
        if system == "windows":
            return "windows"
        if system == "darwin":
            return "macosx"
        return "linux"
