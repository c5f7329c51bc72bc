"""
Properties maps for platform.txt and boards.txt files.

Both files are flat ``key=value`` lists with ``#`` comments. boards.txt keys
are prefixed by the board id (``uno.name=Arduino Uno``), so a board's
definition is the sub-tree under that prefix. A key may carry an OS suffix
(``tools.bossac.cmd.windows=bossac.exe``); when loading, the suffixed value
for the running OS replaces the plain key and suffixed keys for other OSes are
dropped.

Example boards.txt entry:
    uno.name=Arduino Uno
    uno.vid.0=0x2341
    uno.pid.0=0x0043
    uno.build.mcu=atmega328p
    uno.build.core=arduino
    uno.menu.cpu.16MHz=16 MHz
    uno.menu.cpu.16MHz.build.f_cpu=16000000L
"""

from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional

from .platform_utils import PlatformDetector

OS_SUFFIXES = ("linux", "windows", "macosx", "freebsd")


class PropertiesError(Exception):
    """Exception raised for malformed properties files."""

    pass


class PropertiesMap:
    """An insertion-ordered map of string properties."""

    def __init__(self, values: Optional[Mapping[str, str]] = None):
        self._data: Dict[str, str] = {}
        if values:
            for key, value in values.items():
                self._data[key] = value

    @classmethod
    def load(cls, path: Path, os_suffix: Optional[str] = None) -> "PropertiesMap":
        """
        Load a properties file.

        Args:
            path: Path to the properties file
            os_suffix: OS suffix to apply (defaults to the running host)

        Returns:
            PropertiesMap instance

        Raises:
            PropertiesError: If the file cannot be read or a line is malformed
        """
        try:
            text = Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise PropertiesError(f"Error reading {path}: {e}") from e
        try:
            return cls.loads(text, os_suffix)
        except PropertiesError as e:
            raise PropertiesError(f"{path}: {e}") from e

    @classmethod
    def loads(cls, text: str, os_suffix: Optional[str] = None) -> "PropertiesMap":
        """Parse properties from text."""
        if os_suffix is None:
            os_suffix = PlatformDetector.os_suffix()

        props = cls()
        overrides: Dict[str, str] = {}
        for lineno, raw_line in enumerate(text.splitlines(), start=1):
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                raise PropertiesError(f"invalid line {lineno}: {raw_line!r}")
            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip()
            if not key:
                raise PropertiesError(f"empty key at line {lineno}")

            base, _, suffix = key.rpartition(".")
            if base and suffix in OS_SUFFIXES:
                if suffix == os_suffix:
                    overrides[base] = value
                continue
            props._data[key] = value

        for key, value in overrides.items():
            props._data[key] = value
        return props

    def get(self, key: str, default: str = "") -> str:
        return self._data.get(key, default)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)

    def items(self):
        return self._data.items()

    def sub_tree(self, prefix: str) -> "PropertiesMap":
        """Get the properties below ``prefix.`` with the prefix removed."""
        lead = prefix + "."
        return PropertiesMap({k[len(lead):]: v for k, v in self._data.items() if k.startswith(lead)})

    def first_level_keys(self) -> List[str]:
        """Get the distinct first segments of all keys, in insertion order."""
        seen: Dict[str, None] = {}
        for key in self._data:
            seen.setdefault(key.split(".", 1)[0], None)
        return list(seen)

    def first_level_of(self) -> Dict[str, "PropertiesMap"]:
        """Split the map into sub-trees keyed by first segment."""
        return {key: self.sub_tree(key) for key in self.first_level_keys()}

    def merge(self, *others: "PropertiesMap") -> "PropertiesMap":
        """Overlay other maps onto this one in place; later maps win."""
        for other in others:
            for key, value in other.items():
                self._data[key] = value
        return self

    def clone(self) -> "PropertiesMap":
        return PropertiesMap(self._data)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PropertiesMap):
            return NotImplemented
        return self._data == other._data

    def __repr__(self) -> str:
        return f"PropertiesMap({len(self._data)} keys)"
