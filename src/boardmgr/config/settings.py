"""
Settings store for boardmgr instances.

Settings are a flat, read-only key/value source addressed with dotted keys
(``directories.data``, ``board_manager.additional_urls``). They can be loaded
from an INI file or built from a plain mapping, and every key can be
overridden through a ``BOARDMGR_<SECTION>_<KEY>`` environment variable.

Example boardmgr.ini:
    [general]
    locale = it

    [directories]
    data = ~/.boardmgr
    user = ~/BoardMgr

    [board_manager]
    additional_urls =
        https://example.com/package_example_index.json
        file:///opt/boards/package_local_index.json
"""

import configparser
import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional

DEFAULT_INDEX_URL = "https://downloads.arduino.cc/packages/package_index.json"
LIBRARY_INDEX_URL = "https://downloads.arduino.cc/libraries/library_index.json.gz"
LIBRARY_INDEX_SIGNATURE_URL = "https://downloads.arduino.cc/libraries/library_index.json.sig"

ENV_PREFIX = "BOARDMGR_"
GENERAL_SECTION = "general"


class SettingsError(Exception):
    """Exception raised for settings loading errors."""

    pass


def _default_values() -> Dict[str, str]:
    home = Path.home()
    data_dir = home / ".boardmgr"
    return {
        "directories.data": str(data_dir),
        "directories.downloads": "",
        "directories.user": str(home / "BoardMgr"),
        "directories.builtin.libraries": "",
        "directories.builtin.tools": "",
        "board_manager.default_url": DEFAULT_INDEX_URL,
        "board_manager.additional_urls": "",
        "library.index_url": LIBRARY_INDEX_URL,
        "library.signature_url": LIBRARY_INDEX_SIGNATURE_URL,
        "network.connection_timeout": "30",
        "network.proxy": "",
        "security.trusted_hosts": "downloads.arduino.cc",
        "security.enforce_signatures": "true",
        "security.keyring": "",
        "post_install.timeout": "300",
        "locale": "en",
        "logging.file": "",
        "logging.level": "info",
    }


class Settings:
    """
    Read-only settings with defaults and environment overrides.

    Usage:
        settings = Settings.from_file(Path("boardmgr.ini"))
        data_dir = settings.get_path("directories.data")
        urls = settings.get_list("board_manager.additional_urls")
    """

    def __init__(self, values: Optional[Mapping[str, object]] = None, source: Optional[Path] = None):
        """
        Build settings from a mapping of dotted keys.

        Args:
            values: Mapping of dotted keys to values. Lists are joined with
                newlines, other values are converted with str().
            source: File the values were read from, if any
        """
        self.source = source
        self._values = _default_values()
        for key, value in (values or {}).items():
            self._values[key] = self._to_text(value)

    @staticmethod
    def _to_text(value: object) -> str:
        if isinstance(value, (list, tuple)):
            return "\n".join(str(v) for v in value)
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    @classmethod
    def from_file(cls, config_path: Path) -> "Settings":
        """
        Load settings from an INI file.

        Keys of the [general] section are stored without a prefix, every other
        key is stored as ``<section>.<key>``.

        Args:
            config_path: Path to the INI file

        Returns:
            Settings instance

        Raises:
            SettingsError: If the file does not exist or cannot be parsed
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise SettingsError(f"Configuration file not found: {config_path}")

        parser = configparser.ConfigParser(interpolation=None)
        try:
            parser.read(config_path, encoding="utf-8")
        except configparser.Error as e:
            raise SettingsError(f"Failed to parse {config_path}: {e}") from e

        values: Dict[str, str] = {}
        for section in parser.sections():
            for key, value in parser.items(section):
                if section == GENERAL_SECTION:
                    values[key] = value
                else:
                    values[f"{section}.{key}"] = value
        return cls(values, source=config_path)

    @staticmethod
    def env_name(key: str) -> str:
        """Environment variable that overrides a dotted key."""
        return ENV_PREFIX + key.replace(".", "_").upper()

    def get_string(self, key: str, default: str = "") -> str:
        """Get a value, honouring environment overrides."""
        env_value = os.environ.get(self.env_name(key))
        if env_value is not None:
            return env_value
        return self._values.get(key, default).strip()

    def get_list(self, key: str) -> List[str]:
        """Get a comma or newline separated list value."""
        raw = self.get_string(key)
        items = []
        for line in raw.replace(",", "\n").splitlines():
            line = line.strip()
            if line:
                items.append(line)
        return items

    def get_int(self, key: str, default: int = 0) -> int:
        raw = self.get_string(key)
        if not raw:
            return default
        try:
            return int(raw)
        except ValueError as e:
            raise SettingsError(f"Invalid integer for {key}: {raw}") from e

    def get_bool(self, key: str, default: bool = False) -> bool:
        raw = self.get_string(key).lower()
        if not raw:
            return default
        return raw in ("1", "true", "yes", "on")

    def get_path(self, key: str) -> Optional[Path]:
        """Get a path value with ``~`` expanded, or None when unset."""
        raw = self.get_string(key)
        if not raw:
            return None
        return Path(raw).expanduser()

    def get_paths(self, key: str) -> List[Path]:
        return [Path(item).expanduser() for item in self.get_list(key)]

    def keys(self) -> List[str]:
        return sorted(self._values)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __repr__(self) -> str:
        return f"Settings(source={self.source})"
