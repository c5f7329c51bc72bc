"""Fully qualified board names.

An FQBN has the form ``package:architecture:board[:option=value,...]``, for
example ``arduino:avr:nano:cpu=atmega328old``.
"""

from typing import Dict, Optional

from ..errors import InvalidFQBNError


class FQBN:
    """A parsed fully qualified board name."""

    def __init__(
        self,
        package: str,
        platform_arch: str,
        board_id: str,
        configs: Optional[Dict[str, str]] = None,
    ):
        self.package = package
        self.platform_arch = platform_arch
        self.board_id = board_id
        self.configs: Dict[str, str] = dict(configs or {})

    @classmethod
    def parse(cls, text: str) -> "FQBN":
        """Parse an FQBN string.

        Args:
            text: FQBN string (e.g. "arduino:avr:uno" or "arduino:avr:nano:cpu=atmega328old")

        Returns:
            FQBN instance

        Raises:
            InvalidFQBNError: If the string is not a valid FQBN
        """
        parts = text.split(":")
        if len(parts) < 3 or len(parts) > 4:
            raise InvalidFQBNError(f"Invalid FQBN: {text!r}: not an FQBN")
        package, arch, board_id = parts[0], parts[1], parts[2]
        for segment in (package, arch, board_id):
            if not segment:
                raise InvalidFQBNError(f"Invalid FQBN: {text!r}: empty segment")
            if "=" in segment or "," in segment:
                raise InvalidFQBNError(f"Invalid FQBN: {text!r}: invalid characters in {segment!r}")

        configs: Dict[str, str] = {}
        if len(parts) == 4:
            if not parts[3]:
                raise InvalidFQBNError(f"Invalid FQBN: {text!r}: empty config list")
            for pair in parts[3].split(","):
                key, sep, value = pair.partition("=")
                if not sep or not key:
                    raise InvalidFQBNError(f"Invalid FQBN: {text!r}: invalid config option {pair!r}")
                if key in configs:
                    raise InvalidFQBNError(f"Invalid FQBN: {text!r}: duplicate config option {key!r}")
                configs[key] = value
        return cls(package, arch, board_id, configs)

    def board_prefix(self) -> str:
        """FQBN without config options."""
        return f"{self.package}:{self.platform_arch}:{self.board_id}"

    def __str__(self) -> str:
        text = self.board_prefix()
        if self.configs:
            text += ":" + ",".join(f"{k}={v}" for k, v in self.configs.items())
        return text

    def __repr__(self) -> str:
        return f"FQBN({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FQBN):
            return NotImplemented
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(str(self))
