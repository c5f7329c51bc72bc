"""Version parsing and ordering for index releases.

Index versions are semantic versions ("1.8.6", "2.0.0-rc1") and tool releases
often carry vendor suffixes ("7.3.0-atmel3.6.1-arduino7"). Every version is
ordered with one relaxed semver key: numeric core, then pre-release
identifiers, a release sorting after its pre-releases. "1.0.0-1" is therefore
a pre-release of "1.0.0". Strings that are not semver at all but are valid
PEP 440 ("1.0.0rc1", "1.0.post2") are mapped onto the same key with
packaging; anything else sorts before every numeric version.
"""

import re
from functools import total_ordering
from typing import Any, Optional, Tuple

from packaging.version import InvalidVersion
from packaging.version import Version as PEP440Version

_SEMVER_RE = re.compile(r"^v?(?P<core>\d+(?:\.\d+)*)(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+(?P<build>[0-9A-Za-z.-]+))?$")


def _identifier_key(identifier: Any) -> Tuple[int, Any]:
    if isinstance(identifier, int):
        return (0, identifier)
    if identifier.isdigit():
        return (0, int(identifier))
    return (1, identifier)


def _pad(core: Tuple[int, ...]) -> Tuple[int, ...]:
    return core + (0,) * max(0, 3 - len(core))


def _pep440_key(pep440: PEP440Version) -> Tuple[Any, ...]:
    core = _pad(tuple(pep440.release))
    if pep440.pre is not None or pep440.dev is not None:
        identifiers = list(pep440.pre or ())
        if pep440.dev is not None:
            identifiers += ["dev", pep440.dev]
        return (core, 0, tuple(_identifier_key(i) for i in identifiers))
    if pep440.post is not None:
        return (core, 1, (_identifier_key("post"), _identifier_key(pep440.post)))
    return (core, 1, ())


def version_key(text: str) -> Tuple[Any, ...]:
    """Get the ordering key of a version string."""
    match = _SEMVER_RE.match(text)
    if match:
        core = _pad(tuple(int(part) for part in match.group("core").split(".")))
        pre = match.group("pre")
        if pre is None:
            return (core, 1, ())
        return (core, 0, tuple(_identifier_key(p) for p in pre.split(".")))
    try:
        return _pep440_key(PEP440Version(text))
    except InvalidVersion:
        return ((), 1, (_identifier_key(text),))


@total_ordering
class Version:
    """A release version with a total ordering.

    Examples:
        >>> Version("1.10.0") > Version("1.9.2")
        True
        >>> Version("2.0.0-rc1") < Version("2.0.0")
        True
    """

    def __init__(self, text: str):
        text = str(text).strip()
        if not text:
            raise ValueError("empty version")
        self.text = text
        self.key = version_key(text)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, str):
            other = Version(other)
        if not isinstance(other, Version):
            return NotImplemented
        return self.key == other.key

    def __lt__(self, other: object) -> bool:
        if isinstance(other, str):
            other = Version(other)
        if not isinstance(other, Version):
            return NotImplemented
        return self.key < other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return f"Version({self.text!r})"


def parse_version(text: Optional[str]) -> Optional[Version]:
    """Parse a version string, returning None for empty or invalid input."""
    if text is None:
        return None
    try:
        return Version(text)
    except ValueError:
        return None
