"""Semantic version parsing and ordering used for sorting image tags."""

from __future__ import annotations

import functools
import re
from collections.abc import Iterable
from dataclasses import dataclass

_SEMVER_PATTERN = re.compile(
    r"^v?([0-9]+)(\.[0-9]+)?(\.[0-9]+)?"
    r"(-([0-9A-Za-z\-]+(\.[0-9A-Za-z\-]+)*))?"
    r"(\+([0-9A-Za-z\-]+(\.[0-9A-Za-z\-]+)*))?$"
)
_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")
_UINT64_MAX = 2**64 - 1
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


class InvalidVersionError(ValueError):
    """Raised when a string cannot be parsed as a semantic version."""


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def _as_int64(part: str) -> int | None:
    if not _INTEGER_PATTERN.fullmatch(part):
        return None
    number = int(part)
    if number < _INT64_MIN or number > _INT64_MAX:
        return None
    return number


def _compare_prerelease_part(mine: str, theirs: str) -> int:
    if mine == theirs:
        return 0
    if mine == "":
        return -1
    if theirs == "":
        return 1
    mine_num = _as_int64(mine)
    theirs_num = _as_int64(theirs)
    if mine_num is None and theirs_num is None:
        return 1 if mine > theirs else -1
    if mine_num is None:
        return 1
    if theirs_num is None:
        return -1
    return 1 if mine_num > theirs_num else -1


def _compare_prerelease(mine: str, theirs: str) -> int:
    mine_parts = mine.split(".")
    theirs_parts = theirs.split(".")
    length = max(len(mine_parts), len(theirs_parts))
    mine_parts += [""] * (length - len(mine_parts))
    theirs_parts += [""] * (length - len(theirs_parts))
    for a, b in zip(mine_parts, theirs_parts):
        result = _compare_prerelease_part(a, b)
        if result:
            return result
    return 0


@dataclass(frozen=True, eq=False)
class SemVer:
    """A parsed semantic version that remembers the text it was parsed from."""

    major: int
    minor: int
    patch: int
    prerelease: str = ""
    metadata: str = ""
    original: str = ""

    def compare(self, other: SemVer) -> int:
        """Return -1, 0 or 1 as this version sorts before, with or after other.

        Build metadata is not taken into account.
        """
        for mine, theirs in (
            (self.major, other.major),
            (self.minor, other.minor),
            (self.patch, other.patch),
        ):
            if mine != theirs:
                return _sign(mine - theirs)
        if not self.prerelease and not other.prerelease:
            return 0
        if not self.prerelease:
            return 1
        if not other.prerelease:
            return -1
        return _compare_prerelease(self.prerelease, other.prerelease)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self.compare(other) == 0

    def __hash__(self) -> int:
        return hash((self.major, self.minor, self.patch, self.prerelease))

    def __lt__(self, other: SemVer) -> bool:
        return self.compare(other) < 0

    def __le__(self, other: SemVer) -> bool:
        return self.compare(other) <= 0

    def __gt__(self, other: SemVer) -> bool:
        return self.compare(other) > 0

    def __ge__(self, other: SemVer) -> bool:
        return self.compare(other) >= 0

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.metadata:
            text += f"+{self.metadata}"
        return text


def parse_semver(text: str) -> SemVer:
    """Parse text as a semantic version; minor and patch may be omitted."""
    match = _SEMVER_PATTERN.match(text)
    if match is None:
        raise InvalidVersionError(f"Invalid Semantic Version: {text!r}")
    numbers = []
    for group in (match.group(1), match.group(2), match.group(3)):
        value = int(group.lstrip(".")) if group else 0
        if value > _UINT64_MAX:
            raise InvalidVersionError(f"Error parsing version segment in {text!r}")
        numbers.append(value)
    return SemVer(
        major=numbers[0],
        minor=numbers[1],
        patch=numbers[2],
        prerelease=match.group(5) or "",
        metadata=match.group(8) or "",
        original=text,
    )


def _ordering(a: SemVer, b: SemVer) -> int:
    result = a.compare(b)
    if result:
        return result
    return (a.original > b.original) - (a.original < b.original)


def sort_versions(versions: Iterable[SemVer]) -> list[SemVer]:
    """Sort versions ascending, breaking ties by their original text."""
    return sorted(versions, key=functools.cmp_to_key(_ordering))