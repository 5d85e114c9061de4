"""Image tags with metadata and collections of them."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .semversion import InvalidVersionError, parse_semver, sort_versions

log = logging.getLogger(__name__)

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


@dataclass
class ImageTag:
    """A tag of an image, with its creation date and an optional digest."""

    tag_name: str
    tag_date: datetime
    tag_digest: str = ""

    def __str__(self) -> str:
        return self.tag_digest if self.tag_digest else self.tag_name

    def is_digest(self) -> bool:
        """Return whether the tag carries a digest."""
        return self.tag_digest != ""

    def equals(self, other: ImageTag) -> bool:
        """Compare by digest when this tag has one, otherwise by name."""
        if self.is_digest():
            return self.tag_digest == other.tag_digest
        return self.tag_name == other.tag_name


@dataclass
class TagInfo:
    """Metadata of a tag as read from its manifest."""

    created_at: datetime = _ZERO_TIME
    digest: bytes = bytes(32)

    def encoded_digest(self) -> str:
        """Return the digest in the form sha256:<hex>."""
        return "sha256:" + self.digest.hex()


def tag_names(tags: Iterable[ImageTag]) -> list[str]:
    """Return the names of the given tags, in order."""
    return [t.tag_name for t in tags]


class ImageTagList:
    """A thread-safe set of image tags keyed by tag name."""

    def __init__(self, tags: Iterable[ImageTag] = ()) -> None:
        self._items: dict[str, ImageTag] = {}
        self._lock = threading.RLock()
        for t in tags:
            self.add(t)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __iter__(self) -> Iterator[ImageTag]:
        with self._lock:
            return iter(list(self._items.values()))

    def __contains__(self, tag: object) -> bool:
        return isinstance(tag, ImageTag) and self.contains(tag)

    def add(self, tag: ImageTag) -> None:
        """Add a tag, replacing any tag of the same name."""
        with self._lock:
            self._items[tag.tag_name] = tag

    def contains(self, tag: ImageTag) -> bool:
        """Return whether a tag of the same name is in the list."""
        with self._lock:
            return tag.tag_name in self._items

    def tags(self) -> list[str]:
        """Return the tag names, in no particular order."""
        with self._lock:
            return list(self._items)

    def sort_alphabetically(self) -> list[ImageTag]:
        """Return the tags sorted by name."""
        with self._lock:
            return sorted(self._items.values(), key=lambda t: t.tag_name)

    def sort_by_date(self) -> list[ImageTag]:
        """Return the tags sorted by date, then by name for equal dates."""
        with self._lock:
            return sorted(self._items.values(), key=lambda t: (t.tag_date, t.tag_name))

    def sort_by_semver(self) -> list[ImageTag]:
        """Return copies of the tags that parse as semantic versions, in version order."""
        with self._lock:
            versions = []
            for item in self._items.values():
                try:
                    versions.append(parse_semver(item.tag_name))
                except InvalidVersionError as err:
                    log.debug("could not parse input tag %s as semver: %s", item.tag_name, err)
            result = []
            for v in sort_versions(versions):
                source = self._items[v.original]
                result.append(ImageTag(v.original, source.tag_date, source.tag_digest))
            return result