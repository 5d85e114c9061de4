"""Registry endpoint configuration and the process-wide endpoint registry."""

from __future__ import annotations

import enum
import logging
import ssl
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from .tag import ImageTag

log = logging.getLogger(__name__)

RATE_LIMIT_NONE = 2**31 - 1
RATE_LIMIT_DEFAULT = 10


class RegistryError(Exception):
    """Raised when a registry endpoint cannot be resolved."""


class TagListSort(enum.Enum):
    """How a registry orders the list of tags it returns."""

    UNKNOWN = -1
    UNSORTED = 0
    LATEST_FIRST = 1
    LATEST_LAST = 2

    def is_time_sorted(self) -> bool:
        """Return whether the registry returns tags sorted by time."""
        return self in (TagListSort.LATEST_FIRST, TagListSort.LATEST_LAST)

    def __str__(self) -> str:
        return _SORT_NAMES[self]


_SORT_NAMES = {
    TagListSort.LATEST_FIRST: "latest-first",
    TagListSort.LATEST_LAST: "latest-last",
    TagListSort.UNSORTED: "unsorted",
    TagListSort.UNKNOWN: "unknown",
}


def tag_list_sort_from_string(value: str) -> TagListSort:
    """Return the sort mode named by value; unknown names give UNKNOWN."""
    lowered = value.lower()
    if lowered == "latest-first":
        return TagListSort.LATEST_FIRST
    if lowered == "latest-last":
        return TagListSort.LATEST_LAST
    if lowered in ("none", ""):
        return TagListSort.UNSORTED
    log.warning("unknown tag list sort mode: %s", value)
    return TagListSort.UNKNOWN


class TagCache:
    """A thread-safe in-memory cache of image tags."""

    def __init__(self) -> None:
        self._items: dict[str, ImageTag] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(image_name: str, tag_name: str) -> str:
        return f"{image_name}:{tag_name}"

    def get_tag(self, image_name: str, tag_name: str) -> ImageTag | None:
        """Return the cached tag, or None on a cache miss."""
        with self._lock:
            return self._items.get(self._key(image_name, tag_name))

    def set_tag(self, image_name: str, tag: ImageTag) -> None:
        """Store a tag for the given image."""
        with self._lock:
            self._items[self._key(image_name, tag.tag_name)] = tag

    def clear(self) -> None:
        """Remove every cached entry."""
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class RateLimiter:
    """Spaces calls to take() so that at most rate of them pass per second."""

    def __init__(
        self,
        rate: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = rate
        self._interval = 1.0 / rate
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None
        self._lock = threading.Lock()

    def take(self) -> float:
        """Block until the next call may proceed and return its time."""
        with self._lock:
            now = self._clock()
            if self._last is not None:
                wait = self._last + self._interval - now
                if wait > 0:
                    self._sleep(wait)
                    now = self._last + self._interval
            self._last = now
            return now


@dataclass(eq=False)
class RegistryEndpoint:
    """How to reach and authenticate against one registry API endpoint."""

    registry_name: str = ""
    registry_prefix: str = ""
    registry_api: str = ""
    username: str = ""
    password: str = ""
    ping: bool = False
    credentials: str = ""
    insecure: bool = False
    default_ns: str = ""
    creds_expire: timedelta = timedelta(0)
    creds_updated: datetime | None = None
    tag_list_sort: TagListSort = TagListSort.UNSORTED
    cache: TagCache = field(default_factory=TagCache)
    limiter: RateLimiter = field(default_factory=lambda: RateLimiter(RATE_LIMIT_NONE))
    is_default: bool = False
    limit: int = RATE_LIMIT_NONE
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def deep_copy(self) -> RegistryEndpoint:
        """Copy the configuration into a new endpoint with an empty cache.

        Resolved user names and passwords are not copied; the rate limiter is shared.
        """
        with self.lock:
            return RegistryEndpoint(
                registry_name=self.registry_name,
                registry_prefix=self.registry_prefix,
                registry_api=self.registry_api,
                ping=self.ping,
                credentials=self.credentials,
                insecure=self.insecure,
                default_ns=self.default_ns,
                creds_expire=self.creds_expire,
                creds_updated=self.creds_updated,
                tag_list_sort=self.tag_list_sort,
                cache=TagCache(),
                limiter=self.limiter,
                is_default=self.is_default,
                limit=self.limit,
            )

    def expire_credentials(self) -> bool:
        """Forget resolved credentials once they are older than creds_expire."""
        if (
            self.credentials
            and self.creds_updated is not None
            and self.creds_expire > timedelta(0)
            and datetime.now(timezone.utc) - self.creds_updated >= self.creds_expire
        ):
            self.username = ""
            self.password = ""
            return True
        return False

    def ssl_context(self) -> ssl.SSLContext:
        """Return a TLS context, without verification for insecure endpoints."""
        context = ssl.create_default_context()
        if self.insecure:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context


def new_registry_endpoint(
    prefix: str,
    name: str,
    api_url: str,
    credentials: str,
    default_ns: str,
    insecure: bool,
    tag_list_sort: TagListSort,
    limit: int,
    creds_expire: timedelta | float,
) -> RegistryEndpoint:
    """Create an endpoint with a fresh cache; a limit of zero or less disables limiting."""
    if limit <= 0:
        limit = RATE_LIMIT_NONE
    if not isinstance(creds_expire, timedelta):
        creds_expire = timedelta(seconds=creds_expire)
    return RegistryEndpoint(
        registry_name=name,
        registry_prefix=prefix,
        registry_api=api_url.removesuffix("/"),
        credentials=credentials,
        creds_expire=creds_expire,
        insecure=insecure,
        default_ns=default_ns,
        tag_list_sort=tag_list_sort,
        limiter=RateLimiter(limit),
        limit=limit,
    )


class _RegistryState:
    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.registries: dict[str, RegistryEndpoint] = {}
        self.default: RegistryEndpoint | None = None


_state = _RegistryState()

# Registries whose API endpoint cannot be inferred from the image prefix.
_REGISTRY_TWEAKS: dict[str, RegistryEndpoint] = {
    "docker.io": RegistryEndpoint(
        registry_name="Docker Hub",
        registry_prefix="docker.io",
        registry_api="https://registry-1.docker.io",
        ping=True,
        insecure=False,
        default_ns="library",
        limiter=RateLimiter(RATE_LIMIT_DEFAULT),
        limit=RATE_LIMIT_DEFAULT,
        is_default=True,
    ),
}


def set_default_registry(endpoint: RegistryEndpoint) -> None:
    """Make endpoint the default registry, unmarking the previous one."""
    log.debug("Setting default registry endpoint to %s", endpoint.registry_prefix)
    with _state.lock:
        endpoint.is_default = True
        previous = _state.default
        if previous is not None and previous is not endpoint:
            log.debug("Previous default registry was %s", previous.registry_prefix)
            previous.is_default = False
        _state.default = endpoint


def get_default_registry() -> RegistryEndpoint | None:
    """Return the default registry endpoint, or None if there is none."""
    with _state.lock:
        default = _state.default
    if default is not None:
        log.debug("Getting default registry endpoint: %s", default.registry_prefix)
    else:
        log.debug("No default registry defined.")
    return default


def add_registry_endpoint(endpoint: RegistryEndpoint) -> None:
    """Register endpoint under its prefix, replacing any existing one."""
    with _state.lock:
        if endpoint.is_default:
            current = get_default_registry()
            if current is not None:
                current.is_default = False
            set_default_registry(endpoint)
        _state.registries[endpoint.registry_prefix] = endpoint
    if endpoint.limit != RATE_LIMIT_NONE:
        log.debug(
            "registry=%s prefix=%s: setting rate limit to %d requests per second",
            endpoint.registry_api,
            endpoint.registry_prefix,
            endpoint.limit,
        )
    else:
        log.debug(
            "registry=%s prefix=%s: rate limiting is disabled",
            endpoint.registry_api,
            endpoint.registry_prefix,
        )


def _infer_endpoint_from_prefix(prefix: str) -> RegistryEndpoint:
    return new_registry_endpoint(
        prefix, prefix, "https://" + prefix, "", "", False, TagListSort.UNSORTED, 20, 0
    )


def get_registry_endpoint(prefix: str) -> RegistryEndpoint:
    """Return the endpoint for prefix, inferring and registering it if unknown.

    An empty prefix selects the default registry.
    """
    if prefix == "":
        with _state.lock:
            default = _state.default
        if default is None:
            raise RegistryError("no default endpoint configured")
        return default

    with _state.lock:
        endpoint = _state.registries.get(prefix)
    if endpoint is not None:
        return endpoint

    endpoint = _infer_endpoint_from_prefix(prefix)
    add_registry_endpoint(endpoint)
    log.debug("Inferred registry from prefix %s to use API %s", prefix, endpoint.registry_api)
    return endpoint


def set_registry_endpoint_credentials(prefix: str, credentials: str) -> None:
    """Change the credential reference of the endpoint for prefix."""
    endpoint = get_registry_endpoint(prefix)
    with endpoint.lock:
        endpoint.credentials = credentials


def configured_endpoints() -> list[str]:
    """Return the prefixes of all registered endpoints."""
    with _state.lock:
        return [ep.registry_prefix for ep in _state.registries.values()]


def clear_registries() -> None:
    """Remove every registered endpoint; the default registry is kept."""
    with _state.lock:
        _state.registries = {}


def restore_default_registry_configuration() -> None:
    """Reset the registered endpoints to the built-in configuration."""
    with _state.lock:
        _state.default = None
        _state.registries = {}
        for prefix, tweak in _REGISTRY_TWEAKS.items():
            copy = tweak.deep_copy()
            _state.registries[prefix] = copy
            if tweak.is_default:
                set_default_registry(copy)


restore_default_registry_configuration()