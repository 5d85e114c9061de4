"""Loading registry endpoint configuration from YAML."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, fields
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from .endpoints import (
    TagListSort,
    add_registry_endpoint,
    clear_registries,
    get_default_registry,
    new_registry_endpoint,
    set_default_registry,
    tag_list_sort_from_string,
)

log = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Raised when a registry configuration is invalid."""


@dataclass
class RegistryConfiguration:
    """One registry entry of a configuration file."""

    name: str = ""
    api_url: str = ""
    ping: bool = False
    credentials: str = ""
    creds_expire: timedelta = timedelta(0)
    tag_sort_mode: str = ""
    prefix: str = ""
    insecure: bool = False
    default_ns: str = ""
    limit: int = 0
    is_default: bool = False


_UNITS_NS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60_000_000_000,
    "h": 3_600_000_000_000,
}
_DURATION_PART = re.compile(r"([0-9]+(?:\.[0-9]*)?|\.[0-9]+)(ns|us|µs|μs|ms|s|m|h)")
_MAX_NS = 2**63 - 1


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "300ms", "1.5h" or "2h45m"."""
    rest = text
    negative = False
    if rest[:1] in ("-", "+"):
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if rest == "":
        raise ConfigurationError(f"invalid duration {text!r}")
    total = Decimal(0)
    pos = 0
    while pos < len(rest):
        match = _DURATION_PART.match(rest, pos)
        if match is None:
            raise ConfigurationError(f"invalid duration {text!r}")
        total += Decimal(match.group(1)) * _UNITS_NS[match.group(2)]
        pos = match.end()
    nanoseconds = int(total)
    if nanoseconds > _MAX_NS:
        raise ConfigurationError(f"invalid duration {text!r}")
    if negative:
        nanoseconds = -nanoseconds
    return timedelta(microseconds=nanoseconds / 1000)


class _StrictLoader(yaml.SafeLoader):
    """A safe loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: _StrictLoader, node: yaml.MappingNode) -> dict:
    loader.flatten_mapping(node)
    result: dict = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=True)
        if key in result:
            raise ConfigurationError(f"mapping key {key!r} already defined")
        result[key] = loader.construct_object(value_node, deep=True)
    return result


_StrictLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_mapping
)


def _to_str(key: str, value: Any) -> str:
    if isinstance(value, (dict, list)):
        raise ConfigurationError(f"field {key} must be a string")
    return str(value)


def _to_bool(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigurationError(f"field {key} must be a boolean")
    return value


def _to_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"field {key} must be an integer")
    return value


def _to_duration(key: str, value: Any) -> timedelta:
    if isinstance(value, str):
        return parse_duration(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return timedelta(microseconds=value / 1000)
    raise ConfigurationError(f"field {key} must be a duration")


_FIELDS = {
    "name": ("name", _to_str),
    "api_url": ("api_url", _to_str),
    "ping": ("ping", _to_bool),
    "credentials": ("credentials", _to_str),
    "credsexpire": ("creds_expire", _to_duration),
    "tagsortmode": ("tag_sort_mode", _to_str),
    "prefix": ("prefix", _to_str),
    "insecure": ("insecure", _to_bool),
    "defaultns": ("default_ns", _to_str),
    "limit": ("limit", _to_int),
    "default": ("is_default", _to_bool),
}


def _entry_from_mapping(raw: Any) -> RegistryConfiguration:
    if raw is None:
        return RegistryConfiguration()
    if not isinstance(raw, dict):
        raise ConfigurationError("registry entry must be a mapping")
    values = {}
    for key, value in raw.items():
        if key not in _FIELDS:
            raise ConfigurationError(f"field {key} not found in registry configuration")
        if value is None:
            continue
        attr, convert = _FIELDS[key]
        values[attr] = convert(key, value)
    return RegistryConfiguration(**values)


def _describe(entry: RegistryConfiguration) -> str:
    return "{" + " ".join(str(getattr(entry, f.name)) for f in fields(entry)) + "}"


def parse_registry_configuration(yaml_source: str) -> list[RegistryConfiguration]:
    """Parse and validate a YAML registry configuration."""
    try:
        document = yaml.load(yaml_source, Loader=_StrictLoader)
    except yaml.YAMLError as err:
        raise ConfigurationError(str(err)) from err
    if document is None:
        return []
    if not isinstance(document, dict):
        raise ConfigurationError("registry configuration must be a mapping")
    for key in document:
        if key != "registries":
            raise ConfigurationError(f"field {key} not found in configuration")
    raw_items = document.get("registries") or []
    if not isinstance(raw_items, list):
        raise ConfigurationError("registries must be a list")
    items = [_entry_from_mapping(raw) for raw in raw_items]

    default_prefix_found = ""
    for entry in items:
        if entry.name == "":
            raise ConfigurationError(f"registry name is missing for entry {_describe(entry)}")
        if entry.api_url == "":
            raise ConfigurationError(f"API URL must be specified for registry {entry.name}")
        if entry.prefix == "":
            if default_prefix_found:
                raise ConfigurationError(
                    f"there must be only one default registry (already is "
                    f"{default_prefix_found}), {entry.name} needs a prefix"
                )
            default_prefix_found = entry.name
        if tag_list_sort_from_string(entry.tag_sort_mode) is TagListSort.UNKNOWN:
            raise ConfigurationError(
                f"unknown tag sort mode for registry {entry.name}: {entry.tag_sort_mode}"
            )
    return items


def _endpoint_from_config(config: RegistryConfiguration, tag_sort: TagListSort):
    return new_registry_endpoint(
        config.prefix,
        config.name,
        config.api_url,
        config.credentials,
        config.default_ns,
        config.insecure,
        tag_sort,
        config.limit,
        config.creds_expire,
    )


def add_registry_endpoint_from_config(config: RegistryConfiguration) -> None:
    """Create an endpoint from a configuration entry and register it."""
    add_registry_endpoint(_endpoint_from_config(config, tag_list_sort_from_string(config.tag_sort_mode)))


def load_registry_configuration(path: str | Path, clear: bool) -> None:
    """Load a YAML registry configuration file and register its endpoints."""
    source = Path(path).read_text(encoding="utf-8")
    items = parse_registry_configuration(source)

    if clear:
        clear_registries()

    have_default = False
    for entry in items:
        tag_sort = tag_list_sort_from_string(entry.tag_sort_mode)
        if tag_sort is not TagListSort.UNSORTED:
            log.warning(
                "Registry %s has tag sort mode set to %s, meta data retrieval "
                "will be disabled for this registry.",
                entry.api_url,
                tag_sort,
            )
        endpoint = _endpoint_from_config(entry, tag_sort)
        if entry.is_default and have_default:
            current = get_default_registry()
            current_prefix = current.registry_prefix if current is not None else ""
            raise ConfigurationError(
                f"cannot set registry {endpoint.registry_prefix} as default - only one "
                f"default registry allowed, currently set to {current_prefix}"
            )
        add_registry_endpoint(endpoint)
        if entry.is_default:
            set_default_registry(endpoint)
            have_default = True

    log.info("Loaded %d registry configurations from %s", len(items), path)