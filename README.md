# imageregistry

A small library for keeping track of container image registries: which
registry endpoint serves which image prefix, how that endpoint is to be
reached, and how lists of image tags are held and sorted.

## Modules

- `imageregistry.endpoints`: a process-wide set of `RegistryEndpoint` objects
  keyed by image prefix. Docker Hub (`docker.io`, API
  `https://registry-1.docker.io`, default namespace `library`) is registered
  and is the default registry from import time on. Asking
  `get_registry_endpoint` for a prefix that is not registered creates and
  registers an endpoint at `https://<prefix>` with a limit of 20 requests per
  second. Each endpoint carries its own `TagCache` and `RateLimiter`.
- `imageregistry.config`: `parse_registry_configuration` parses and validates
  a YAML document with a `registries:` list into `RegistryConfiguration`
  entries; `load_registry_configuration` reads such a file and registers its
  entries; `parse_duration` reads durations such as `300ms`, `1.5h` or
  `2h45m`.
- `imageregistry.tag`: `ImageTag`, `ImageTagList`, `TagInfo` and `tag_names`.
  An `ImageTagList` holds one tag per name and can be sorted by name, by date
  (ties broken by name) or by semantic version.
- `imageregistry.semversion`: `parse_semver`, `SemVer`, `sort_versions` and
  `InvalidVersionError`. The parser accepts an optional leading `v` and
  missing minor or patch numbers (`v1.0`); `sort_versions` orders equal
  versions by their original text.
- `imageregistry.version`: `version()`, `binary_name()`, `useragent()`,
  `git_commit()`, `build_date()`, `python_version()`, `platform_name()` and
  `compiler()`.

## Registry configuration

```yaml
registries:
- name: GitHub Container Registry
  api_url: https://ghcr.io
  prefix: ghcr.io
  credentials: env:REGISTRY_CREDS
  credsexpire: 5h
  tagsortmode: latest-first
  limit: 20
- name: Docker Hub
  api_url: https://registry-1.docker.io
  prefix: docker.io
  defaultns: library
  default: true
```

Keys are `name`, `api_url`, `ping`, `credentials`, `credsexpire`,
`tagsortmode`, `prefix`, `insecure`, `defaultns`, `limit` and `default`;
any other key, or a key given twice, is rejected. Every entry needs a `name`
and an `api_url`, and only one entry may leave out `prefix`. `tagsortmode`
is `none` (or empty), `latest-first` or `latest-last`. `credsexpire` is a
duration string or an integer number of nanoseconds. A `limit` of zero or
less turns rate limiting off.

```python
from imageregistry.config import load_registry_configuration, parse_registry_configuration
from imageregistry.endpoints import get_registry_endpoint, restore_default_registry_configuration

with open("registries.yaml") as handle:
    entries = parse_registry_configuration(handle.read())  # validate only

load_registry_configuration("registries.yaml", True)  # drop registered endpoints first
endpoint = get_registry_endpoint("ghcr.io")
default = get_registry_endpoint("")  # the default registry

restore_default_registry_configuration()  # back to Docker Hub only
```

Loading logs a warning for entries with a time-sorted tag sort mode, and
refuses a file that marks more than one entry as `default`. Invalid
configuration raises `ConfigurationError`; a missing file raises the usual
`OSError`. Asking for the default endpoint when none is set raises
`RegistryError`.

## Endpoints

`set_default_registry`, `get_default_registry`, `add_registry_endpoint`,
`set_registry_endpoint_credentials`, `configured_endpoints`,
`clear_registries` and `restore_default_registry_configuration` manage the
registered set; `new_registry_endpoint` builds an endpoint without
registering it.

A `RegistryEndpoint` offers:

- `deep_copy()`: the same configuration with a new, empty cache (resolved
  user name and password are not copied; the rate limiter is shared).
- `expire_credentials()`: clears `username` and `password` and returns
  `True` when `credentials` is set and `creds_updated` is older than
  `creds_expire`.
- `ssl_context()`: a TLS context that skips certificate checks for
  `insecure` endpoints.

`RateLimiter.take()` blocks so that at most `rate` calls pass per second.

## Tags and versions

```python
from datetime import datetime, timezone

from imageregistry.semversion import parse_semver, sort_versions
from imageregistry.tag import ImageTag, ImageTagList, tag_names
from imageregistry.endpoints import tag_list_sort_from_string

ordered = sort_versions([parse_semver(t) for t in ["v2.0.2", "v1.0", "v2.0"]])

now = datetime.now(timezone.utc)
tags = ImageTagList([ImageTag("v1.0.1", now), ImageTag("v1.0", now)])
tag_names(tags.sort_by_semver())  # ["v1.0", "v1.0.1"]

mode = tag_list_sort_from_string("latest-first")
mode.is_time_sorted()  # True
```

`parse_semver` raises `InvalidVersionError` for text that is not a version;
`ImageTagList.sort_by_semver` leaves such tags out.

## Build information

```python
from imageregistry.version import useragent

print(useragent())  # "argocd-image-updater: v9.9.99+unknown"
```

## What it does not do

The package does not talk to registries. It has no HTTP client, does not
fetch tag lists, manifests or image metadata, and does not resolve the
`credentials` reference of an endpoint into a user name and password; that
reference is stored as given. `ssl_context()`, `RateLimiter` and `TagCache`
are there for use by whatever client does the fetching.