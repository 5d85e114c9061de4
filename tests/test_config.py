from datetime import timedelta

import pytest

from imageregistry.config import (
    ConfigurationError,
    RegistryConfiguration,
    add_registry_endpoint_from_config,
    load_registry_configuration,
    parse_duration,
    parse_registry_configuration,
)
from imageregistry.endpoints import (
    RATE_LIMIT_NONE,
    TagListSort,
    configured_endpoints,
    get_default_registry,
    get_registry_endpoint,
    restore_default_registry_configuration,
)

EXAMPLE_CONFIG = """
registries:
- name: Docker Hub
  api_url: https://registry-1.docker.io
  ping: yes
  prefix: docker.io
  defaultns: library
  default: true
- name: Google Container Registry
  api_url: https://gcr.io
  prefix: gcr.io
  ping: no
  credentials: pullsecret:foo/bar
- name: GitHub Container Registry
  api_url: https://ghcr.io
  prefix: ghcr.io
  ping: no
  limit: 5
  credentials: ext:/some/script
  credsexpire: 5h
- name: Quay
  api_url: https://quay.io
  prefix: quay.io
  tagsortmode: latest-first
"""

TWO_DEFAULTS = """
registries:
- name: One
  prefix: one.example.com
  api_url: https://one.example.com
  default: true
- name: Two
  prefix: two.example.com
  api_url: https://two.example.com
  default: true
"""


@pytest.fixture(autouse=True)
def _fresh_registries():
    restore_default_registry_configuration()
    yield
    restore_default_registry_configuration()


def test_parse_valid_yaml():
    items = parse_registry_configuration(EXAMPLE_CONFIG)
    assert len(items) == 4
    ghcr = items[2]
    assert ghcr.name == "GitHub Container Registry"
    assert ghcr.creds_expire == timedelta(hours=5)
    assert ghcr.limit == 5
    assert items[0].ping is True
    assert items[0].is_default is True
    assert items[1].ping is False
    assert items[3].tag_sort_mode == "latest-first"


def test_parse_no_name():
    source = """
registries:
- api_url: https://foo.io
  ping: false
"""
    with pytest.raises(ConfigurationError, match="name is missing"):
        parse_registry_configuration(source)


def test_parse_no_api_url():
    source = """
registries:
- name: Foobar Registry
  ping: false
"""
    with pytest.raises(ConfigurationError, match="API URL must be"):
        parse_registry_configuration(source)


def test_parse_multiple_without_prefix():
    source = """
registries:
- name: Foobar Registry
  api_url: https://foobar.io
  ping: false
- name: Barbar Registry
  api_url: https://barbar.io
  ping: false
"""
    with pytest.raises(ConfigurationError, match="already is Foobar Registry"):
        parse_registry_configuration(source)


def test_parse_invalid_tag_sort_mode():
    source = """
registries:
- name: Foobar Registry
  api_url: https://foobar.io
  ping: false
  tagsortmode: invalid
"""
    with pytest.raises(ConfigurationError, match="unknown tag sort mode"):
        parse_registry_configuration(source)


def test_parse_unknown_field():
    source = """
registries:
- name: Foobar Registry
  api_url: https://foobar.io
  colour: blue
"""
    with pytest.raises(ConfigurationError, match="colour"):
        parse_registry_configuration(source)


def test_parse_duplicate_key():
    source = """
registries:
- name: Foobar Registry
  name: Other Registry
  api_url: https://foobar.io
"""
    with pytest.raises(ConfigurationError, match="already defined"):
        parse_registry_configuration(source)


def test_parse_wrong_type():
    source = """
registries:
- name: Foobar Registry
  api_url: https://foobar.io
  insecure: sometimes
"""
    with pytest.raises(ConfigurationError, match="insecure"):
        parse_registry_configuration(source)


def test_parse_empty_document():
    assert parse_registry_configuration("") == []


@pytest.mark.parametrize(
    "text, expected",
    [
        ("3s", timedelta(seconds=3)),
        ("5h", timedelta(hours=5)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("1.5s", timedelta(seconds=1.5)),
        ("300ms", timedelta(milliseconds=300)),
        ("-2m", timedelta(minutes=-2)),
        ("0", timedelta(0)),
        ("10us", timedelta(microseconds=10)),
    ],
)
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "abc", "5", "3x", "-", "1h 2m"])
def test_parse_duration_invalid(text):
    with pytest.raises(ConfigurationError):
        parse_duration(text)


def test_load_from_valid_location(tmp_path):
    path = tmp_path / "example-config.yaml"
    path.write_text(EXAMPLE_CONFIG, encoding="utf-8")
    load_registry_configuration(path, True)
    assert sorted(configured_endpoints()) == ["docker.io", "gcr.io", "ghcr.io", "quay.io"]
    assert get_registry_endpoint("gcr.io").credentials == "pullsecret:foo/bar"
    ghcr = get_registry_endpoint("ghcr.io")
    assert ghcr.credentials == "ext:/some/script"
    assert ghcr.creds_expire == timedelta(hours=5)
    assert ghcr.limit == 5
    assert get_registry_endpoint("quay.io").tag_list_sort is TagListSort.LATEST_FIRST
    assert get_default_registry() is get_registry_endpoint("docker.io")

    restore_default_registry_configuration()
    assert get_registry_endpoint("gcr.io").credentials == ""


def test_load_from_invalid_location(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_registry_configuration(tmp_path / "does-not-exist.yaml", True)


def test_load_two_defaults(tmp_path):
    path = tmp_path / "two-defaults.yaml"
    path.write_text(TWO_DEFAULTS, encoding="utf-8")
    with pytest.raises(ConfigurationError, match="cannot set registry"):
        load_registry_configuration(path, True)


def test_add_endpoint_from_config_and_expire():
    source = """
registries:
- name: GitHub Container Registry
  api_url: https://ghcr.io
  ping: no
  prefix: ghcr.io
  credentials: env:TEST_CREDS
  credsexpire: 3s
"""
    items = parse_registry_configuration(source)
    assert len(items) == 1
    add_registry_endpoint_from_config(items[0])
    ep = get_registry_endpoint("ghcr.io")
    assert ep.creds_expire == timedelta(seconds=3)
    assert ep.credentials == "env:TEST_CREDS"
    assert ep.limit == RATE_LIMIT_NONE


def test_add_endpoint_from_config_defaults():
    config = RegistryConfiguration(
        name="Example", api_url="https://example.com/", prefix="example.com",
        tag_sort_mode="latest-last",
    )
    add_registry_endpoint_from_config(config)
    ep = get_registry_endpoint("example.com")
    assert ep.registry_api == "https://example.com"
    assert ep.registry_name == "Example"
    assert ep.tag_list_sort is TagListSort.LATEST_LAST