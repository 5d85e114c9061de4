"""Build and runtime version information."""

import platform
import sys

_VERSION = "9.9.99"
_BUILD_DATE = "1970-01-01T00:00:00Z"
_GIT_COMMIT = "unknown"
_BINARY_NAME = "argocd-image-updater"


def version() -> str:
    """Return the version string including a short commit id."""
    return f"v{_VERSION}+{_GIT_COMMIT[:7]}"


def binary_name() -> str:
    """Return the program name."""
    return _BINARY_NAME


def useragent() -> str:
    """Return the user agent sent with requests."""
    return f"{binary_name()}: {version()}"


def git_commit() -> str:
    """Return the commit the build was made from."""
    return _GIT_COMMIT


def build_date() -> str:
    """Return the build date."""
    return _BUILD_DATE


def python_version() -> str:
    """Return the version of the running interpreter."""
    return platform.python_version()


def platform_name() -> str:
    """Return the operating system and machine, as os/arch."""
    return f"{sys.platform}/{platform.machine()}"


def compiler() -> str:
    """Return the compiler the interpreter was built with."""
    return platform.python_compiler()