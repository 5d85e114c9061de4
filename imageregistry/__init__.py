"""Container registry endpoints, registry configuration and image tag handling."""

__version__ = "0.1.0"

__all__ = ["config", "endpoints", "semversion", "tag", "version"]