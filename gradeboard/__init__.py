"""
Core package for the grade dashboard.

Holds the file store reader, the result cache, and the collection
orchestrator; the HTTP surface lives under ``apps/dashboard``.
"""

from importlib import metadata


def get_version() -> str:
    """Return the installed project version."""
    try:
        return metadata.version("gradeboard")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__all__ = ["get_version"]
