"""
Configuration, error types, and the collection history log.

Everything here is free of FastAPI so the CLIs can import it cheaply.
"""

from .config import DashboardConfig, load_dashboard_config
from .errors import (
    ClientInputError,
    DataUnavailableError,
    GradeboardError,
    NotFoundError,
    ParseError,
    SubprocessFailureError,
)
from .history import CollectionEvent, CollectionHistory

__all__ = [
    "ClientInputError",
    "CollectionEvent",
    "CollectionHistory",
    "DashboardConfig",
    "DataUnavailableError",
    "GradeboardError",
    "NotFoundError",
    "ParseError",
    "SubprocessFailureError",
    "load_dashboard_config",
]
