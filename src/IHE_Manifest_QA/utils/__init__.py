"""Shared utilities: error types and logging configuration."""

from .errors import CatalogError, ManifestParseError, ManifestQAError
from .logging import bind_run_id, configure_logging, get_run_id, reset_run_id

__all__ = [
    "CatalogError",
    "ManifestParseError",
    "ManifestQAError",
    "bind_run_id",
    "configure_logging",
    "get_run_id",
    "reset_run_id",
]
