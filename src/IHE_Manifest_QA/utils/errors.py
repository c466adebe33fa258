"""Exception types raised by the manifest QA engine.

Key Responsibilities:
    - Provide a single base exception carrying a human readable detail and
      structured extras for log payloads
    - Distinguish configuration faults (broken rule catalog) from input faults
      (undecodable manifest bytes)

Collaborators:
    - Upstream: Catalog loader and container parser raise these exceptions
    - Downstream: The orchestrator converts :class:`ManifestParseError` into a
      report message; :class:`CatalogError` propagates to the caller

Side Effects:
    - None; exceptions are plain data carriers

Thread Safety:
    - Thread-safe; instances are not shared between runs
"""

from __future__ import annotations

from typing import Any, Mapping

__all__ = ["CatalogError", "ManifestParseError", "ManifestQAError"]


class ManifestQAError(RuntimeError):
    """Base exception for engine failures that cannot become report messages."""

    def __init__(
        self,
        message: str,
        *,
        detail: str | None = None,
        extra: Mapping[str, Any] | None = None,
    ) -> None:
        """Initialise the exception with structured attributes.

        Args:
            message: Human readable error summary.
            detail: Optional detailed description of the failure.
            extra: Additional attributes included in :meth:`model_dump`.
        """
        super().__init__(message)
        self.title = message
        self.detail = detail
        self.extra = dict(extra or {})

    def model_dump(self) -> dict[str, Any]:
        """Return a dictionary representation with empty fields dropped."""
        payload: dict[str, Any] = {"title": self.title, "type": type(self).__name__}
        if self.detail is not None:
            payload["detail"] = self.detail
        if self.extra:
            payload["extra"] = dict(self.extra)
        return payload


class ManifestParseError(ManifestQAError):
    """Raised when manifest bytes cannot be decoded into an attribute tree."""


class CatalogError(ManifestQAError):
    """Raised when the rule catalog is malformed or internally inconsistent."""
