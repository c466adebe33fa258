"""Structural and template conformance checks for IHE imaging manifests."""

from .validation import ManifestValidator, Profile, Report, Severity

__all__ = ["ManifestValidator", "Profile", "Report", "Severity", "__version__"]

__version__ = "0.1.0"
