"""Configuration package for the manifest QA engine."""

from .settings import LoggingSettings, ValidatorSettings, get_settings, load_settings

__all__ = ["LoggingSettings", "ValidatorSettings", "get_settings", "load_settings"]
