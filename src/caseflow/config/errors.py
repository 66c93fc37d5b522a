"""Errors raised while reading caseflow settings."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """A ``CASEFLOW_*`` or ``DATABASE_URI`` setting holds an unusable value."""


class MissingConfigurationError(ConfigurationError):
    """A setting the command needs, such as the caller identity, is unset or blank."""
