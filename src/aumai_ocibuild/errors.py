"""Typed build errors."""

from __future__ import annotations

__all__ = [
    "BuildError",
    "ConfigurationError",
    "InputError",
    "OutputError",
    "TransportError",
]


class BuildError(RuntimeError):
    """Base error for every fatal image build failure."""


class ConfigurationError(BuildError):
    """The build request itself is invalid (bad mode, bad name, missing field)."""


class InputError(BuildError):
    """A source file or the base image archive is missing or malformed."""


class OutputError(BuildError):
    """The output layout could not be created or written."""


class TransportError(BuildError):
    """Pulling or pushing an image through the external transport failed."""
