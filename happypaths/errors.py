"""Exception types raised by happypaths.

Record-level problems inside a batch (a malformed trace event, an unreadable
line) are logged and skipped where they occur. These exceptions are for the
cases that must stop the caller: bad configuration and unsafe identifiers.
"""

from __future__ import annotations


class HappyPathsError(Exception):
    """Base class for all happypaths errors."""


class ConfigurationError(HappyPathsError, ValueError):
    """Invalid construction-time configuration (weights, thresholds, ids)."""


class MalformedEventError(HappyPathsError, ValueError):
    """A trace event record is missing required fields or has invalid values."""


class UnsafeIdentifierError(HappyPathsError, ValueError):
    """An identifier is not safe to use as part of a storage key or path."""
