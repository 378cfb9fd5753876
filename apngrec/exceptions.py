"""
Custom exception hierarchy for apngrec.

All apngrec exceptions inherit from ApngRecError so callers can catch
the entire family with a single except clause.
"""

from __future__ import annotations


class ApngRecError(Exception):
    """Base exception for all apngrec errors."""


class ConfigurationError(ApngRecError):
    """Raised for an invalid delay, repeat count, sink or capture setting."""


class GeometryError(ApngRecError):
    """Raised when a frame's size or offset falls outside the canvas."""


class StateError(ApngRecError):
    """Raised when an operation is called out of sequence."""


class SinkError(ApngRecError, OSError):
    """Raised when writing to or seeking in the output sink fails."""
