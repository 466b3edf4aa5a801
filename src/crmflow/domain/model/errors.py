"""Domain error definitions."""

from __future__ import annotations


class InvalidTransitionError(ValueError):
    """Raised when a lifecycle transition is not allowed from the current status."""


class DuplicateEntityError(RuntimeError):
    """Raised by repositories when a write would violate a uniqueness key."""
