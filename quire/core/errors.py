"""
Lifecycle error taxonomy.

Every mutating operation either returns a fully materialized item or raises
one of these. Sub-steps raise them directly; nothing wraps or re-labels them
on the way to the operation boundary.
"""

from __future__ import annotations


class LifecycleError(Exception):
    """Base class for all content lifecycle errors."""

    code = "lifecycle_error"

    def __init__(self, message: str, field: str | None = None) -> None:
        self.message = message
        self.field = field
        super().__init__(message)


class ValidationError(LifecycleError):
    """Bad or missing field, invalid temporal value, or disallowed transition."""

    code = "validation_error"


class AuthorizationError(LifecycleError):
    """The permission gate rejected the operation."""

    code = "not_enough_permission"


class ConflictError(LifecycleError):
    """A uniqueness constraint could not be satisfied."""

    code = "conflict"


class NotFoundError(LifecycleError):
    """The edit/destroy target does not exist."""

    code = "not_found"
