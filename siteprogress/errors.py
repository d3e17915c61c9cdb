"""Exception types raised by the progress store and its collaborators."""

from __future__ import annotations

from typing import Optional


class ProgressError(Exception):
    """Base class for Site Progress errors."""


class ValidationError(ProgressError, ValueError):
    """A required form field was missing or blank."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class EntityNotFoundError(ProgressError, LookupError):
    """An area, sub-area or process id does not exist in its parent scope."""

    def __init__(self, kind: str, entity_id: str, parent_id: Optional[str] = None):
        self.kind = kind
        self.entity_id = entity_id
        self.parent_id = parent_id
        where = f" in '{parent_id}'" if parent_id else ""
        super().__init__(f"{kind.capitalize()} '{entity_id}' not found{where}")


class SnapshotError(ProgressError):
    """The persisted snapshot could not be decoded."""


class NoPendingOperationError(ProgressError):
    """confirm() was called without an open add/edit operation."""


class ExportError(ProgressError):
    """Building or writing the spreadsheet failed."""
