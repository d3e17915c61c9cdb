"""Site Progress: construction progress tracking by area, sub-area and process."""

from .errors import (
    EntityNotFoundError,
    ExportError,
    NoPendingOperationError,
    ProgressError,
    SnapshotError,
    ValidationError,
)
from .models import Area, ExportRow, Process, Status, SubArea
from .persistence import InMemoryKeyValueStore, JsonFileKeyValueStore
from .store import ProgressStore
from .workflow import ProgressController, RecordingNotifier

__all__ = [
    "Area",
    "EntityNotFoundError",
    "ExportError",
    "ExportRow",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "NoPendingOperationError",
    "Process",
    "ProgressController",
    "ProgressError",
    "ProgressStore",
    "RecordingNotifier",
    "SnapshotError",
    "Status",
    "SubArea",
    "ValidationError",
]
