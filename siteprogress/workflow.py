"""Form and confirmation layer on top of the progress store.

A presentation layer opens an add/edit form, which records a typed pending
operation. Confirming the form validates the input and routes it to the
matching store call. Deletes go through a yes/no confirmation callback
first. Nothing here renders; results come back as plain dictionaries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from .errors import (
    EntityNotFoundError,
    ExportError,
    NoPendingOperationError,
    ValidationError,
)
from .export import export_workbook
from .models import Status, is_blank
from .progress_logging import log_error_with_context
from .store import ProgressStore

logger = logging.getLogger("siteprogress.workflow")

ConfirmCallback = Callable[[str], bool]

DELETE_SUB_AREA_PROMPT = "Delete this sub-area? This cannot be undone."
DELETE_PROCESS_PROMPT = "Delete this process? This cannot be undone."
EXPORT_SUCCESS_MESSAGE = "Excel file exported"
EXPORT_FAILURE_MESSAGE = "Export failed, please try again"


# ----------------------------------------------------------------------
# Pending operations
# ----------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AddArea:
    pass


@dataclass(frozen=True, slots=True)
class AddSubArea:
    area_id: str


@dataclass(frozen=True, slots=True)
class EditSubArea:
    area_id: str
    sub_area_id: str


@dataclass(frozen=True, slots=True)
class AddProcess:
    area_id: str
    sub_area_id: str


@dataclass(frozen=True, slots=True)
class EditProcess:
    area_id: str
    sub_area_id: str
    process_id: str


PendingOperation = Union[AddArea, AddSubArea, EditSubArea, AddProcess, EditProcess]

_NAME_LABELS = {
    AddArea: "area",
    AddSubArea: "sub-area",
    EditSubArea: "sub-area",
    AddProcess: "process",
    EditProcess: "process",
}


# ----------------------------------------------------------------------
# Notifiers
# ----------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Notification:
    message: str
    kind: str

    def to_dict(self) -> Dict[str, str]:
        return {"message": self.message, "kind": self.kind}


class RecordingNotifier:
    """Collect notifications so a caller can return them with a response."""

    def __init__(self, limit: int = 50):
        self.limit = limit
        self.notifications: List[Notification] = []

    def __call__(self, message: str, kind: str = "success") -> None:
        self.notifications.append(Notification(message, kind))
        del self.notifications[:-self.limit]
        level = logging.WARNING if kind == "error" else logging.INFO
        logger.log(level, f"[{kind}] {message}")

    def drain(self) -> List[Dict[str, str]]:
        """Return and forget everything recorded so far."""
        drained = [n.to_dict() for n in self.notifications]
        self.notifications.clear()
        return drained


def _always_confirm(prompt: str) -> bool:
    return True


# ----------------------------------------------------------------------
# Controller
# ----------------------------------------------------------------------


class ProgressController:
    """Route form submissions and confirmations to the progress store."""

    def __init__(self, store: ProgressStore, *, confirm: Optional[ConfirmCallback] = None):
        self.store = store
        self.ask_confirmation = confirm or _always_confirm
        self.pending: Optional[PendingOperation] = None

    def _notify_error(self, message: str) -> None:
        self.store.notify(message, "error")

    # ------------------------------------------------------------------
    # Opening forms
    # ------------------------------------------------------------------

    def open_add_area(self) -> PendingOperation:
        self.pending = AddArea()
        return self.pending

    def open_add_sub_area(self) -> PendingOperation:
        """Open the add-sub-area form against the currently selected area."""
        area_id = self.store.current_area
        if area_id is None:
            raise EntityNotFoundError("area", "<none selected>")
        self.store.get_area(area_id)
        self.pending = AddSubArea(area_id)
        return self.pending

    def open_edit_sub_area(self, area_id: str, sub_area_id: str) -> Dict[str, Any]:
        sub_area = self.store.get_sub_area(area_id, sub_area_id)
        self._select(area_id, sub_area_id)
        self.pending = EditSubArea(area_id, sub_area_id)
        return {"name": sub_area.name}

    def open_add_process(self, area_id: str, sub_area_id: str) -> PendingOperation:
        self.store.get_sub_area(area_id, sub_area_id)
        self._select(area_id, sub_area_id)
        self.pending = AddProcess(area_id, sub_area_id)
        return self.pending

    def open_edit_process(self, area_id: str, sub_area_id: str, process_id: str) -> Dict[str, Any]:
        process = self.store.get_process(area_id, sub_area_id, process_id)
        self._select(area_id, sub_area_id, process_id)
        self.pending = EditProcess(area_id, sub_area_id, process_id)
        return {"name": process.name, "notes": process.notes, "status": process.status.value}

    def _select(self, area_id: str, sub_area_id: str, process_id: Optional[str] = None) -> None:
        self.store.current_area = area_id
        self.store.current_sub_area = sub_area_id
        self.store.current_process = process_id

    def cancel(self) -> None:
        self.pending = None

    # ------------------------------------------------------------------
    # Confirming forms
    # ------------------------------------------------------------------

    def confirm(
        self,
        name: Optional[str],
        notes: Optional[str] = None,
        status: Optional[Union[Status, str]] = None,
    ) -> Dict[str, Any]:
        """Validate the submitted fields and apply the pending operation.

        A blank name reports an error notification and leaves the form
        open so the user can correct it.
        """
        pending = self.pending
        if pending is None:
            raise NoPendingOperationError("No add or edit form is open")

        try:
            cleaned_name = self._require_name(pending, name)
        except ValidationError as e:
            self._notify_error(str(e))
            return {"success": False, "error": str(e), "field": e.field}

        cleaned_notes = notes.strip() if notes is not None else None
        result = self._apply(pending, cleaned_name, cleaned_notes, status)
        self.pending = None
        return {"success": True, **result}

    def _require_name(self, pending: PendingOperation, name: Optional[str]) -> str:
        if is_blank(name):
            label = _NAME_LABELS[type(pending)]
            article = "an" if label[0] in "aeiou" else "a"
            raise ValidationError("name", f"Please enter {article} {label} name")
        return name.strip()

    def _apply(
        self,
        pending: PendingOperation,
        name: str,
        notes: Optional[str],
        status: Optional[Union[Status, str]],
    ) -> Dict[str, Any]:
        store = self.store
        if isinstance(pending, AddArea):
            return {"area_id": store.add_area(name)}
        if isinstance(pending, AddSubArea):
            return {"area_id": pending.area_id, "sub_area_id": store.add_sub_area(pending.area_id, name)}
        if isinstance(pending, EditSubArea):
            store.update_sub_area(pending.area_id, pending.sub_area_id, name)
            return {"area_id": pending.area_id, "sub_area_id": pending.sub_area_id}
        if isinstance(pending, AddProcess):
            process_id = store.add_process(pending.area_id, pending.sub_area_id, name, notes or "")
            return {"area_id": pending.area_id, "sub_area_id": pending.sub_area_id, "process_id": process_id}
        if isinstance(pending, EditProcess):
            updates: Dict[str, Any] = {"name": name}
            if notes is not None:
                updates["notes"] = notes
            if status is not None:
                updates["status"] = status
            process = store.update_process(pending.area_id, pending.sub_area_id, pending.process_id, **updates)
            return {
                "area_id": pending.area_id,
                "sub_area_id": pending.sub_area_id,
                "process_id": pending.process_id,
                "status": process.status.value,
            }
        raise TypeError(f"Unsupported pending operation: {pending!r}")

    # ------------------------------------------------------------------
    # Confirmed deletes and direct actions
    # ------------------------------------------------------------------

    def request_delete_sub_area(self, area_id: str, sub_area_id: str) -> bool:
        """Delete a sub-area after the user agrees; return whether it was removed."""
        self.store.get_sub_area(area_id, sub_area_id)
        if not self.ask_confirmation(DELETE_SUB_AREA_PROMPT):
            logger.info(f"Deletion of sub-area '{sub_area_id}' declined")
            return False
        self.store.delete_sub_area(area_id, sub_area_id)
        return True

    def request_delete_process(self, area_id: str, sub_area_id: str, process_id: str) -> bool:
        self.store.get_process(area_id, sub_area_id, process_id)
        if not self.ask_confirmation(DELETE_PROCESS_PROMPT):
            logger.info(f"Deletion of process '{process_id}' declined")
            return False
        self.store.delete_process(area_id, sub_area_id, process_id)
        return True

    def toggle(self, area_id: str, sub_area_id: str, process_id: str) -> Status:
        return self.store.toggle_process_status(area_id, sub_area_id, process_id)

    def switch_area(self, area_id: str) -> Dict[str, Any]:
        area = self.store.switch_area(area_id)
        self.pending = None
        return {"area_id": area_id, "name": area.name}

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_to_excel(self, directory: Path | str) -> Dict[str, Any]:
        """Export the workbook, reporting any failure as one generic error."""
        try:
            path = export_workbook(self.store, directory)
        except ExportError as e:
            log_error_with_context(e, {"operation": "export_to_excel", "directory": str(directory)})
            self._notify_error(EXPORT_FAILURE_MESSAGE)
            return {"success": False, "error": EXPORT_FAILURE_MESSAGE, "detail": str(e)}

        self.store.notify(EXPORT_SUCCESS_MESSAGE, "success")
        return {"success": True, "path": str(path)}
