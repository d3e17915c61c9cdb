"""Progress store: the area / sub-area / process tree and its mutations.

Every mutation applies the change, writes the whole snapshot through the
persistence collaborator, asks the render callback to redraw and emits one
outcome message to the notifier. Reads never touch persistence.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import EntityNotFoundError, SnapshotError
from .models import (
    Area,
    ExportRow,
    Process,
    Status,
    SubArea,
    areas_from_snapshot,
    areas_to_snapshot,
    default_areas,
)
from .persistence import KeyValueStore, dumps_snapshot
from .progress_logging import (
    log_entity_added,
    log_entity_deleted,
    log_entity_updated,
    log_error_with_context,
    log_operation,
    log_performance,
    log_status_changed,
)

logger = logging.getLogger("siteprogress.store")

STORAGE_KEY = "constructionProgress"
DEFAULT_AREA_ID = "main"

PROCESS_FIELDS = frozenset({"name", "notes", "status"})

RenderCallback = Callable[[], None]
NotifyCallback = Callable[[str, str], None]


def log_notification(message: str, kind: str = "success") -> None:
    """Default notifier: route outcome messages to the log."""
    level = logging.ERROR if kind == "error" else logging.INFO
    logger.log(level, message)


def _no_render() -> None:
    pass


def _mint_id(prefix: str, existing: Dict[str, Any]) -> str:
    while True:
        candidate = f"{prefix}_{uuid.uuid4().hex[:12]}"
        if candidate not in existing:
            return candidate


class ProgressStore:
    """Own the progress tree for one session."""

    def __init__(
        self,
        persistence: KeyValueStore,
        *,
        render: Optional[RenderCallback] = None,
        notify: Optional[NotifyCallback] = None,
    ):
        self.persistence = persistence
        self.render = render or _no_render
        self.notify = notify or log_notification
        self._lock = threading.RLock()

        self.areas: Dict[str, Area] = self._load()
        self.current_area: Optional[str] = DEFAULT_AREA_ID if DEFAULT_AREA_ID in self.areas else next(iter(self.areas), None)
        self.current_sub_area: Optional[str] = None
        self.current_process: Optional[str] = None

        logger.info(f"Progress store ready with {len(self.areas)} areas")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> Dict[str, Area]:
        raw = self.persistence.get(STORAGE_KEY)
        if raw is None:
            logger.info("No saved progress found, seeding default areas")
            return default_areas()
        try:
            return areas_from_snapshot(json.loads(raw))
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            log_error_with_context(e, {"operation": "load_snapshot", "key": STORAGE_KEY})
            raise SnapshotError(f"Saved progress under '{STORAGE_KEY}' is unreadable: {e}") from e

    def save(self) -> None:
        """Write the full snapshot through the persistence collaborator."""
        self.persistence.set(STORAGE_KEY, self.to_json())

    def to_snapshot(self) -> Dict[str, Any]:
        return areas_to_snapshot(self.areas)

    def to_json(self) -> str:
        return dumps_snapshot(self.to_snapshot())

    def _commit(self, message: Optional[str] = None) -> None:
        self.save()
        self.render()
        if message:
            self.notify(message, "success")

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_area(self, area_id: str) -> Area:
        try:
            return self.areas[area_id]
        except KeyError:
            raise EntityNotFoundError("area", area_id) from None

    def get_sub_area(self, area_id: str, sub_area_id: str) -> SubArea:
        area = self.get_area(area_id)
        try:
            return area.subareas[sub_area_id]
        except KeyError:
            raise EntityNotFoundError("sub-area", sub_area_id, area_id) from None

    def get_process(self, area_id: str, sub_area_id: str, process_id: str) -> Process:
        sub_area = self.get_sub_area(area_id, sub_area_id)
        try:
            return sub_area.processes[process_id]
        except KeyError:
            raise EntityNotFoundError("process", process_id, sub_area_id) from None

    # ------------------------------------------------------------------
    # Area management
    # ------------------------------------------------------------------

    def switch_area(self, area_id: str) -> Area:
        """Select an area and drop any sub-area/process selection."""
        with self._lock:
            area = self.get_area(area_id)
            self.current_area = area_id
            self.current_sub_area = None
            self.current_process = None
            self.render()
            return area

    @log_performance("add_area")
    def add_area(self, name: str) -> str:
        with self._lock, log_operation("add_area", name=name):
            area_id = _mint_id("area", self.areas)
            self.areas[area_id] = Area(name=name)
            self._commit(f'Area "{name}" added')
            log_entity_added("area", area_id, area_id, name)
            return area_id

    @log_performance("delete_area")
    def delete_area(self, area_id: str) -> None:
        """Remove an area together with all of its sub-areas and processes."""
        with self._lock, log_operation("delete_area", area_id=area_id):
            area = self.get_area(area_id)
            removed_processes = area.process_count()
            del self.areas[area_id]
            if self.current_area == area_id:
                self.current_area = next(iter(self.areas), None)
                self.current_sub_area = None
                self.current_process = None
            self._commit("Area deleted")
            log_entity_deleted("area", area_id, area_id, removed_processes=removed_processes)

    # ------------------------------------------------------------------
    # Sub-area management
    # ------------------------------------------------------------------

    @log_performance("add_sub_area")
    def add_sub_area(self, area_id: str, name: str) -> str:
        with self._lock, log_operation("add_sub_area", area_id=area_id, name=name):
            area = self.get_area(area_id)
            sub_area_id = _mint_id("subarea", area.subareas)
            area.subareas[sub_area_id] = SubArea(name=name)
            self._commit(f'Sub-area "{name}" added')
            log_entity_added("sub_area", area_id, sub_area_id, name)
            return sub_area_id

    def update_sub_area(self, area_id: str, sub_area_id: str, name: str) -> SubArea:
        with self._lock, log_operation("update_sub_area", area_id=area_id, sub_area_id=sub_area_id):
            sub_area = self.get_sub_area(area_id, sub_area_id)
            sub_area.name = name
            self._commit("Sub-area updated")
            log_entity_updated("sub_area", area_id, sub_area_id, name=name)
            return sub_area

    def delete_sub_area(self, area_id: str, sub_area_id: str) -> None:
        with self._lock, log_operation("delete_sub_area", area_id=area_id, sub_area_id=sub_area_id):
            area = self.get_area(area_id)
            if sub_area_id not in area.subareas:
                raise EntityNotFoundError("sub-area", sub_area_id, area_id)
            removed = area.subareas.pop(sub_area_id)
            if self.current_sub_area == sub_area_id:
                self.current_sub_area = None
                self.current_process = None
            self._commit("Sub-area deleted")
            log_entity_deleted("sub_area", area_id, sub_area_id, removed_processes=len(removed.processes))

    # ------------------------------------------------------------------
    # Process management
    # ------------------------------------------------------------------

    @log_performance("add_process")
    def add_process(self, area_id: str, sub_area_id: str, name: str, notes: str = "") -> str:
        with self._lock, log_operation("add_process", area_id=area_id, sub_area_id=sub_area_id, name=name):
            sub_area = self.get_sub_area(area_id, sub_area_id)
            process_id = _mint_id("process", sub_area.processes)
            sub_area.processes[process_id] = Process(name=name, notes=notes or "")
            self._commit(f'Process "{name}" added')
            log_entity_added("process", area_id, process_id, name, sub_area_id=sub_area_id)
            return process_id

    def update_process(self, area_id: str, sub_area_id: str, process_id: str, **updates: Any) -> Process:
        """Shallow-merge any of ``name``, ``notes`` and ``status`` into a process.

        Fields that are not passed keep their current value. The change is
        saved and rendered silently; no notification is emitted.
        """
        unknown = set(updates) - PROCESS_FIELDS
        if unknown:
            raise ValueError(f"Unknown process field(s): {', '.join(sorted(unknown))}")

        with self._lock, log_operation("update_process", area_id=area_id, process_id=process_id):
            process = self.get_process(area_id, sub_area_id, process_id)
            # Coerce before touching anything so a bad status leaves the process intact
            status = Status.coerce(updates["status"]) if "status" in updates else None

            if "name" in updates:
                process.name = updates["name"]
            if "notes" in updates:
                process.notes = updates["notes"] or ""
            if status is not None:
                process.status = status

            self._commit()
            log_entity_updated("process", area_id, process_id, fields=sorted(updates))
            return process

    def delete_process(self, area_id: str, sub_area_id: str, process_id: str) -> None:
        with self._lock, log_operation("delete_process", area_id=area_id, process_id=process_id):
            sub_area = self.get_sub_area(area_id, sub_area_id)
            if process_id not in sub_area.processes:
                raise EntityNotFoundError("process", process_id, sub_area_id)
            del sub_area.processes[process_id]
            if self.current_process == process_id:
                self.current_process = None
            self._commit("Process deleted")
            log_entity_deleted("process", area_id, process_id, sub_area_id=sub_area_id)

    @log_performance("toggle_process_status")
    def toggle_process_status(self, area_id: str, sub_area_id: str, process_id: str) -> Status:
        """Advance a process one step around the status cycle."""
        with self._lock, log_operation("toggle_process_status", area_id=area_id, process_id=process_id):
            process = self.get_process(area_id, sub_area_id, process_id)
            old_status = process.status
            new_status = old_status.next()
            self.update_process(area_id, sub_area_id, process_id, status=new_status)
            self.notify(f"Process status updated to: {new_status.text}", "success")
            log_status_changed(area_id, process_id, old_status.value, new_status.value)
            return new_status

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def count_processes(self, area_id: str) -> int:
        """Total processes across every sub-area of an area."""
        return self.get_area(area_id).process_count()

    def area_counts(self) -> Dict[str, int]:
        return {area_id: area.process_count() for area_id, area in self.areas.items()}

    def sub_area_progress(self, area_id: str, sub_area_id: str) -> Tuple[int, int]:
        return self.get_sub_area(area_id, sub_area_id).progress()

    def flatten(self, area_id: Optional[str] = None) -> List[ExportRow]:
        """Project the tree into export rows in insertion order."""
        if area_id is not None:
            selected = [(area_id, self.get_area(area_id))]
        else:
            selected = list(self.areas.items())

        rows: List[ExportRow] = []
        for _, area in selected:
            for sub_area in area.subareas.values():
                for process in sub_area.processes.values():
                    rows.append(
                        ExportRow(
                            area_name=area.name,
                            sub_area_name=sub_area.name,
                            process_name=process.name,
                            status_text=process.status.text,
                            notes=process.notes or "",
                        )
                    )
        return rows
