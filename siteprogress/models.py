"""Data models for Site Progress.

This module contains the core data structures used throughout the system:
the process status enumeration, the area / sub-area / process tree and the
flat rows handed to the spreadsheet export.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Status(str, Enum):
    """Tri-state construction status of a process."""

    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"

    @property
    def text(self) -> str:
        """Human-readable label used in notifications and exports."""
        return STATUS_TEXT[self]

    def next(self) -> "Status":
        """Return the status that follows this one in the toggle cycle."""
        return _STATUS_CYCLE[self]

    @classmethod
    def coerce(cls, value: "Status | str") -> "Status":
        """Accept either an enum member or its persisted string value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            raise ValueError(f"Invalid status '{value}'. Expected one of: {allowed}") from None


STATUS_TEXT: Dict[Status, str] = {
    Status.NOT_STARTED: "not started",
    Status.IN_PROGRESS: "in progress",
    Status.COMPLETED: "completed",
}

_STATUS_CYCLE: Dict[Status, Status] = {
    Status.NOT_STARTED: Status.IN_PROGRESS,
    Status.IN_PROGRESS: Status.COMPLETED,
    Status.COMPLETED: Status.NOT_STARTED,
}


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(slots=True)
class Process:
    """A single construction step tracked inside a sub-area."""

    name: str
    status: Status = Status.NOT_STARTED
    notes: str = ""
    created_at: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted dictionary representation."""
        return {
            "name": self.name,
            "status": self.status.value,
            "notes": self.notes,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Process":
        """Create from the persisted dictionary representation."""
        return cls(
            name=data["name"],
            status=Status.coerce(data.get("status", Status.NOT_STARTED.value)),
            notes=data.get("notes") or "",
            created_at=data.get("createdAt") or utc_timestamp(),
        )

    @property
    def status_text(self) -> str:
        return self.status.text


@dataclass(slots=True)
class SubArea:
    """A subdivision of an area holding its processes in creation order."""

    name: str
    processes: Dict[str, Process] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "processes": {pid: process.to_dict() for pid, process in self.processes.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubArea":
        return cls(
            name=data["name"],
            processes={
                pid: Process.from_dict(process)
                for pid, process in (data.get("processes") or {}).items()
            },
        )

    def progress(self) -> Tuple[int, int]:
        """Return ``(completed, total)`` process counts."""
        total = len(self.processes)
        completed = sum(1 for p in self.processes.values() if p.status is Status.COMPLETED)
        return completed, total


@dataclass(slots=True)
class Area:
    """A top-level zone of the construction site."""

    name: str
    subareas: Dict[str, SubArea] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "subareas": {sid: sub.to_dict() for sid, sub in self.subareas.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Area":
        return cls(
            name=data["name"],
            subareas={
                sid: SubArea.from_dict(sub)
                for sid, sub in (data.get("subareas") or {}).items()
            },
        )

    def process_count(self) -> int:
        return sum(len(sub.processes) for sub in self.subareas.values())


@dataclass(frozen=True, slots=True)
class ExportRow:
    """One flattened (area, sub-area, process) triple."""

    area_name: str
    sub_area_name: str
    process_name: str
    status_text: str
    notes: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "area_name": self.area_name,
            "sub_area_name": self.sub_area_name,
            "process_name": self.process_name,
            "status_text": self.status_text,
            "notes": self.notes,
        }

    def as_cells(self) -> List[str]:
        return [self.area_name, self.sub_area_name, self.process_name, self.status_text, self.notes]


# Seeded areas keep fixed ids so persisted snapshots stay addressable
DEFAULT_AREAS: Tuple[Tuple[str, str], ...] = (
    ("main", "Main Building"),
    ("areaA", "Zone A"),
    ("areaB", "Zone B"),
    ("areaC", "Zone C"),
    ("areaD", "Zone D"),
)


def default_areas() -> Dict[str, Area]:
    """Build a fresh copy of the first-run seed."""
    return {area_id: Area(name=name) for area_id, name in DEFAULT_AREAS}


def areas_from_snapshot(data: Dict[str, Any]) -> Dict[str, Area]:
    """Rebuild the area tree from a decoded snapshot, preserving key order."""
    if not isinstance(data, dict):
        raise TypeError(f"Snapshot root must be an object, got {type(data).__name__}")
    return {area_id: Area.from_dict(area) for area_id, area in data.items()}


def areas_to_snapshot(areas: Dict[str, Area]) -> Dict[str, Any]:
    return {area_id: area.to_dict() for area_id, area in areas.items()}


def is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()
