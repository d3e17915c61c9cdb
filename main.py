"""MCP server exposing construction progress tracking tools."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.resources import TextResource

from siteprogress import (
    EntityNotFoundError,
    JsonFileKeyValueStore,
    ProgressController,
    ProgressStore,
    RecordingNotifier,
)
from siteprogress.persistence import STORAGE_DIR_ENV, DEFAULT_STORAGE_DIR, storage_dir
from siteprogress.progress_logging import setup_logging

mcp = FastMCP("site-progress")

ROOT_ENV = "SITEPROGRESS_ROOT"
LOG_LEVEL_ENV = "SITEPROGRESS_LOG_LEVEL"
LOG_FILE_ENV = "SITEPROGRESS_LOG_FILE"
EXPORT_DIR_ENV = "SITEPROGRESS_EXPORT_DIR"


@dataclass
class Session:
    """Store and notifier shared by every tool call against one root."""

    root: Path
    store: ProgressStore
    notifier: RecordingNotifier

    def controller(self, confirmed: bool = True) -> ProgressController:
        return ProgressController(self.store, confirm=lambda prompt: confirmed)


_SESSIONS: Dict[Path, Session] = {}


def _marker_name() -> str:
    return os.getenv(STORAGE_DIR_ENV) or DEFAULT_STORAGE_DIR


def _locate_workspace_root() -> Optional[Path]:
    cwd = Path.cwd().resolve()
    for base in [cwd, *cwd.parents]:
        if (base / _marker_name()).exists():
            return base
    return None


def _resolve_root(root: Optional[str]) -> Path:
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    env_root = os.getenv(ROOT_ENV)
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.exists():
            raise ValueError(
                f"Environment variable {ROOT_ENV} points to '{env_root}', which does not exist."
            )
        return env_path

    return _locate_workspace_root() or Path.cwd().resolve()


def _session(root: Optional[str]) -> Session:
    resolved = _resolve_root(root)
    session = _SESSIONS.get(resolved)
    if session is None:
        notifier = RecordingNotifier()
        store = ProgressStore(JsonFileKeyValueStore.for_root(resolved), notify=notifier)
        session = Session(root=resolved, store=store, notifier=notifier)
        _SESSIONS[resolved] = session
    return session


def _respond(session: Session, payload: Dict[str, Any]) -> Dict[str, Any]:
    payload["notifications"] = session.notifier.drain()
    return payload


def _failure(session: Session, error: Exception, suggestion: str) -> Dict[str, Any]:
    return _respond(session, {"error": str(error), "suggestion": suggestion})


def _area_summary(session: Session, area_id: str) -> Dict[str, Any]:
    area = session.store.get_area(area_id)
    return {
        "area_id": area_id,
        "name": area.name,
        "sub_area_count": len(area.subareas),
        "process_count": area.process_count(),
        "selected": session.store.current_area == area_id,
    }


def _area_detail(session: Session, area_id: str) -> Dict[str, Any]:
    area = session.store.get_area(area_id)
    sub_areas: List[Dict[str, Any]] = []
    for sub_area_id, sub_area in area.subareas.items():
        completed, total = sub_area.progress()
        sub_areas.append({
            "sub_area_id": sub_area_id,
            "name": sub_area.name,
            "completed": completed,
            "total": total,
            "processes": [
                {"process_id": process_id, **process.to_dict(), "status_text": process.status_text}
                for process_id, process in sub_area.processes.items()
            ],
        })
    return {"area_id": area_id, "name": area.name, "sub_areas": sub_areas}


NOT_FOUND_TIP = "Use list_areas and get_area to look up valid ids"
AREAS_URI = "site-progress://areas"


def _text_resource(text: str) -> TextResource:
    return TextResource(uri=AREAS_URI, name="areas", text=text)


@mcp.tool()
def list_areas(root: Optional[str] = None) -> Dict[str, Any]:
    """List every area with its sub-area and process counts, in display order."""

    session = _session(root)
    areas = [_area_summary(session, area_id) for area_id in session.store.areas]
    return _respond(session, {"areas": areas, "current_area": session.store.current_area})


@mcp.resource(AREAS_URI)
def resource_areas():
    """Text overview of areas and their progress for the detected project root."""

    session = _session(None)
    if not session.store.areas:
        return _text_resource("No areas recorded yet.")

    lines = ["Construction Progress"]
    for area_id, area in session.store.areas.items():
        lines.append("")
        lines.append(f"- {area.name} ({area_id}): {area.process_count()} processes")
        for sub_area in area.subareas.values():
            completed, total = sub_area.progress()
            lines.append(f"  {sub_area.name}: {completed}/{total} completed")
    return _text_resource("\n".join(lines))


@mcp.tool()
def get_area(area_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Return an area's sub-areas and processes with per-sub-area completion."""

    session = _session(root)
    try:
        return _respond(session, _area_detail(session, area_id))
    except EntityNotFoundError as e:
        return _failure(session, e, NOT_FOUND_TIP)


@mcp.tool()
def switch_area(area_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Select the area that add_sub_area targets when no area_id is given."""

    session = _session(root)
    try:
        return _respond(session, session.controller().switch_area(area_id))
    except EntityNotFoundError as e:
        return _failure(session, e, NOT_FOUND_TIP)


@mcp.tool()
def add_area(name: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Create a new area with no sub-areas."""

    session = _session(root)
    controller = session.controller()
    controller.open_add_area()
    return _respond(session, controller.confirm(name))


@mcp.tool()
def delete_area(area_id: str, confirmed: bool = False, root: Optional[str] = None) -> Dict[str, Any]:
    """Delete an area and everything under it. Requires confirmed=True."""

    session = _session(root)
    if not confirmed:
        return _respond(session, {"success": False, "message": "Deletion not confirmed; pass confirmed=True"})
    try:
        session.store.delete_area(area_id)
    except EntityNotFoundError as e:
        return _failure(session, e, NOT_FOUND_TIP)
    return _respond(session, {"success": True, "area_id": area_id})


@mcp.tool()
def add_sub_area(name: str, area_id: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Add a sub-area to the given area, or to the currently selected one."""

    session = _session(root)
    controller = session.controller()
    try:
        if area_id is not None:
            controller.switch_area(area_id)
        controller.open_add_sub_area()
    except EntityNotFoundError as e:
        return _failure(session, e, NOT_FOUND_TIP)
    return _respond(session, controller.confirm(name))


@mcp.tool()
def update_sub_area(area_id: str, sub_area_id: str, name: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Rename a sub-area."""

    session = _session(root)
    controller = session.controller()
    try:
        controller.open_edit_sub_area(area_id, sub_area_id)
    except EntityNotFoundError as e:
        return _failure(session, e, NOT_FOUND_TIP)
    return _respond(session, controller.confirm(name))


@mcp.tool()
def delete_sub_area(area_id: str, sub_area_id: str, confirmed: bool = False, root: Optional[str] = None) -> Dict[str, Any]:
    """Delete a sub-area and all of its processes. Requires confirmed=True."""

    session = _session(root)
    try:
        removed = session.controller(confirmed).request_delete_sub_area(area_id, sub_area_id)
    except EntityNotFoundError as e:
        return _failure(session, e, NOT_FOUND_TIP)
    return _respond(session, {"success": removed, "area_id": area_id, "sub_area_id": sub_area_id})


@mcp.tool()
def add_process(
    area_id: str,
    sub_area_id: str,
    name: str,
    notes: str = "",
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Add a process to a sub-area. New processes start as not started."""

    session = _session(root)
    controller = session.controller()
    try:
        controller.open_add_process(area_id, sub_area_id)
    except EntityNotFoundError as e:
        return _failure(session, e, NOT_FOUND_TIP)
    return _respond(session, controller.confirm(name, notes=notes))


@mcp.tool()
def update_process(
    area_id: str,
    sub_area_id: str,
    process_id: str,
    name: Optional[str] = None,
    notes: Optional[str] = None,
    status: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Edit a process. Omitted fields keep their current values.

    status is one of 'not-started', 'in-progress', 'completed'.
    """

    session = _session(root)
    controller = session.controller()
    try:
        current = controller.open_edit_process(area_id, sub_area_id, process_id)
        return _respond(session, controller.confirm(
            name if name is not None else current["name"],
            notes=notes,
            status=status,
        ))
    except EntityNotFoundError as e:
        return _failure(session, e, NOT_FOUND_TIP)
    except ValueError as e:
        return _failure(session, e, "Use one of: not-started, in-progress, completed")


@mcp.tool()
def delete_process(
    area_id: str,
    sub_area_id: str,
    process_id: str,
    confirmed: bool = False,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Delete a process. Requires confirmed=True."""

    session = _session(root)
    try:
        removed = session.controller(confirmed).request_delete_process(area_id, sub_area_id, process_id)
    except EntityNotFoundError as e:
        return _failure(session, e, NOT_FOUND_TIP)
    return _respond(session, {"success": removed, "process_id": process_id})


@mcp.tool()
def toggle_process_status(area_id: str, sub_area_id: str, process_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Advance a process: not started -> in progress -> completed -> not started."""

    session = _session(root)
    try:
        status = session.controller().toggle(area_id, sub_area_id, process_id)
    except EntityNotFoundError as e:
        return _failure(session, e, NOT_FOUND_TIP)
    return _respond(session, {"process_id": process_id, "status": status.value, "status_text": status.text})


@mcp.tool()
def count_processes(area_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Count processes across every sub-area of an area."""

    session = _session(root)
    try:
        count = session.store.count_processes(area_id)
    except EntityNotFoundError as e:
        return _failure(session, e, NOT_FOUND_TIP)
    return _respond(session, {"area_id": area_id, "count": count})


@mcp.tool()
def flatten_progress(area_id: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Return one row per process: area, sub-area, process, status text and notes."""

    session = _session(root)
    try:
        rows = session.store.flatten(area_id)
    except EntityNotFoundError as e:
        return _failure(session, e, NOT_FOUND_TIP)
    return _respond(session, {"rows": [row.to_dict() for row in rows], "total_count": len(rows)})


@mcp.tool()
def export_excel(directory: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Write a dated .xlsx workbook with one sheet per area plus a summary sheet."""

    session = _session(root)
    target = directory or os.getenv(EXPORT_DIR_ENV) or str(storage_dir(session.root) / "exports")
    return _respond(session, session.controller().export_to_excel(target))


def configure_logging() -> None:
    log_file = os.getenv(LOG_FILE_ENV)
    setup_logging(
        os.getenv(LOG_LEVEL_ENV, "INFO").upper(),
        Path(log_file).expanduser() if log_file else None,
    )


if __name__ == "__main__":
    configure_logging()
    mcp.run(transport="stdio")
