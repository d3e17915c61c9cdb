"""Spreadsheet export of the progress tree.

One sheet per area that has sub-areas, followed by a summary sheet with
every row. Cell contents are written exactly as stored; only sheet titles
are shortened to fit Excel's naming rules.
"""

from __future__ import annotations

import io
import logging
import re
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional, Set

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from .errors import ExportError
from .models import ExportRow
from .progress_logging import log_export_completed, log_operation, log_performance
from .store import ProgressStore

logger = logging.getLogger("siteprogress.export")

MAX_SHEET_TITLE = 31
SUMMARY_SHEET_TITLE = "Summary"
HEADERS = ["Area", "Sub-area", "Process", "Status", "Notes"]
COLUMN_WIDTHS = [20, 24, 32, 14, 48]
FILENAME_PREFIX = "construction-progress"

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
STATUS_FILLS = {
    "not started": PatternFill(start_color="E0E0E0", end_color="E0E0E0", fill_type="solid"),
    "in progress": PatternFill(start_color="F39C12", end_color="F39C12", fill_type="solid"),
    "completed": PatternFill(start_color="27AE60", end_color="27AE60", fill_type="solid"),
}

_INVALID_TITLE_CHARS = re.compile(r"[\\/?*\[\]:]")


def sheet_title(name: str, fallback: str = "Sheet") -> str:
    """Make an area name usable as a worksheet title."""
    cleaned = _INVALID_TITLE_CHARS.sub("_", name).strip("'")
    cleaned = cleaned[:MAX_SHEET_TITLE]
    return cleaned if cleaned.strip() else fallback[:MAX_SHEET_TITLE]


def unique_sheet_title(title: str, used: Set[str]) -> str:
    """Return ``title`` or a numbered variant not yet in ``used``.

    ``used`` holds lower-cased titles and is updated in place. Numbered
    variants are cut so the suffix still fits in 31 characters.
    """
    candidate = title
    counter = 2
    while candidate.lower() in used:
        suffix = f" ({counter})"
        candidate = title[:MAX_SHEET_TITLE - len(suffix)] + suffix
        counter += 1
    used.add(candidate.lower())
    return candidate


def export_filename(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"{FILENAME_PREFIX}_{today.isoformat()}.xlsx"


def _write_rows(ws: Worksheet, rows: Iterable[ExportRow]) -> int:
    for col, header in enumerate(HEADERS, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER

    count = 0
    for row_index, row in enumerate(rows, 2):
        for col, value in enumerate(row.as_cells(), 1):
            cell = ws.cell(row=row_index, column=col)
            # Assign via .value so strings starting with "=" stay text, not formulas
            cell.value = value
            if isinstance(value, str) and value.startswith("="):
                cell.data_type = "s"
            cell.border = THIN_BORDER
        status_cell = ws.cell(row=row_index, column=4)
        status_cell.fill = STATUS_FILLS.get(row.status_text, PatternFill())
        status_cell.alignment = Alignment(horizontal="center")
        count += 1

    for col, width in enumerate(COLUMN_WIDTHS, 1):
        ws.column_dimensions[get_column_letter(col)].width = width
    ws.freeze_panes = "A2"
    return count


def build_workbook(store: ProgressStore) -> Workbook:
    """Lay out the per-area sheets and the summary sheet."""
    wb = Workbook()
    wb.remove(wb.active)
    # The summary title is reserved so no area sheet can take it
    used = {SUMMARY_SHEET_TITLE.lower()}

    for area_id, area in store.areas.items():
        if not area.subareas:
            continue
        ws = wb.create_sheet(unique_sheet_title(sheet_title(area.name, fallback=area_id), used))
        _write_rows(ws, store.flatten(area_id))

    summary = wb.create_sheet(SUMMARY_SHEET_TITLE)
    _write_rows(summary, store.flatten())
    return wb


def workbook_bytes(store: ProgressStore) -> io.BytesIO:
    """Render the workbook into an in-memory buffer."""
    wb = build_workbook(store)
    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf


@log_performance("export_workbook")
def export_workbook(store: ProgressStore, directory: Path | str, today: Optional[date] = None) -> Path:
    """Save the workbook as ``construction-progress_<date>.xlsx`` in ``directory``."""
    target_dir = Path(directory)
    path = target_dir / export_filename(today)
    try:
        with log_operation("export_workbook", path=str(path)):
            target_dir.mkdir(parents=True, exist_ok=True)
            wb = build_workbook(store)
            wb.save(path)
    except Exception as e:
        raise ExportError(f"Could not write {path}: {e}") from e

    sheet_names: List[str] = wb.sheetnames
    log_export_completed(str(path), sheet_count=len(sheet_names), row_count=len(store.flatten()))
    logger.info(f"Exported {len(sheet_names)} sheets to {path}")
    return path
