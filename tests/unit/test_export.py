"""Unit tests for the spreadsheet export."""

from datetime import date
from unittest.mock import patch

import pytest
from openpyxl import load_workbook

from siteprogress.errors import ExportError
from siteprogress.export import (
    HEADERS,
    MAX_SHEET_TITLE,
    SUMMARY_SHEET_TITLE,
    build_workbook,
    export_filename,
    export_workbook,
    sheet_title,
    unique_sheet_title,
    workbook_bytes,
)
from siteprogress.persistence import InMemoryKeyValueStore
from siteprogress.store import ProgressStore


@pytest.fixture
def store():
    return ProgressStore(InMemoryKeyValueStore())


@pytest.fixture
def populated(store):
    lobby = store.add_sub_area("main", "Lobby")
    pour = store.add_process("main", lobby, "Pour foundation")
    store.add_process("main", lobby, "Tile floor", "grey\ttiles")
    store.toggle_process_status("main", lobby, pour)
    stair = store.add_sub_area("areaC", "Stair")
    store.add_process("areaC", stair, "Rail")
    return store


def _values(ws):
    return [list(row) for row in ws.iter_rows(values_only=True)]


class TestSheetTitle:
    """Test cases for worksheet title sanitizing."""

    def test_short_name_unchanged(self):
        assert sheet_title("Main Building") == "Main Building"

    def test_truncates_to_limit(self):
        title = sheet_title("x" * 40)

        assert len(title) == MAX_SHEET_TITLE == 31

    def test_replaces_forbidden_characters(self):
        assert sheet_title("Block A/B: [east]?") == "Block A_B_ _east__"

    def test_blank_falls_back(self):
        assert sheet_title("   ", fallback="area_1") == "area_1"


class TestFilename:
    def test_dated_filename(self):
        assert export_filename(date(2024, 3, 9)) == "construction-progress_2024-03-09.xlsx"


class TestBuildWorkbook:
    """Test cases for workbook layout."""

    def test_sheets_skip_empty_areas(self, populated):
        wb = build_workbook(populated)

        assert wb.sheetnames == ["Main Building", "Zone C", SUMMARY_SHEET_TITLE]

    def test_empty_store_has_only_summary(self, store):
        wb = build_workbook(store)

        assert wb.sheetnames == [SUMMARY_SHEET_TITLE]
        assert _values(wb[SUMMARY_SHEET_TITLE]) == [HEADERS]

    def test_area_sheet_rows(self, populated):
        ws = build_workbook(populated)["Main Building"]

        assert _values(ws) == [
            HEADERS,
            ["Main Building", "Lobby", "Pour foundation", "in progress", ""],
            ["Main Building", "Lobby", "Tile floor", "not started", "grey\ttiles"],
        ]

    def test_summary_has_every_row(self, populated):
        ws = build_workbook(populated)[SUMMARY_SHEET_TITLE]

        rows = _values(ws)
        assert rows[0] == HEADERS
        assert [r[2] for r in rows[1:]] == ["Pour foundation", "Tile floor", "Rail"]

    def test_area_with_empty_sub_area_still_gets_sheet(self, store):
        store.add_sub_area("areaA", "Empty")

        wb = build_workbook(store)

        assert wb.sheetnames == ["Zone A", SUMMARY_SHEET_TITLE]
        assert _values(wb["Zone A"]) == [HEADERS]

    def test_long_area_name_truncated_only_in_title(self, store):
        long_name = "North Tower Podium Level Retail Wing"
        area_id = store.add_area(long_name)
        sub_id = store.add_sub_area(area_id, "Shopfront")
        store.add_process(area_id, sub_id, "Glazing")

        wb = build_workbook(store)

        title = long_name[:31]
        assert title in wb.sheetnames
        assert wb[title]["A2"].value == long_name

    def test_colliding_long_titles_stay_within_limit(self, store):
        long_name = "Building North Wing Level Three Extension"
        for _ in range(3):
            area_id = store.add_area(long_name)
            store.add_sub_area(area_id, "Core")

        wb = build_workbook(store)

        assert wb.sheetnames == [
            long_name[:MAX_SHEET_TITLE],
            long_name[:MAX_SHEET_TITLE - 4] + " (2)",
            long_name[:MAX_SHEET_TITLE - 4] + " (3)",
            SUMMARY_SHEET_TITLE,
        ]
        assert all(len(name) <= MAX_SHEET_TITLE for name in wb.sheetnames)

    @pytest.mark.parametrize("name", ["Summary", "SUMMARY"])
    def test_area_named_like_summary_keeps_summary_last(self, store, name):
        area_id = store.add_area(name)
        sub_id = store.add_sub_area(area_id, "Roof")
        store.add_process(area_id, sub_id, "Membrane")

        wb = build_workbook(store)

        assert wb.sheetnames == [f"{name} (2)", SUMMARY_SHEET_TITLE]
        assert wb[SUMMARY_SHEET_TITLE]["C2"].value == "Membrane"


class TestUniqueSheetTitle:
    def test_unused_title_kept(self):
        used = set()

        assert unique_sheet_title("Zone A", used) == "Zone A"
        assert used == {"zone a"}

    def test_collision_is_case_insensitive(self):
        used = {"zone a"}

        assert unique_sheet_title("ZONE A", used) == "ZONE A (2)"


class TestExportWorkbook:
    """Test cases for writing the workbook to disk."""

    def test_writes_file(self, populated, tmp_path):
        path = export_workbook(populated, tmp_path / "out", today=date(2024, 5, 1))

        assert path == tmp_path / "out" / "construction-progress_2024-05-01.xlsx"
        wb = load_workbook(path)
        assert wb.sheetnames == ["Main Building", "Zone C", SUMMARY_SHEET_TITLE]
        assert wb["Zone C"]["C2"].value == "Rail"

    def test_special_characters_survive(self, store, tmp_path):
        area_id = store.add_area('Block "B"')
        sub_id = store.add_sub_area(area_id, "Level\t2")
        store.add_process(area_id, sub_id, "Seal 'joints'", 'say "hi"')

        path = export_workbook(store, tmp_path)

        row = list(load_workbook(path)[SUMMARY_SHEET_TITLE].iter_rows(min_row=2, values_only=True))[0]
        assert row == ('Block "B"', "Level\t2", "Seal 'joints'", "not started", 'say "hi"')

    def test_failure_wrapped_in_export_error(self, populated, tmp_path):
        with patch("siteprogress.export.build_workbook", side_effect=RuntimeError("disk full")):
            with pytest.raises(ExportError, match="disk full"):
                export_workbook(populated, tmp_path)

    def test_workbook_bytes(self, populated):
        buf = workbook_bytes(populated)

        wb = load_workbook(buf)
        assert SUMMARY_SHEET_TITLE in wb.sheetnames
