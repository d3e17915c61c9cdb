"""
Contract tests for the progress store's observable guarantees:
process counts, cascade deletes, the status cycle, partial updates,
snapshot round-trips and verbatim names in flattened rows.
"""

import random

import pytest

from siteprogress.models import ExportRow, Status
from siteprogress.persistence import InMemoryKeyValueStore
from siteprogress.store import ProgressStore


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def store(kv):
    return ProgressStore(kv)


class TestProcessCounts:
    """Counts always match what was actually inserted, before and after deletes."""

    @pytest.mark.parametrize("seed", [1, 7, 42])
    def test_counts_track_random_operations(self, store, seed):
        rng = random.Random(seed)
        expected = {area_id: 0 for area_id in store.areas}
        sub_areas = []  # (area_id, sub_area_id, process_ids)

        for step in range(120):
            choice = rng.random()
            if choice < 0.1:
                area_id = store.add_area(f"Area {step}")
                expected[area_id] = 0
            elif choice < 0.35 or not sub_areas:
                area_id = rng.choice(list(store.areas))
                sub_areas.append((area_id, store.add_sub_area(area_id, f"Sub {step}"), []))
            elif choice < 0.8:
                area_id, sub_id, processes = rng.choice(sub_areas)
                processes.append(store.add_process(area_id, sub_id, f"Proc {step}"))
                expected[area_id] += 1
            elif choice < 0.9:
                index = rng.randrange(len(sub_areas))
                area_id, sub_id, processes = sub_areas.pop(index)
                store.delete_sub_area(area_id, sub_id)
                expected[area_id] -= len(processes)
            else:
                candidates = [entry for entry in sub_areas if entry[2]]
                if not candidates:
                    continue
                area_id, sub_id, processes = rng.choice(candidates)
                store.delete_process(area_id, sub_id, processes.pop())
                expected[area_id] -= 1

            for area_id, count in expected.items():
                assert store.count_processes(area_id) == count


class TestCascadeDelete:
    def test_deleted_sub_area_leaves_no_rows(self, store):
        keep = store.add_sub_area("main", "Keep")
        store.add_process("main", keep, "Stays")
        doomed = store.add_sub_area("main", "Doomed")
        store.add_process("main", doomed, "Gone 1")
        store.add_process("main", doomed, "Gone 2")

        store.delete_sub_area("main", doomed)

        rows = store.flatten()
        assert all(row.sub_area_name != "Doomed" for row in rows)
        assert all(not row.process_name.startswith("Gone") for row in rows)
        assert [row.process_name for row in rows] == ["Stays"]


class TestStatusCycle:
    def test_three_toggles_return_to_not_started(self, store):
        sub_id = store.add_sub_area("main", "Lobby")
        process_id = store.add_process("main", sub_id, "Pour")

        seen = [store.toggle_process_status("main", sub_id, process_id) for _ in range(3)]

        assert seen == [Status.IN_PROGRESS, Status.COMPLETED, Status.NOT_STARTED]
        assert store.get_process("main", sub_id, process_id).status is Status.NOT_STARTED


class TestPartialUpdate:
    def test_notes_only_update(self, store):
        sub_id = store.add_sub_area("main", "Lobby")
        process_id = store.add_process("main", sub_id, "Pour")
        store.toggle_process_status("main", sub_id, process_id)

        store.update_process("main", sub_id, process_id, notes="x")

        process = store.get_process("main", sub_id, process_id)
        assert (process.name, process.status, process.notes) == ("Pour", Status.IN_PROGRESS, "x")


class TestRoundTrip:
    def test_reload_yields_identical_flatten(self, store, kv):
        extra = store.add_area("Annex")
        for area_id in ("areaC", extra, "main"):
            sub_id = store.add_sub_area(area_id, f"{area_id} sub")
            for name in ("b", "a", "c"):
                process_id = store.add_process(area_id, sub_id, f"{area_id}-{name}", notes=name * 2)
            store.toggle_process_status(area_id, sub_id, process_id)

        reloaded = ProgressStore(kv)

        assert reloaded.flatten() == store.flatten()
        assert reloaded.to_snapshot() == store.to_snapshot()


class TestScenario:
    """First-run scenario: one sub-area with one process under the main building."""

    def test_lobby_scenario(self, store):
        assert len(store.areas) == 5

        sub_id = store.add_sub_area("main", "Lobby")
        assert store.areas["main"].subareas[sub_id].name == "Lobby"
        assert store.areas["main"].subareas[sub_id].processes == {}
        assert store.count_processes("main") == 0

        process_id = store.add_process("main", sub_id, "Pour foundation")
        assert store.count_processes("main") == 1
        assert store.get_process("main", sub_id, process_id).status is Status.NOT_STARTED

        assert store.flatten() == [
            ExportRow(
                area_name="Main Building",
                sub_area_name="Lobby",
                process_name="Pour foundation",
                status_text="not started",
                notes="",
            )
        ]


class TestVerbatimNames:
    @pytest.mark.parametrize("name", [
        "Tab\tseparated",
        'Double "quoted"',
        "Single 'quoted'",
        "Comma, semicolon; pipe|",
        "A very long process name that is well past thirty-one characters",
    ])
    def test_names_survive_flatten(self, store, kv, name):
        area_id = store.add_area(name)
        sub_id = store.add_sub_area(area_id, name)
        store.add_process(area_id, sub_id, name, notes=name)

        for source in (store, ProgressStore(kv)):
            row = source.flatten(area_id)[0]
            assert row.area_name == name
            assert row.sub_area_name == name
            assert row.process_name == name
            assert row.notes == name
