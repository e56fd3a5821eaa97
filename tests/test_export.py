import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from src.allocprep.entities import EntityStore
from src.allocprep.export import (
    RULES_FILENAME,
    ExportBlockedError,
    build_rule_bundle,
    entity_csv,
    write_export,
)
from src.allocprep.priorities import PriorityWeights
from src.allocprep.rules import RuleDraft, RuleRegistry, RuleType
from src.allocprep.validation import validate_snapshot

FIXED_NOW = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)


def _loaded_store():
    store = EntityStore()
    store.load("clients", [{"ClientID": "C1", "ClientName": "Acme, Inc.", "PriorityLevel": 3, "RequestedTaskIDs": "T1,T2"}])
    store.load("workers", [{"WorkerID": "W1", "WorkerName": "Ann", "Skills": "python", "AvailableSlots": "1,2"}])
    store.load(
        "tasks",
        [
            {"TaskID": "T1", "TaskName": "Design", "Duration": 1, "RequiredSkills": "python"},
            {"TaskID": "T2", "TaskName": "Build", "Duration": 2, "RequiredSkills": "python"},
        ],
    )
    return store


class TestRuleBundle(unittest.TestCase):
    def test_bundle_shape_and_metadata(self):
        store = _loaded_store()
        registry = RuleRegistry(store, clock=lambda: FIXED_NOW)
        registry.add_rule(RuleDraft(RuleType.CO_RUN, {"tasks": ["T1", "T2"]}))
        validation = validate_snapshot(store.snapshot())

        bundle = build_rule_bundle(registry.list_rules(), PriorityWeights(), validation, exported_at=FIXED_NOW)
        self.assertEqual(bundle["rules"][0]["type"], "coRun")
        self.assertEqual(bundle["priorities"]["urgency"], 60)
        self.assertEqual(
            bundle["metadata"],
            {
                "exportedAt": "2025-03-01T09:30:00Z",
                "version": "1.0",
                "totalRules": 1,
                "validationStatus": "passed",
            },
        )

    def test_status_failed_without_validation(self):
        bundle = build_rule_bundle([], PriorityWeights(), None, version="2.0", exported_at=FIXED_NOW)
        self.assertEqual(bundle["metadata"]["validationStatus"], "failed")
        self.assertEqual(bundle["metadata"]["version"], "2.0")
        self.assertEqual(bundle["rules"], [])


class TestEntityCsv(unittest.TestCase):
    def test_values_with_commas_are_quoted(self):
        text = entity_csv(_loaded_store().rows("clients"))
        lines = text.splitlines()
        self.assertEqual(lines[0], "ClientID,ClientName,PriorityLevel,RequestedTaskIDs")
        self.assertEqual(lines[1], 'C1,"Acme, Inc.",3,"T1,T2"')

    def test_missing_cells_are_blank(self):
        store = EntityStore()
        store.load("tasks", [{"TaskID": "T1", "TaskName": "Design"}, {"TaskID": "T2"}])
        self.assertEqual(entity_csv(store.rows("tasks")).splitlines()[2], "T2,")

    def test_empty_collection(self):
        self.assertEqual(entity_csv(()), "")


class TestWriteExport(unittest.TestCase):
    def test_blocked_export_writes_nothing(self):
        store = EntityStore()
        store.load("clients", [{"ClientID": "C1", "ClientName": "A", "PriorityLevel": 0}])
        snapshot = store.snapshot()
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ExportBlockedError) as ctx:
                write_export(tmp, snapshot, [], PriorityWeights(), validate_snapshot(snapshot))
            self.assertEqual(list(Path(tmp).iterdir()), [])
        self.assertIn("1 validation error(s) must be resolved", ctx.exception.reasons)

    def test_ready_export_writes_csvs_and_bundle(self):
        store = _loaded_store()
        snapshot = store.snapshot()
        with tempfile.TemporaryDirectory() as tmp:
            written = write_export(Path(tmp) / "out", snapshot, [], PriorityWeights(), validate_snapshot(snapshot))
            names = [p.name for p in written]
            self.assertEqual(
                names,
                ["clients-validated.csv", "workers-validated.csv", "tasks-validated.csv", RULES_FILENAME],
            )
            bundle = json.loads((Path(tmp) / "out" / RULES_FILENAME).read_text(encoding="utf-8"))
            self.assertEqual(bundle["metadata"]["validationStatus"], "passed")
            self.assertEqual(bundle["metadata"]["totalRules"], 0)

    def test_empty_collections_are_skipped(self):
        store = EntityStore()
        store.load("tasks", [{"TaskID": "T1", "TaskName": "Design", "Duration": 1, "RequiredSkills": ""}])
        snapshot = store.snapshot()
        with tempfile.TemporaryDirectory() as tmp:
            written = write_export(tmp, snapshot, [], PriorityWeights(), validate_snapshot(snapshot))
            self.assertEqual([p.name for p in written], ["tasks-validated.csv", RULES_FILENAME])


if __name__ == "__main__":
    unittest.main()
