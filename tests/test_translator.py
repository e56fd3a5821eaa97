import asyncio
import unittest

from src.allocprep.entities import EntityKind, EntityStore
from src.allocprep.rules import RuleType
from src.allocprep.translator import (
    ANY_FIELD,
    FilterCondition,
    FilterOperator,
    FilterSpec,
    LocalKeywordTranslator,
    ModificationIntent,
    TranslationContext,
    TranslationKind,
    apply_filter,
    keyword_search,
    payload_from_dict,
)


def _context():
    store = EntityStore()
    store.load(
        "clients",
        [
            {"ClientID": "C1", "ClientName": "Acme", "PriorityLevel": 5, "RequestedTaskIDs": "T1,T2", "GroupTag": "enterprise"},
            {"ClientID": "C2", "ClientName": "Globex", "PriorityLevel": 2, "RequestedTaskIDs": "T1", "GroupTag": "smb"},
        ],
    )
    store.load(
        "workers",
        [{"WorkerID": "W1", "WorkerName": "Ann", "Skills": "python", "AvailableSlots": "1,2", "WorkerGroup": "sales"}],
    )
    store.load(
        "tasks",
        [
            {"TaskID": "T1", "TaskName": "Design", "Duration": 2, "RequiredSkills": "python"},
            {"TaskID": "T2", "TaskName": "Build", "Duration": 6, "RequiredSkills": "rust"},
            {"TaskID": "T3", "TaskName": "Ship", "Duration": 1, "RequiredSkills": "python"},
        ],
    )
    return store, TranslationContext(store.snapshot())


def _translate(text, kind, context):
    return asyncio.run(LocalKeywordTranslator().translate(text, kind, context))


class TestRuleInference(unittest.TestCase):
    def setUp(self):
        _store, self.context = _context()

    def test_run_together(self):
        result = _translate("T1 and T2 run together", TranslationKind.RULE_DRAFT, self.context)
        self.assertTrue(result.ok)
        self.assertEqual(result.payload.rule_type, RuleType.CO_RUN)
        self.assertEqual(result.payload.params["tasks"], ["T1", "T2"])
        self.assertEqual(result.confidence, 0.9)

    def test_task_names_resolve_to_ids(self):
        result = _translate("Design and Ship should co-run", TranslationKind.RULE_DRAFT, self.context)
        self.assertEqual(result.payload.params["tasks"], ["T1", "T3"])

    def test_load_limit(self):
        result = _translate("Set a maximum of 3 slots per phase for sales", TranslationKind.RULE_DRAFT, self.context)
        self.assertEqual(result.payload.rule_type, RuleType.LOAD_LIMIT)
        self.assertEqual(result.payload.params, {"workerGroup": "sales", "maxSlotsPerPhase": 3})

    def test_precedence_after_swaps_order(self):
        result = _translate("T3 must happen after T1", TranslationKind.RULE_DRAFT, self.context)
        self.assertEqual(result.payload.rule_type, RuleType.PRECEDENCE)
        self.assertEqual(result.payload.params, {"before": "T1", "after": "T3"})
        self.assertEqual(result.confidence, 0.85)

    def test_phase_window_ignores_digits_in_task_id(self):
        result = _translate("T2 only in phase 1 or 3", TranslationKind.RULE_DRAFT, self.context)
        self.assertEqual(result.payload.rule_type, RuleType.PHASE_WINDOW)
        self.assertEqual(result.payload.params, {"taskId": "T2", "allowedPhases": [1, 3]})

    def test_unrecognized_rule_is_neutral(self):
        result = _translate("make everything better", TranslationKind.RULE_DRAFT, self.context)
        self.assertFalse(result.ok)
        self.assertIsNone(result.payload)
        self.assertEqual(result.confidence, 0.0)

    def test_blank_text_is_neutral(self):
        self.assertFalse(_translate("   ", TranslationKind.FILTER, self.context).ok)


class TestFilterParsing(unittest.TestCase):
    def setUp(self):
        self.store, self.context = _context()

    def test_numeric_comparison(self):
        result = _translate("PriorityLevel greater than 3", TranslationKind.FILTER, self.context)
        spec = result.payload
        self.assertEqual(result.confidence, 0.85)
        self.assertEqual(spec.entity, EntityKind.CLIENTS)
        self.assertEqual(spec.conditions, (FilterCondition("PriorityLevel", FilterOperator.GREATER, "3"),))
        self.assertEqual(apply_filter(spec, self.store.rows("clients")), [0])

    def test_spaced_column_name_matches(self):
        result = _translate("tasks with duration less than 5", TranslationKind.FILTER, self.context)
        spec = result.payload
        self.assertEqual(spec.entity, EntityKind.TASKS)
        self.assertEqual(apply_filter(spec, self.store.rows("tasks")), [0, 2])

    def test_free_text_falls_back_to_keyword_search(self):
        result = _translate("globex", TranslationKind.FILTER, self.context)
        self.assertEqual(result.confidence, 0.5)
        self.assertEqual(result.payload.conditions[0].field, ANY_FIELD)
        self.assertEqual(apply_filter(result.payload, self.store.rows("clients")), [1])


class TestApplyFilter(unittest.TestCase):
    def setUp(self):
        self.store, _context_ = _context()

    def test_or_logic(self):
        spec = FilterSpec(
            conditions=(
                FilterCondition("TaskID", FilterOperator.EQUALS, "T1"),
                FilterCondition("RequiredSkills", FilterOperator.CONTAINS, "rust"),
            ),
            logic="or",
        )
        self.assertEqual(apply_filter(spec, self.store.rows("tasks")), [0, 1])

    def test_numeric_equality_ignores_formatting(self):
        spec = FilterSpec(conditions=(FilterCondition("Duration", FilterOperator.EQUALS, "2.0"),))
        self.assertEqual(apply_filter(spec, self.store.rows("tasks")), [0])

    def test_empty_spec_matches_everything(self):
        self.assertEqual(apply_filter(FilterSpec(), self.store.rows("tasks")), [0, 1, 2])
        self.assertEqual(keyword_search(self.store.rows("tasks"), ""), [0, 1, 2])

    def test_missing_column_never_matches(self):
        spec = FilterSpec(conditions=(FilterCondition("Region", FilterOperator.EQUALS, "EU"),))
        self.assertEqual(apply_filter(spec, self.store.rows("clients")), [])


class TestModificationParsing(unittest.TestCase):
    def setUp(self):
        _store, self.context = _context()

    def test_update_with_condition(self):
        result = _translate("Set PriorityLevel to 5 where ClientID is C2", TranslationKind.MODIFICATION, self.context)
        intent = result.payload
        self.assertIsInstance(intent, ModificationIntent)
        self.assertEqual(result.confidence, 0.9)
        self.assertEqual(intent.action, "update")
        self.assertEqual(intent.entity, EntityKind.CLIENTS)
        self.assertEqual(dict(intent.changes), {"PriorityLevel": 5})
        self.assertEqual(intent.filters.conditions, (FilterCondition("ClientID", FilterOperator.EQUALS, "c2"),))

    def test_update_without_condition_is_tentative(self):
        result = _translate("change Duration to 3", TranslationKind.MODIFICATION, self.context)
        self.assertEqual(result.payload.entity, EntityKind.TASKS)
        self.assertEqual(result.confidence, 0.6)

    def test_delete_with_condition(self):
        result = _translate("delete tasks where Duration greater than 5", TranslationKind.MODIFICATION, self.context)
        self.assertEqual(result.payload.action, "delete")
        self.assertEqual(result.payload.entity, EntityKind.TASKS)
        self.assertEqual(result.confidence, 0.85)

    def test_unknown_column_is_neutral(self):
        result = _translate("set Colour to red", TranslationKind.MODIFICATION, self.context)
        self.assertFalse(result.ok)
        self.assertIn("Colour", result.message)


class TestInsights(unittest.TestCase):
    def test_summary_mentions_gaps(self):
        _store, context = _context()
        result = _translate("what stands out?", TranslationKind.INSIGHT, context)
        insight = result.payload
        self.assertEqual(insight.data_points, 6)
        self.assertIn("2 clients, 1 workers and 3 tasks", insight.answer)
        self.assertIn("Add workers covering: rust", insight.suggestions)
        self.assertIn("Tasks not requested by any client: T3", insight.suggestions)

    def test_no_data_is_neutral(self):
        result = _translate("anything?", TranslationKind.INSIGHT, TranslationContext())
        self.assertFalse(result.ok)
        self.assertEqual(result.message, "no data loaded")


class TestPayloadDecoding(unittest.TestCase):
    def test_filter_payload(self):
        spec = payload_from_dict(
            TranslationKind.FILTER,
            {"entity": "workers", "filters": [{"field": "Skills", "operator": "contains", "value": "python"}]},
        )
        self.assertEqual(spec.entity, EntityKind.WORKERS)
        self.assertEqual(spec.conditions[0].operator, FilterOperator.CONTAINS)

    def test_malformed_payloads_raise(self):
        with self.assertRaises(ValueError):
            payload_from_dict(TranslationKind.FILTER, {"filters": [], "logic": "xor"})
        with self.assertRaises(ValueError):
            payload_from_dict(TranslationKind.MODIFICATION, {"action": "merge", "entity": "tasks"})
        with self.assertRaises(KeyError):
            payload_from_dict(TranslationKind.INSIGHT, {"suggestions": []})


if __name__ == "__main__":
    unittest.main()
