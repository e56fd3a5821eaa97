import unittest

from src.allocprep.entities import EntityCounts
from src.allocprep.readiness import check_export_readiness
from src.allocprep.validation import validate


def _clean():
    return validate(
        [{"ClientID": "C1", "ClientName": "A", "PriorityLevel": 3}],
        [{"WorkerID": "W1", "WorkerName": "B", "Skills": "x", "AvailableSlots": "1"}],
        [{"TaskID": "T1", "TaskName": "C", "Duration": 1, "RequiredSkills": "x"}],
    )


class TestExportReadiness(unittest.TestCase):
    def test_ready_when_valid_and_loaded(self):
        readiness = check_export_readiness(EntityCounts(1, 1, 1), _clean())
        self.assertTrue(readiness.ok)
        self.assertEqual(readiness.reasons, [])
        self.assertEqual([g.gate for g in readiness.gates], ["validation_passed", "data_loaded"])

    def test_warnings_alone_do_not_block(self):
        result = validate([], [], [{"TaskID": "T1", "TaskName": "C", "Duration": 1, "RequiredSkills": "x"}])
        self.assertEqual(result.total_warnings, 1)
        readiness = check_export_readiness(EntityCounts(0, 0, 1), result)
        self.assertTrue(readiness.ok)
        self.assertEqual(readiness.gates[0].details, "errors=0,warnings=1")

    def test_single_error_blocks_even_with_warnings(self):
        result = validate(
            [{"ClientID": "C1", "ClientName": "A", "PriorityLevel": 9}],
            [],
            [{"TaskID": "T1", "TaskName": "C", "Duration": 1, "RequiredSkills": "x"}],
        )
        self.assertEqual(result.total_errors, 1)
        self.assertEqual(result.total_warnings, 1)
        readiness = check_export_readiness(EntityCounts(1, 0, 1), result)
        self.assertFalse(readiness.ok)
        self.assertEqual(readiness.reasons, ["1 validation error(s) must be resolved"])

    def test_zero_entities_blocks(self):
        readiness = check_export_readiness(EntityCounts(0, 0, 0), validate())
        self.assertFalse(readiness.ok)
        self.assertEqual(readiness.reasons, ["no data loaded"])

    def test_all_failing_gates_are_reported(self):
        readiness = check_export_readiness(EntityCounts(0, 0, 0), None)
        self.assertFalse(readiness.ok)
        self.assertEqual(readiness.reasons, ["validation has not been run", "no data loaded"])


if __name__ == "__main__":
    unittest.main()
