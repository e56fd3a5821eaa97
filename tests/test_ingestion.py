import tempfile
import unittest
from pathlib import Path

from openpyxl import Workbook

from src.allocprep.entities import EntityKind, Worker
from src.allocprep.ingestion import ContractError, canonical_header, load_entity_csv, load_entity_workbook


class TestWorkbookIngestion(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)

    def _write_workbook(self, sheets: dict[str, list[list[object]]]) -> Path:
        path = Path(self._tmp.name) / "data.xlsx"
        wb = Workbook()
        wb.remove(wb.active)
        for title, rows in sheets.items():
            ws = wb.create_sheet(title)
            for row in rows:
                ws.append(row)
        wb.save(path)
        return path

    def test_loads_entity_sheets_and_renames_headers(self):
        path = self._write_workbook(
            {
                "Clients": [
                    ["Client ID", "Name", "Priority", "Requested Tasks"],
                    ["C1", "Acme", 3, "T1"],
                    ["C2", " Globex ", 4, "T1,T2"],
                ],
                "Task List": [
                    ["TaskID", "TaskName", "Duration", "Skills"],
                    ["T1", "Design", 2, "python"],
                ],
                "Notes": [["anything"]],
            }
        )
        found, reports = load_entity_workbook(path)
        self.assertEqual(set(found), {EntityKind.CLIENTS, EntityKind.TASKS})
        self.assertEqual(
            found[EntityKind.CLIENTS][1],
            {"ClientID": "C2", "ClientName": "Globex", "PriorityLevel": 4, "RequestedTaskIDs": "T1,T2"},
        )
        self.assertEqual(found[EntityKind.TASKS][0]["RequiredSkills"], "python")

        clients_report = reports[0]
        self.assertEqual(clients_report.entity, EntityKind.CLIENTS)
        self.assertEqual(clients_report.records_parsed, 2)
        self.assertEqual(clients_report.renamed_headers["Priority"], "PriorityLevel")
        self.assertEqual(reports[1].source, "Task List")

    def test_blank_rows_are_skipped(self):
        path = self._write_workbook(
            {
                "Workers": [
                    ["WorkerID", "WorkerName", "Skills", "AvailableSlots"],
                    ["W1", "Ann", "python", "1,2"],
                    ["", None, "  ", None],
                    ["W2", "Bob", "sql", "3"],
                ]
            }
        )
        found, _reports = load_entity_workbook(path)
        self.assertEqual([r["WorkerID"] for r in found[EntityKind.WORKERS]], ["W1", "W2"])

    def test_duplicate_headers_fail(self):
        path = self._write_workbook({"Tasks": [["TaskID", "Task ID", "Duration"], ["T1", "T1", 1]]})
        with self.assertRaises(ContractError):
            load_entity_workbook(path)

    def test_workbook_without_entity_sheets_fails(self):
        path = self._write_workbook({"Summary": [["a", "b"], [1, 2]]})
        with self.assertRaises(ContractError) as ctx:
            load_entity_workbook(path)
        self.assertIn("Summary", str(ctx.exception))


class TestCsvIngestion(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)

    def _write(self, text: str) -> Path:
        path = Path(self._tmp.name) / "workers.csv"
        path.write_text(text, encoding="utf-8-sig")
        return path

    def test_reads_quoted_lists(self):
        path = self._write('WorkerID,Skills,Group\nW1,"python, sql",ops\n')
        records, report = load_entity_csv(path, "workers")
        self.assertEqual(records, [{"WorkerID": "W1", "Skills": "python, sql", "WorkerGroup": "ops"}])
        self.assertEqual(report.renamed_headers, {"Group": "WorkerGroup"})
        self.assertEqual(Worker.from_row(records[0]).skill_set, {"python", "sql"})

    def test_empty_file_fails(self):
        with self.assertRaises(ContractError):
            load_entity_csv(self._write(""), EntityKind.WORKERS)

    def test_header_row_without_names_fails(self):
        with self.assertRaises(ContractError):
            load_entity_csv(self._write(",,\nW1,a,b\n"), EntityKind.WORKERS)

    def test_non_utf8_bytes_fail_with_contract_error(self):
        path = Path(self._tmp.name) / "workers.csv"
        path.write_bytes(b"WorkerID,Skills\nW1,caf\xe9\n")
        with self.assertRaises(ContractError) as ctx:
            load_entity_csv(path, EntityKind.WORKERS)
        self.assertIn("workers.csv", str(ctx.exception))


class TestHeaders(unittest.TestCase):
    def test_canonical_header(self):
        self.assertEqual(canonical_header("client_id", EntityKind.CLIENTS), "ClientID")
        self.assertEqual(canonical_header("Max Load", EntityKind.WORKERS), "MaxLoadPerPhase")
        self.assertEqual(canonical_header(" Region ", EntityKind.CLIENTS), "Region")


if __name__ == "__main__":
    unittest.main()
