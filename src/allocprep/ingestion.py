from __future__ import annotations

import csv
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from openpyxl import load_workbook

from .entities import CANONICAL_COLUMNS, EntityKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IngestionReport:
    entity: EntityKind
    source: str
    records_parsed: int
    renamed_headers: dict[str, str]


class ContractError(ValueError):
    pass


# loose spellings seen in exported sheets
HEADER_ALIASES: dict[EntityKind, dict[str, str]] = {
    EntityKind.CLIENTS: {
        "id": "ClientID",
        "name": "ClientName",
        "priority": "PriorityLevel",
        "requestedtasks": "RequestedTaskIDs",
        "tasks": "RequestedTaskIDs",
        "group": "GroupTag",
        "attributes": "AttributesJSON",
    },
    EntityKind.WORKERS: {
        "id": "WorkerID",
        "name": "WorkerName",
        "slots": "AvailableSlots",
        "maxload": "MaxLoadPerPhase",
        "group": "WorkerGroup",
        "qualification": "QualificationLevel",
    },
    EntityKind.TASKS: {
        "id": "TaskID",
        "name": "TaskName",
        "skills": "RequiredSkills",
        "phases": "PreferredPhases",
        "concurrency": "MaxConcurrent",
    },
}


def _squash(value: object) -> str:
    if value is None:
        return ""
    return re.sub(r"[^a-z0-9]", "", str(value).lower())


def canonical_header(header: str, kind: EntityKind) -> str:
    """Map a loosely spelled header (``client_id``, ``Client Id``) to its canonical column."""
    key = _squash(header)
    for column in CANONICAL_COLUMNS[kind]:
        if _squash(column) == key:
            return column
    return HEADER_ALIASES[kind].get(key, str(header).strip())


def _map_headers(raw_headers: Iterable[object], kind: EntityKind, source: str) -> tuple[list[str | None], dict[str, str]]:
    headers: list[str | None] = []
    renamed: dict[str, str] = {}
    seen: set[str] = set()
    for raw in raw_headers:
        if raw is None or not str(raw).strip():
            headers.append(None)
            continue
        column = canonical_header(str(raw), kind)
        if column in seen:
            raise ContractError(f"Duplicate header detected in {source}: {raw}")
        seen.add(column)
        if column != str(raw).strip():
            renamed[str(raw).strip()] = column
        headers.append(column)
    if not seen:
        raise ContractError(f"{source} has no header row")
    return headers, renamed


def _rows_to_records(headers: list[str | None], rows: Iterable[Iterable[object]]) -> list[dict]:
    out: list[dict] = []
    for row in rows:
        values = list(row)
        record = {}
        is_empty = True
        for i, column in enumerate(headers):
            if column is None:
                continue
            value = values[i] if i < len(values) else None
            if isinstance(value, str):
                value = value.strip()
            if value not in (None, ""):
                is_empty = False
            record[column] = value
        if not is_empty:
            out.append(record)
    return out


def _sheet_for(sheetnames: list[str], kind: EntityKind) -> str | None:
    singular = kind.value.rstrip("s")
    for name in sheetnames:
        if name.strip().lower() in (kind.value, singular):
            return name
    for name in sheetnames:
        if name.strip().lower().startswith(singular):
            return name
    return None


def load_entity_workbook(workbook_path: Path | str) -> tuple[dict[EntityKind, list[dict]], list[IngestionReport]]:
    """Read ``Clients`` / ``Workers`` / ``Tasks`` sheets into row mappings."""
    wb = load_workbook(workbook_path, read_only=True, data_only=True)
    sheetnames = list(wb.sheetnames)
    try:
        found: dict[EntityKind, list[dict]] = {}
        reports: list[IngestionReport] = []
        for kind in EntityKind:
            sheet_name = _sheet_for(sheetnames, kind)
            if sheet_name is None:
                continue
            rows = wb[sheet_name].iter_rows(min_row=1, values_only=True)
            header_row = next(rows, None)
            if header_row is None:
                continue
            headers, renamed = _map_headers(header_row, kind, f"sheet '{sheet_name}'")
            records = _rows_to_records(headers, rows)
            found[kind] = records
            reports.append(IngestionReport(kind, sheet_name, len(records), renamed))
            logger.info("loaded %d %s from sheet '%s'", len(records), kind.value, sheet_name)
    finally:
        wb.close()

    if not found:
        raise ContractError(
            f"No clients, workers or tasks sheet found. Sheets present: {', '.join(sheetnames)}"
        )
    return found, reports


def load_entity_csv(csv_path: Path | str, kind: EntityKind | str) -> tuple[list[dict], IngestionReport]:
    kind = EntityKind(kind)
    path = Path(csv_path)
    try:
        with path.open(newline="", encoding="utf-8-sig") as handle:
            reader = csv.reader(handle)
            header_row = next(reader, None)
            if header_row is None:
                raise ContractError(f"{path.name} is empty")
            headers, renamed = _map_headers(header_row, kind, path.name)
            records = _rows_to_records(headers, reader)
    except UnicodeDecodeError as exc:
        raise ContractError(f"{path.name} is not valid UTF-8 text: {exc.reason} at byte {exc.start}") from exc
    logger.info("loaded %d %s from %s", len(records), kind.value, path.name)
    return records, IngestionReport(kind, path.name, len(records), renamed)
