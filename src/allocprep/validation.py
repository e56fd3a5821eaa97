"""Deterministic validation pipeline over an entity snapshot.

Validators run in a fixed registration order and rows are visited in
collection order, so an unchanged snapshot always yields the same ordered
list of issues:

  1. required columns        (error)
  2. duplicate ids           (error)
  3. priority / duration     (error)
  4. task references         (error)
  5. skill coverage          (warning, advisory only)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Sequence

from .entities import Client, EntityKind, EntitySnapshot, Task, Worker, coerce_records

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class IssueKind(str, Enum):
    MISSING_COLUMN = "missing_column"
    DUPLICATE_ID = "duplicate_id"
    INVALID_RANGE = "invalid_range"
    UNKNOWN_REFERENCE = "unknown_reference"
    MISSING_SKILL_COVERAGE = "missing_skill_coverage"


REQUIRED_COLUMNS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.CLIENTS: ("ClientID", "ClientName", "PriorityLevel"),
    EntityKind.WORKERS: ("WorkerID", "WorkerName", "Skills", "AvailableSlots"),
    EntityKind.TASKS: ("TaskID", "TaskName", "Duration", "RequiredSkills"),
}

PRIORITY_RANGE = (1, 5)
MIN_DURATION = 1


@dataclass(frozen=True, slots=True)
class ValidationError:
    kind: IssueKind
    severity: Severity
    message: str
    entity: EntityKind
    field: str | None = None
    row_index: int | None = None
    suggestion: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "message": self.message,
            "entity": self.entity.value,
            "field": self.field,
            "row_index": self.row_index,
            "suggestion": self.suggestion,
        }


@dataclass(frozen=True, slots=True)
class ValidationResult:
    errors: tuple[ValidationError, ...]
    total_errors: int
    total_warnings: int
    is_valid: bool
    score: int

    @classmethod
    def from_issues(cls, issues: Sequence[ValidationError]) -> "ValidationResult":
        total_errors = sum(1 for e in issues if e.severity == Severity.ERROR)
        total_warnings = sum(1 for e in issues if e.severity == Severity.WARNING)
        return cls(
            errors=tuple(issues),
            total_errors=total_errors,
            total_warnings=total_warnings,
            is_valid=total_errors == 0,
            score=max(0, 100 - 10 * total_errors - 5 * total_warnings),
        )

    def by_entity(self, entity: EntityKind | str) -> list[ValidationError]:
        entity = EntityKind(entity)
        return [e for e in self.errors if e.entity == entity]

    def by_severity(self, severity: Severity | str) -> list[ValidationError]:
        severity = Severity(severity)
        return [e for e in self.errors if e.severity == severity]


def parse_int(value: object) -> int | None:
    """Strict integer parse for cell values; non-integral numbers are rejected."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return int(number) if number.is_integer() else None


def _display(value: object) -> str:
    return "" if value is None else str(value)


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------

def check_required_columns(snapshot: EntitySnapshot) -> list[ValidationError]:
    issues: list[ValidationError] = []
    for kind, required in REQUIRED_COLUMNS.items():
        rows = snapshot.rows(kind)
        if not rows:
            continue
        observed = set(rows[0].columns)
        for column in required:
            if column not in observed:
                issues.append(
                    ValidationError(
                        kind=IssueKind.MISSING_COLUMN,
                        severity=Severity.ERROR,
                        message=f"Missing required column: {column}",
                        entity=kind,
                        field=column,
                        suggestion=f"Add the {column} column to your {kind.value} data",
                    )
                )
    return issues


def check_duplicate_ids(snapshot: EntitySnapshot) -> list[ValidationError]:
    issues: list[ValidationError] = []
    for kind in EntityKind:
        seen: set[str] = set()
        for index, record in enumerate(snapshot.rows(kind)):
            key = record.key
            if not key:
                continue
            if key in seen:
                id_column = record.id_column
                issues.append(
                    ValidationError(
                        kind=IssueKind.DUPLICATE_ID,
                        severity=Severity.ERROR,
                        message=f"Duplicate {id_column}: {key}",
                        entity=kind,
                        field=id_column,
                        row_index=index,
                        suggestion=f"Change the duplicate {id_column} to a unique value",
                    )
                )
            seen.add(key)
    return issues


def check_ranges(snapshot: EntitySnapshot) -> list[ValidationError]:
    issues: list[ValidationError] = []
    low, high = PRIORITY_RANGE
    for index, client in enumerate(snapshot.clients):
        priority = parse_int(client.priority_level)
        if priority is None or not low <= priority <= high:
            issues.append(
                ValidationError(
                    kind=IssueKind.INVALID_RANGE,
                    severity=Severity.ERROR,
                    message=f"Invalid priority level: {_display(client.priority_level)}. Must be {low}-{high}",
                    entity=EntityKind.CLIENTS,
                    field="PriorityLevel",
                    row_index=index,
                    suggestion=f"Set priority level to a value between {low} and {high}",
                )
            )

    for index, task in enumerate(snapshot.tasks):
        duration = parse_int(task.duration)
        if duration is None or duration < MIN_DURATION:
            issues.append(
                ValidationError(
                    kind=IssueKind.INVALID_RANGE,
                    severity=Severity.ERROR,
                    message=f"Invalid duration: {_display(task.duration)}. Must be >= {MIN_DURATION}",
                    entity=EntityKind.TASKS,
                    field="Duration",
                    row_index=index,
                    suggestion="Set duration to a positive whole number",
                )
            )
    return issues


def check_task_references(snapshot: EntitySnapshot) -> list[ValidationError]:
    issues: list[ValidationError] = []
    task_ids = snapshot.task_ids
    for index, client in enumerate(snapshot.clients):
        for task_id in client.requested_tasks:
            if task_id in task_ids:
                continue
            issues.append(
                ValidationError(
                    kind=IssueKind.UNKNOWN_REFERENCE,
                    severity=Severity.ERROR,
                    message=f"Unknown task reference: {task_id}",
                    entity=EntityKind.CLIENTS,
                    field="RequestedTaskIDs",
                    row_index=index,
                    suggestion=f"Remove {task_id} or add it to the tasks data",
                )
            )
    return issues


def check_skill_coverage(snapshot: EntitySnapshot) -> list[ValidationError]:
    issues: list[ValidationError] = []
    available: set[str] = set()
    for worker in snapshot.workers:
        available.update(worker.skill_set)

    for index, task in enumerate(snapshot.tasks):
        for skill in task.required_skill_list:
            if skill in available:
                continue
            issues.append(
                ValidationError(
                    kind=IssueKind.MISSING_SKILL_COVERAGE,
                    severity=Severity.WARNING,
                    message=f"No worker has skill: {skill}",
                    entity=EntityKind.TASKS,
                    field="RequiredSkills",
                    row_index=index,
                    suggestion=f"Add a worker with {skill} skill or modify the task requirements",
                )
            )
    return issues


Validator = Callable[[EntitySnapshot], list[ValidationError]]

VALIDATORS: tuple[Validator, ...] = (
    check_required_columns,
    check_duplicate_ids,
    check_ranges,
    check_task_references,
    check_skill_coverage,
)


def validate_snapshot(snapshot: EntitySnapshot) -> ValidationResult:
    issues: list[ValidationError] = []
    for validator in VALIDATORS:
        issues.extend(validator(snapshot))
    result = ValidationResult.from_issues(issues)
    logger.debug(
        "validation v%s: %d errors, %d warnings, score=%d",
        snapshot.version,
        result.total_errors,
        result.total_warnings,
        result.score,
    )
    return result


def validate(
    clients: Iterable[Client | dict] = (),
    workers: Iterable[Worker | dict] = (),
    tasks: Iterable[Task | dict] = (),
) -> ValidationResult:
    """Validate three collections given as records or raw row mappings."""
    snapshot = EntitySnapshot(
        clients=coerce_records(EntityKind.CLIENTS, clients),
        workers=coerce_records(EntityKind.WORKERS, workers),
        tasks=coerce_records(EntityKind.TASKS, tasks),
    )
    return validate_snapshot(snapshot)
