from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence, Union

CellValue = Union[str, int, float, None]


class EntityKind(str, Enum):
    CLIENTS = "clients"
    WORKERS = "workers"
    TASKS = "tasks"


def split_list(value: object) -> list[str]:
    """Split a comma-delimited cell into trimmed, non-empty entries."""
    if value is None:
        return []
    return [part.strip() for part in str(value).split(",") if part.strip()]


def normalize_id(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _from_row(cls, column_map: Mapping[str, str], row: Mapping[str, Any]):
    kwargs: dict[str, Any] = {}
    extras: dict[str, Any] = {}
    for column, value in row.items():
        attr = column_map.get(column)
        if attr is None:
            extras[column] = value
        else:
            kwargs[attr] = value
    return cls(**kwargs, extras=extras, columns=tuple(row.keys()))


def _fill_columns(record, column_map: Mapping[str, str]) -> None:
    # records built in code rather than from a row: columns are the set fields, then extras
    if record.columns:
        return
    present = [column for column, attr in column_map.items() if getattr(record, attr) is not None]
    object.__setattr__(record, "columns", tuple(present) + tuple(c for c in record.extras if c not in present))


def _to_row(record, column_map: Mapping[str, str]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for column in record.columns:
        attr = column_map.get(column)
        out[column] = getattr(record, attr) if attr else record.extras.get(column)
    return out


CLIENT_COLUMNS = {
    "ClientID": "client_id",
    "ClientName": "client_name",
    "PriorityLevel": "priority_level",
    "RequestedTaskIDs": "requested_task_ids",
    "GroupTag": "group_tag",
    "AttributesJSON": "attributes_json",
}

WORKER_COLUMNS = {
    "WorkerID": "worker_id",
    "WorkerName": "worker_name",
    "Skills": "skills",
    "AvailableSlots": "available_slots",
    "MaxLoadPerPhase": "max_load_per_phase",
    "WorkerGroup": "worker_group",
    "QualificationLevel": "qualification_level",
}

TASK_COLUMNS = {
    "TaskID": "task_id",
    "TaskName": "task_name",
    "Category": "category",
    "Duration": "duration",
    "RequiredSkills": "required_skills",
    "PreferredPhases": "preferred_phases",
    "MaxConcurrent": "max_concurrent",
}


@dataclass(frozen=True, slots=True)
class Client:
    client_id: CellValue = None
    client_name: CellValue = None
    priority_level: CellValue = None
    requested_task_ids: CellValue = None
    group_tag: CellValue = None
    attributes_json: CellValue = None
    extras: Mapping[str, CellValue] = field(default_factory=dict)
    columns: tuple[str, ...] = ()

    id_column = "ClientID"

    def __post_init__(self) -> None:
        _fill_columns(self, CLIENT_COLUMNS)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Client":
        return _from_row(cls, CLIENT_COLUMNS, row)

    def to_row(self) -> dict[str, Any]:
        return _to_row(self, CLIENT_COLUMNS)

    @property
    def key(self) -> str:
        return normalize_id(self.client_id)

    @property
    def requested_tasks(self) -> list[str]:
        return split_list(self.requested_task_ids)


@dataclass(frozen=True, slots=True)
class Worker:
    worker_id: CellValue = None
    worker_name: CellValue = None
    skills: CellValue = None
    available_slots: CellValue = None
    max_load_per_phase: CellValue = None
    worker_group: CellValue = None
    qualification_level: CellValue = None
    extras: Mapping[str, CellValue] = field(default_factory=dict)
    columns: tuple[str, ...] = ()

    id_column = "WorkerID"

    def __post_init__(self) -> None:
        _fill_columns(self, WORKER_COLUMNS)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Worker":
        return _from_row(cls, WORKER_COLUMNS, row)

    def to_row(self) -> dict[str, Any]:
        return _to_row(self, WORKER_COLUMNS)

    @property
    def key(self) -> str:
        return normalize_id(self.worker_id)

    @property
    def skill_set(self) -> set[str]:
        return set(split_list(self.skills))


@dataclass(frozen=True, slots=True)
class Task:
    task_id: CellValue = None
    task_name: CellValue = None
    category: CellValue = None
    duration: CellValue = None
    required_skills: CellValue = None
    preferred_phases: CellValue = None
    max_concurrent: CellValue = None
    extras: Mapping[str, CellValue] = field(default_factory=dict)
    columns: tuple[str, ...] = ()

    id_column = "TaskID"

    def __post_init__(self) -> None:
        _fill_columns(self, TASK_COLUMNS)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Task":
        return _from_row(cls, TASK_COLUMNS, row)

    def to_row(self) -> dict[str, Any]:
        return _to_row(self, TASK_COLUMNS)

    @property
    def key(self) -> str:
        return normalize_id(self.task_id)

    @property
    def required_skill_list(self) -> list[str]:
        return split_list(self.required_skills)


Record = Union[Client, Worker, Task]

RECORD_TYPES: dict[EntityKind, type] = {
    EntityKind.CLIENTS: Client,
    EntityKind.WORKERS: Worker,
    EntityKind.TASKS: Task,
}

CANONICAL_COLUMNS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.CLIENTS: tuple(CLIENT_COLUMNS),
    EntityKind.WORKERS: tuple(WORKER_COLUMNS),
    EntityKind.TASKS: tuple(TASK_COLUMNS),
}


def coerce_records(kind: EntityKind, rows: Iterable[Any]) -> tuple[Record, ...]:
    """Accept record objects or raw row mappings and return typed records."""
    record_type = RECORD_TYPES[EntityKind(kind)]
    return tuple(row if isinstance(row, record_type) else record_type.from_row(row) for row in rows)


@dataclass(frozen=True, slots=True)
class EntityCounts:
    clients: int = 0
    workers: int = 0
    tasks: int = 0

    @property
    def total(self) -> int:
        return self.clients + self.workers + self.tasks


@dataclass(frozen=True, slots=True)
class EntitySnapshot:
    clients: tuple[Client, ...] = ()
    workers: tuple[Worker, ...] = ()
    tasks: tuple[Task, ...] = ()
    version: int = 0

    def rows(self, kind: EntityKind) -> tuple[Record, ...]:
        return getattr(self, EntityKind(kind).value)

    @property
    def counts(self) -> EntityCounts:
        return EntityCounts(clients=len(self.clients), workers=len(self.workers), tasks=len(self.tasks))

    @property
    def task_ids(self) -> set[str]:
        return {t.key for t in self.tasks if t.key}

    @property
    def worker_groups(self) -> set[str]:
        return {normalize_id(w.worker_group) for w in self.workers if normalize_id(w.worker_group)}

    @property
    def client_groups(self) -> set[str]:
        return {normalize_id(c.group_tag) for c in self.clients if normalize_id(c.group_tag)}


class EntityStore:
    """Sole owner of the three entity collections.

    Every change (manual edit or an accepted translator intent) goes through
    ``load``, ``update_cell``, ``append_row`` or ``delete_rows``; each commit
    bumps ``version``. Readers work on ``snapshot()`` which never changes
    after it is taken.
    """

    def __init__(self) -> None:
        self._rows: dict[EntityKind, tuple[Record, ...]] = {kind: () for kind in EntityKind}
        self.version = 0

    def _commit(self, kind: EntityKind, rows: Sequence[Record]) -> None:
        self._rows[kind] = tuple(rows)
        self.version += 1

    def _checked_index(self, kind: EntityKind, row_index: int) -> int:
        size = len(self._rows[kind])
        if not 0 <= row_index < size:
            raise ValueError(f"Row index {row_index} out of range for {kind.value} ({size} rows)")
        return row_index

    def load(self, kind: EntityKind | str, rows: Iterable[Any]) -> int:
        kind = EntityKind(kind)
        records = coerce_records(kind, rows)
        self._commit(kind, records)
        return len(records)

    def update_cell(self, kind: EntityKind | str, row_index: int, column: str, value: CellValue) -> Record:
        kind = EntityKind(kind)
        rows = list(self._rows[kind])
        idx = self._checked_index(kind, row_index)
        row = rows[idx].to_row()
        row[column] = value
        rows[idx] = RECORD_TYPES[kind].from_row(row)
        self._commit(kind, rows)
        return rows[idx]

    def append_row(self, kind: EntityKind | str, row: Mapping[str, Any]) -> Record:
        kind = EntityKind(kind)
        record = coerce_records(kind, [row])[0]
        self._commit(kind, self._rows[kind] + (record,))
        return record

    def delete_rows(self, kind: EntityKind | str, row_indices: Iterable[int]) -> int:
        kind = EntityKind(kind)
        doomed = {self._checked_index(kind, i) for i in row_indices}
        if not doomed:
            return 0
        self._commit(kind, [r for i, r in enumerate(self._rows[kind]) if i not in doomed])
        return len(doomed)

    def rows(self, kind: EntityKind | str) -> tuple[Record, ...]:
        return self._rows[EntityKind(kind)]

    def snapshot(self) -> EntitySnapshot:
        return EntitySnapshot(
            clients=self._rows[EntityKind.CLIENTS],
            workers=self._rows[EntityKind.WORKERS],
            tasks=self._rows[EntityKind.TASKS],
            version=self.version,
        )

    @property
    def counts(self) -> EntityCounts:
        return self.snapshot().counts
