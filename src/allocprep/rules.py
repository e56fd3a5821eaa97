from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Union

from .entities import EntitySnapshot, EntityStore, normalize_id, split_list
from .validation import parse_int

logger = logging.getLogger(__name__)


class RuleType(str, Enum):
    CO_RUN = "coRun"
    SLOT_RESTRICTION = "slotRestriction"
    LOAD_LIMIT = "loadLimit"
    PHASE_WINDOW = "phaseWindow"
    PRECEDENCE = "precedence"


class GroupType(str, Enum):
    CLIENT = "client"
    WORKER = "worker"


def _stamp(created_at: datetime) -> str:
    return created_at.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class CoRunRule:
    id: str
    tasks: tuple[str, ...]
    description: str
    created_at: datetime
    rule_type: RuleType = RuleType.CO_RUN

    def referenced_tasks(self) -> set[str]:
        return set(self.tasks)

    def params(self) -> dict[str, Any]:
        return {"tasks": list(self.tasks)}


@dataclass(frozen=True, slots=True)
class SlotRestrictionRule:
    id: str
    group_type: GroupType
    group: str
    min_common_slots: int
    description: str
    created_at: datetime
    rule_type: RuleType = RuleType.SLOT_RESTRICTION

    def referenced_tasks(self) -> set[str]:
        return set()

    def params(self) -> dict[str, Any]:
        return {"groupType": self.group_type.value, "group": self.group, "minCommonSlots": self.min_common_slots}


@dataclass(frozen=True, slots=True)
class LoadLimitRule:
    id: str
    worker_group: str
    max_slots_per_phase: int
    description: str
    created_at: datetime
    rule_type: RuleType = RuleType.LOAD_LIMIT

    def referenced_tasks(self) -> set[str]:
        return set()

    def params(self) -> dict[str, Any]:
        return {"workerGroup": self.worker_group, "maxSlotsPerPhase": self.max_slots_per_phase}


@dataclass(frozen=True, slots=True)
class PhaseWindowRule:
    id: str
    task_id: str
    allowed_phases: tuple[int, ...]
    description: str
    created_at: datetime
    rule_type: RuleType = RuleType.PHASE_WINDOW

    def referenced_tasks(self) -> set[str]:
        return {self.task_id}

    def params(self) -> dict[str, Any]:
        return {"taskId": self.task_id, "allowedPhases": list(self.allowed_phases)}


@dataclass(frozen=True, slots=True)
class PrecedenceRule:
    id: str
    before: str
    after: str
    description: str
    created_at: datetime
    rule_type: RuleType = RuleType.PRECEDENCE

    def referenced_tasks(self) -> set[str]:
        return {self.before, self.after}

    def params(self) -> dict[str, Any]:
        return {"before": self.before, "after": self.after}


Rule = Union[CoRunRule, SlotRestrictionRule, LoadLimitRule, PhaseWindowRule, PrecedenceRule]


def rule_to_dict(rule: Rule) -> dict[str, Any]:
    return {
        "id": rule.id,
        "type": rule.rule_type.value,
        **rule.params(),
        "description": rule.description,
        "createdAt": _stamp(rule.created_at),
    }


@dataclass(frozen=True, slots=True)
class RuleDraft:
    """Unconfirmed rule proposal, from a builder form or the translator."""

    rule_type: RuleType
    params: Mapping[str, Any] = field(default_factory=dict)
    description: str = ""

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "RuleDraft":
        data = dict(payload)
        rule_type = RuleType(data.pop("type"))
        description = str(data.pop("description", "") or "")
        return cls(rule_type=rule_type, params=data, description=description)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.rule_type.value, **dict(self.params), "description": self.description}


@dataclass(frozen=True, slots=True)
class RuleRejection:
    reason: str
    draft: RuleDraft


class _DraftError(ValueError):
    pass


def _require_positive(params: Mapping[str, Any], key: str) -> int:
    value = parse_int(params.get(key))
    if value is None or value < 1:
        raise _DraftError(f"{key} must be a whole number >= 1, got {params.get(key)!r}")
    return value


def _require_text(params: Mapping[str, Any], key: str) -> str:
    value = normalize_id(params.get(key))
    if not value:
        raise _DraftError(f"{key} is required")
    return value


def _id_list(value: object) -> list[str]:
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [normalize_id(v) for v in value]
    else:
        items = split_list(value)
    ordered: list[str] = []
    for item in items:
        if item and item not in ordered:
            ordered.append(item)
    return ordered


def _build_rule(draft: RuleDraft, rule_id: str, created_at: datetime) -> Rule:
    params = draft.params
    description = draft.description
    if draft.rule_type == RuleType.CO_RUN:
        tasks = _id_list(params.get("tasks"))
        if len(tasks) < 2:
            raise _DraftError("coRun needs at least two distinct tasks")
        return CoRunRule(rule_id, tuple(tasks), description or f"Co-run {', '.join(tasks)}", created_at)

    if draft.rule_type == RuleType.SLOT_RESTRICTION:
        try:
            group_type = GroupType(str(params.get("groupType", "")).strip().lower())
        except ValueError as exc:
            raise _DraftError("groupType must be 'client' or 'worker'") from exc
        group = _require_text(params, "group")
        min_slots = _require_positive(params, "minCommonSlots")
        return SlotRestrictionRule(
            rule_id,
            group_type,
            group,
            min_slots,
            description or f"{group} needs {min_slots} common slots",
            created_at,
        )

    if draft.rule_type == RuleType.LOAD_LIMIT:
        group = _require_text(params, "workerGroup")
        limit = _require_positive(params, "maxSlotsPerPhase")
        return LoadLimitRule(rule_id, group, limit, description or f"Load limit for {group}", created_at)

    if draft.rule_type == RuleType.PHASE_WINDOW:
        task_id = _require_text(params, "taskId")
        raw_phases = params.get("allowedPhases")
        phases = [parse_int(p) for p in (raw_phases if isinstance(raw_phases, (list, tuple)) else split_list(raw_phases))]
        if not phases or any(p is None or p < 1 for p in phases):
            raise _DraftError("allowedPhases must be a non-empty list of phase numbers >= 1")
        allowed = tuple(sorted(set(phases)))
        return PhaseWindowRule(
            rule_id,
            task_id,
            allowed,
            description or f"{task_id} limited to phases {', '.join(map(str, allowed))}",
            created_at,
        )

    if draft.rule_type == RuleType.PRECEDENCE:
        before = _require_text(params, "before")
        after = _require_text(params, "after")
        if before == after:
            raise _DraftError("precedence needs two different tasks")
        return PrecedenceRule(rule_id, before, after, description or f"{before} before {after}", created_at)

    raise _DraftError(f"unsupported rule type: {draft.rule_type}")


def _unknown_references(rule: Rule, snapshot: EntitySnapshot) -> list[str]:
    missing = sorted(t for t in rule.referenced_tasks() if t not in snapshot.task_ids)
    problems = [f"unknown TaskID {t}" for t in missing]
    if isinstance(rule, LoadLimitRule) and rule.worker_group not in snapshot.worker_groups:
        problems.append(f"unknown WorkerGroup {rule.worker_group}")
    if isinstance(rule, SlotRestrictionRule):
        groups = snapshot.worker_groups if rule.group_type == GroupType.WORKER else snapshot.client_groups
        if rule.group not in groups:
            label = "WorkerGroup" if rule.group_type == GroupType.WORKER else "GroupTag"
            problems.append(f"unknown {label} {rule.group}")
    return problems


class RuleRegistry:
    """Append-only collection of allocation rules with tombstone deletes.

    Ids are ``R1, R2, ...`` and are never handed out twice, even after the
    rule carrying one has been removed. With ``enforce_references`` the
    task ids and groups a draft names must exist in the store's current
    snapshot, otherwise the draft comes back as a ``RuleRejection``.
    """

    def __init__(
        self,
        store: EntityStore | None = None,
        *,
        enforce_references: bool = True,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.enforce_references = enforce_references
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rules: list[Rule] = []
        self._removed: set[str] = set()
        self._next_seq = 1
        self._lock = threading.Lock()

    def add_rule(self, draft: RuleDraft) -> Rule | RuleRejection:
        with self._lock:
            rule_id = f"R{self._next_seq}"
            try:
                rule = _build_rule(draft, rule_id, self._clock())
            except _DraftError as exc:
                logger.debug("rule draft rejected: %s", exc)
                return RuleRejection(reason=str(exc), draft=draft)

            if self.enforce_references and self.store is not None:
                problems = _unknown_references(rule, self.store.snapshot())
                if problems:
                    logger.debug("rule draft rejected: %s", problems)
                    return RuleRejection(reason="; ".join(problems), draft=draft)

            self._next_seq += 1
            self._rules.append(rule)
            logger.debug("rule %s added (%s)", rule.id, rule.rule_type.value)
            return rule

    def remove_rule(self, rule_id: str) -> bool:
        with self._lock:
            if rule_id in self._removed or not any(r.id == rule_id for r in self._rules):
                return False
            self._removed.add(rule_id)
            logger.debug("rule %s removed", rule_id)
            return True

    def list_rules(self) -> list[Rule]:
        return [r for r in self._rules if r.id not in self._removed]

    def get_rule(self, rule_id: str) -> Rule | None:
        return next((r for r in self.list_rules() if r.id == rule_id), None)

    def rules_for_task(self, task_id: str) -> list[Rule]:
        return [r for r in self.list_rules() if task_id in r.referenced_tasks()]

    def __len__(self) -> int:
        return len(self.list_rules())
