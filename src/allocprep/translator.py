"""Natural-language intent translation port.

The core never trusts a translation: results are suggestions with a
confidence score, and anything that would change data or rules is held for
explicit confirmation by the session. ``LocalKeywordTranslator`` is the
deterministic default; ``llm.AnthropicTranslator`` implements the same
protocol on top of a hosted model.
"""
from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Protocol, Sequence

from .entities import CANONICAL_COLUMNS, EntityKind, EntitySnapshot, Record, split_list
from .rules import RuleDraft, RuleType
from .validation import parse_int

COULD_NOT_PROCESS = "could not process"


class TranslationKind(str, Enum):
    FILTER = "FilterSpec"
    MODIFICATION = "ModificationIntent"
    RULE_DRAFT = "RuleDraft"
    INSIGHT = "InsightResponse"


class FilterOperator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    GREATER = "greater"
    LESS = "less"


ANY_FIELD = "*"


@dataclass(frozen=True, slots=True)
class FilterCondition:
    field: str
    operator: FilterOperator
    value: str


@dataclass(frozen=True, slots=True)
class FilterSpec:
    conditions: tuple[FilterCondition, ...] = ()
    logic: str = "and"
    entity: EntityKind | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity": self.entity.value if self.entity else None,
            "filters": [
                {"field": c.field, "operator": c.operator.value, "value": c.value} for c in self.conditions
            ],
            "logic": self.logic,
        }


@dataclass(frozen=True, slots=True)
class ModificationIntent:
    action: str
    entity: EntityKind
    filters: FilterSpec = field(default_factory=FilterSpec)
    changes: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "entity": self.entity.value,
            "filters": self.filters.to_dict()["filters"],
            "logic": self.filters.logic,
            "changes": dict(self.changes),
        }


@dataclass(frozen=True, slots=True)
class InsightResponse:
    answer: str
    data_points: int = 0
    suggestions: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class TranslationResult:
    kind: TranslationKind
    payload: FilterSpec | ModificationIntent | RuleDraft | InsightResponse | None
    confidence: float
    ok: bool = True
    message: str = ""

    @classmethod
    def neutral(cls, kind: TranslationKind, message: str = COULD_NOT_PROCESS) -> "TranslationResult":
        return cls(kind=kind, payload=None, confidence=0.0, ok=False, message=message)


@dataclass(frozen=True, slots=True)
class TranslationContext:
    snapshot: EntitySnapshot = field(default_factory=EntitySnapshot)

    def columns(self, kind: EntityKind) -> list[str]:
        cols = list(CANONICAL_COLUMNS[kind])
        for record in self.snapshot.rows(kind):
            for column in record.columns:
                if column not in cols:
                    cols.append(column)
        return cols

    def schema(self) -> dict[str, list[str]]:
        return {kind.value: self.columns(kind) for kind in EntityKind}


class NLTranslator(Protocol):
    async def translate(
        self,
        text: str,
        kind: TranslationKind,
        context: TranslationContext,
    ) -> TranslationResult: ...


# ---------------------------------------------------------------------------
# Payload decoding (shared with hosted translators)
# ---------------------------------------------------------------------------

_OPERATOR_ALIASES = {
    "equals": FilterOperator.EQUALS,
    "equal": FilterOperator.EQUALS,
    "=": FilterOperator.EQUALS,
    "contains": FilterOperator.CONTAINS,
    "greater": FilterOperator.GREATER,
    ">": FilterOperator.GREATER,
    "less": FilterOperator.LESS,
    "<": FilterOperator.LESS,
}


def _conditions_from_list(items: Iterable[Mapping[str, Any]]) -> tuple[FilterCondition, ...]:
    conditions = []
    for item in items:
        if not isinstance(item, Mapping):
            raise TypeError(f"filter entries must be objects, got {item!r}")
        operator = _OPERATOR_ALIASES[str(item.get("operator", "equals")).strip().lower()]
        conditions.append(FilterCondition(field=str(item["field"]), operator=operator, value=str(item.get("value", ""))))
    return tuple(conditions)


def _entity_or_none(value: object) -> EntityKind | None:
    if value in (None, ""):
        return None
    return EntityKind(str(value).strip().lower())


def payload_from_dict(kind: TranslationKind, data: Mapping[str, Any]):
    """Decode a JSON-shaped payload; raises ValueError/KeyError/TypeError when malformed."""
    if kind == TranslationKind.FILTER:
        logic = str(data.get("logic", "and")).lower()
        if logic not in ("and", "or"):
            raise ValueError(f"bad filter logic {logic!r}")
        return FilterSpec(
            conditions=_conditions_from_list(data.get("filters", [])),
            logic=logic,
            entity=_entity_or_none(data.get("entity")),
        )
    if kind == TranslationKind.MODIFICATION:
        action = str(data.get("action", "none")).lower()
        if action not in ("update", "add", "delete"):
            raise ValueError(f"unsupported modification action {action!r}")
        changes = data.get("changes", {})
        if not isinstance(changes, Mapping):
            raise TypeError("changes must be an object")
        return ModificationIntent(
            action=action,
            entity=EntityKind(str(data["entity"]).strip().lower()),
            filters=FilterSpec(
                conditions=_conditions_from_list(data.get("filters", [])),
                logic=str(data.get("logic", "and")).lower(),
            ),
            changes=dict(changes),
        )
    if kind == TranslationKind.RULE_DRAFT:
        return RuleDraft.from_dict(data)
    if kind == TranslationKind.INSIGHT:
        suggestions = data.get("suggestions", [])
        return InsightResponse(
            answer=str(data["answer"]),
            data_points=int(data.get("dataPoints", data.get("data_points", 0)) or 0),
            suggestions=tuple(str(s) for s in suggestions if s),
        )
    raise ValueError(f"unknown translation kind {kind!r}")


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def _as_number(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def _row_value(row: Mapping[str, Any], name: str) -> object:
    if name in row:
        return row[name]
    wanted = _squash(name)
    for column, value in row.items():
        if _squash(column) == wanted:
            return value
    return None


def _matches(row: Mapping[str, Any], condition: FilterCondition) -> bool:
    target = condition.value.strip().lower()
    if condition.field == ANY_FIELD:
        return any(target in str(v).lower() for v in row.values() if v is not None)

    value = _row_value(row, condition.field)
    if value is None:
        return False
    if condition.operator == FilterOperator.CONTAINS:
        return target in str(value).lower()
    if condition.operator == FilterOperator.EQUALS:
        left, right = _as_number(value), _as_number(target)
        if left is not None and right is not None:
            return left == right
        return str(value).strip().lower() == target
    left, right = _as_number(value), _as_number(target)
    if left is None or right is None:
        return False
    if condition.operator == FilterOperator.GREATER:
        return left > right
    return left < right


def apply_filter(spec: FilterSpec, records: Sequence[Record]) -> list[int]:
    """Return row indices (ascending) of records matching the filter spec."""
    if not spec.conditions:
        return list(range(len(records)))
    combine = any if spec.logic == "or" else all
    hits = []
    for index, record in enumerate(records):
        row = record.to_row()
        if combine(_matches(row, c) for c in spec.conditions):
            hits.append(index)
    return hits


def keyword_search(records: Sequence[Record], query: str) -> list[int]:
    if not query.strip():
        return list(range(len(records)))
    return apply_filter(FilterSpec(conditions=(FilterCondition(ANY_FIELD, FilterOperator.CONTAINS, query),)), records)


# ---------------------------------------------------------------------------
# Deterministic keyword translator
# ---------------------------------------------------------------------------

def _squash(text: str) -> str:
    return re.sub(r"[^a-z0-9]", "", str(text).lower())


def _column_pattern(column: str) -> str:
    # "PriorityLevel" also matches "priority level" / "priority_level"
    return r"[\s_-]?".join(re.escape(ch) for ch in column.lower())


_OPERATOR_PHRASES = (
    (r">|greater than|more than|above|over", FilterOperator.GREATER),
    (r"<|less than|fewer than|below|under", FilterOperator.LESS),
    (r"contains|includes|including|has|with", FilterOperator.CONTAINS),
    (r"=|equals|equal to|is|of", FilterOperator.EQUALS),
)

_VALUE_TAIL = r"\s*['\"]?(?P<value>[^,;'\"]+?)['\"]?(?=\s+(?:and|or)\s+|[,;]|\.(?!\d)|$)"

_NUMBER_RE = re.compile(r"\d+")

CONFIDENT = 0.9
LIKELY = 0.85
TENTATIVE = 0.6
KEYWORD_ONLY = 0.5


def _mentions(text: str, candidates: Iterable[str]) -> list[str]:
    """Candidates found in text as whole words, ordered by first position."""
    found: list[tuple[int, str]] = []
    for candidate in candidates:
        if not candidate:
            continue
        match = re.search(rf"(?<![\w-]){re.escape(candidate.lower())}(?![\w-])", text)
        if match:
            found.append((match.start(), candidate))
    found.sort()
    ordered: list[str] = []
    for _pos, candidate in found:
        if candidate not in ordered:
            ordered.append(candidate)
    return ordered


class LocalKeywordTranslator:
    """Keyword and number extraction over the loaded data, no network."""

    async def translate(
        self,
        text: str,
        kind: TranslationKind,
        context: TranslationContext,
    ) -> TranslationResult:
        text = text.strip()
        if not text:
            return TranslationResult.neutral(kind)
        if kind == TranslationKind.RULE_DRAFT:
            return self.infer_rule(text, context)
        if kind == TranslationKind.FILTER:
            return self.parse_filter(text, context)
        if kind == TranslationKind.MODIFICATION:
            return self.parse_modification(text, context)
        return self.summarize(text, context)

    # -- rules -------------------------------------------------------------

    def _task_mentions(self, lower: str, snapshot: EntitySnapshot) -> list[str]:
        by_name = {str(t.task_name).strip().lower(): t.key for t in snapshot.tasks if t.task_name and t.key}
        mentioned = _mentions(lower, [t.key for t in snapshot.tasks if t.key] + list(by_name))
        ids: list[str] = []
        for item in mentioned:
            task_id = by_name.get(item, item)
            if task_id not in ids:
                ids.append(task_id)
        return ids

    def infer_rule(self, text: str, context: TranslationContext) -> TranslationResult:
        kind = TranslationKind.RULE_DRAFT
        lower = text.lower()
        snapshot = context.snapshot
        task_ids = self._task_mentions(lower, snapshot)

        if ("run together" in lower or "co-run" in lower) and len(task_ids) >= 2:
            draft = RuleDraft(RuleType.CO_RUN, {"tasks": task_ids}, text)
            return TranslationResult(kind, draft, CONFIDENT)

        if "load limit" in lower or "maximum" in lower:
            groups = _mentions(lower, sorted(snapshot.worker_groups))
            number = _NUMBER_RE.search(lower)
            if groups and number:
                draft = RuleDraft(
                    RuleType.LOAD_LIMIT,
                    {"workerGroup": groups[0], "maxSlotsPerPhase": int(number.group())},
                    text,
                )
                return TranslationResult(kind, draft, CONFIDENT)

        if len(task_ids) == 2 and re.search(r"\b(before|after|precedes?|follows?)\b", lower):
            first, second = task_ids
            if re.search(r"\b(after|follows?)\b", lower) and not re.search(r"\b(before|precedes?)\b", lower):
                first, second = second, first
            draft = RuleDraft(RuleType.PRECEDENCE, {"before": first, "after": second}, text)
            return TranslationResult(kind, draft, LIKELY)

        if len(task_ids) == 1 and "phase" in lower:
            stripped = re.sub(rf"(?<![\w-]){re.escape(task_ids[0].lower())}(?![\w-])", " ", lower)
            phases = [int(n) for n in _NUMBER_RE.findall(stripped)]
            if phases:
                draft = RuleDraft(RuleType.PHASE_WINDOW, {"taskId": task_ids[0], "allowedPhases": phases}, text)
                return TranslationResult(kind, draft, LIKELY)

        return TranslationResult.neutral(kind, "could not understand the rule; try the manual builder")

    # -- filters -----------------------------------------------------------

    def _entity_for_columns(self, columns: Iterable[str], text: str, context: TranslationContext) -> EntityKind | None:
        for kind in EntityKind:
            if kind.value in text or kind.value.rstrip("s") in text.split():
                return kind
        for column in columns:
            for kind in EntityKind:
                if column in context.columns(kind):
                    return kind
        return None

    def _conditions(self, text: str, context: TranslationContext) -> list[FilterCondition]:
        lower = text.lower()
        all_columns: list[str] = []
        for kind in EntityKind:
            all_columns.extend(c for c in context.columns(kind) if c not in all_columns)

        found: list[tuple[int, FilterCondition]] = []
        taken: set[int] = set()
        for column in sorted(all_columns, key=len, reverse=True):
            for phrase, operator in _OPERATOR_PHRASES:
                pattern = rf"\b{_column_pattern(column)}\b\s*(?:(?:of|is)\s+)?(?:{phrase})(?!\w){_VALUE_TAIL}"
                match = re.search(pattern, lower)
                if match is None:
                    continue
                value = match.group("value").strip()
                if value and match.start() not in taken:
                    taken.add(match.start())
                    found.append((match.start(), FilterCondition(column, operator, value)))
                break
        found.sort(key=lambda item: item[0])
        return [condition for _pos, condition in found]

    def parse_filter(self, text: str, context: TranslationContext) -> TranslationResult:
        kind = TranslationKind.FILTER
        lower = text.lower()
        conditions = self._conditions(text, context)
        if not conditions:
            spec = FilterSpec(conditions=(FilterCondition(ANY_FIELD, FilterOperator.CONTAINS, text),))
            return TranslationResult(kind, spec, KEYWORD_ONLY)
        logic = "or" if re.search(r"\bor\b", lower) and not re.search(r"\band\b", lower) else "and"
        entity = self._entity_for_columns([c.field for c in conditions], lower, context)
        return TranslationResult(kind, FilterSpec(tuple(conditions), logic, entity), LIKELY)

    # -- modifications -----------------------------------------------------

    def _resolve_column(self, phrase: str, context: TranslationContext) -> tuple[EntityKind, str] | None:
        wanted = _squash(phrase)
        for kind in EntityKind:
            for column in context.columns(kind):
                if _squash(column) == wanted:
                    return kind, column
        return None

    def parse_modification(self, text: str, context: TranslationContext) -> TranslationResult:
        kind = TranslationKind.MODIFICATION
        lower = text.lower()

        update = re.match(
            r"^\s*(?:set|change|update)\s+(?:the\s+)?(?P<field>[\w\s-]+?)\s+to\s+['\"]?(?P<value>[^'\"]+?)['\"]?"
            r"(?:\s+(?:for|where|when|on|of)\s+(?P<cond>.+))?\s*$",
            text,
            re.I,
        )
        if update:
            resolved = self._resolve_column(update.group("field"), context)
            if resolved is None:
                return TranslationResult.neutral(kind, f"unknown column '{update.group('field').strip()}'")
            entity, column = resolved
            raw_value = update.group("value").strip()
            number = parse_int(raw_value)
            value: Any = number if number is not None else raw_value
            cond = update.group("cond") or ""
            conditions = self._conditions(cond, context) if cond else []
            applies_to_all = re.search(r"\ball\b", lower) is not None
            if conditions:
                confidence = CONFIDENT
            elif applies_to_all:
                confidence = LIKELY
            else:
                confidence = TENTATIVE
            intent = ModificationIntent(
                action="update",
                entity=entity,
                filters=FilterSpec(tuple(conditions)),
                changes={column: value},
            )
            return TranslationResult(kind, intent, confidence)

        delete = re.match(r"^\s*(?:delete|remove)\s+(?P<entity>clients?|workers?|tasks?)\s+(?:where|with)\s+(?P<cond>.+)$", lower)
        if delete:
            entity = EntityKind(delete.group("entity").rstrip("s") + "s")
            conditions = self._conditions(delete.group("cond"), context)
            if conditions:
                intent = ModificationIntent(action="delete", entity=entity, filters=FilterSpec(tuple(conditions)))
                return TranslationResult(kind, intent, LIKELY)

        return TranslationResult.neutral(kind, "please rephrase your modification request")

    # -- insights ----------------------------------------------------------

    def summarize(self, text: str, context: TranslationContext) -> TranslationResult:
        snapshot = context.snapshot
        counts = snapshot.counts
        if counts.total == 0:
            return TranslationResult.neutral(TranslationKind.INSIGHT, "no data loaded")

        high_priority = [c.key for c in snapshot.clients if (parse_int(c.priority_level) or 0) >= 4]
        demand = Counter(skill for t in snapshot.tasks for skill in t.required_skill_list)
        supply: set[str] = set()
        for worker in snapshot.workers:
            supply.update(worker.skill_set)
        uncovered = sorted(skill for skill in demand if skill not in supply)

        parts = [f"{counts.clients} clients, {counts.workers} workers and {counts.tasks} tasks are loaded."]
        if high_priority:
            parts.append(f"{len(high_priority)} high-priority clients: {', '.join(high_priority)}.")
        if demand:
            skill, uses = demand.most_common(1)[0]
            parts.append(f"Most requested skill is {skill} ({uses} tasks).")

        suggestions = []
        if uncovered:
            suggestions.append(f"Add workers covering: {', '.join(uncovered)}")
        requested = Counter(t for c in snapshot.clients for t in split_list(c.requested_task_ids))
        unrequested = sorted(t for t in snapshot.task_ids if t not in requested)
        if unrequested:
            suggestions.append(f"Tasks not requested by any client: {', '.join(unrequested)}")

        insight = InsightResponse(answer=" ".join(parts), data_points=counts.total, suggestions=tuple(suggestions))
        return TranslationResult(TranslationKind.INSIGHT, insight, TENTATIVE)
