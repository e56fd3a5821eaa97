"""Session state tying the store, validation, rules, weights and translator together.

Validation results are threaded through the session rather than held in
module state. Each run captures an immutable snapshot and a generation
number; a result is only applied when its generation is still the newest,
so a slow run that finishes after a newer one was started is dropped.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Mapping

from .config import Settings
from .entities import CellValue, EntityKind, EntitySnapshot, EntityStore
from .export import build_rule_bundle, write_export
from .priorities import PriorityWeights
from .readiness import ExportReadiness, check_export_readiness
from .rules import Rule, RuleDraft, RuleRegistry, RuleRejection
from .translator import (
    FilterSpec,
    InsightResponse,
    LocalKeywordTranslator,
    ModificationIntent,
    NLTranslator,
    TranslationContext,
    TranslationKind,
    TranslationResult,
    apply_filter,
)
from .validation import ValidationResult, validate_snapshot

logger = logging.getLogger(__name__)


class Surface(str, Enum):
    SEARCH = "search"
    MODIFICATION = "modification"
    RULE_DRAFT = "rule_draft"
    INSIGHT = "insight"


SURFACE_KINDS = {
    Surface.SEARCH: TranslationKind.FILTER,
    Surface.MODIFICATION: TranslationKind.MODIFICATION,
    Surface.RULE_DRAFT: TranslationKind.RULE_DRAFT,
    Surface.INSIGHT: TranslationKind.INSIGHT,
}

_PAYLOAD_TYPES = {
    TranslationKind.FILTER: FilterSpec,
    TranslationKind.MODIFICATION: ModificationIntent,
    TranslationKind.RULE_DRAFT: RuleDraft,
    TranslationKind.INSIGHT: InsightResponse,
}

# kinds that would change data or rules if accepted
_MUTATING_KINDS = {TranslationKind.MODIFICATION, TranslationKind.RULE_DRAFT}

SUPERSEDED = "superseded by a newer request"


class TranslatorGateway:
    """Keeps at most one live translator call per surface.

    A new request on a surface cancels the one in flight; the caller of the
    cancelled request gets a neutral result instead of an exception.
    """

    def __init__(self, translator: NLTranslator, *, timeout_s: float = 20.0, confidence_threshold: float = 0.8):
        self.translator = translator
        self.timeout_s = timeout_s
        self.confidence_threshold = confidence_threshold
        self._live: dict[Surface, asyncio.Task] = {}

    def is_live(self, surface: Surface) -> bool:
        task = self._live.get(surface)
        return task is not None and not task.done()

    async def request(self, surface: Surface, text: str, context: TranslationContext) -> TranslationResult:
        surface = Surface(surface)
        kind = SURFACE_KINDS[surface]
        previous = self._live.get(surface)
        if previous is not None and not previous.done():
            previous.cancel()

        task = asyncio.ensure_future(self._call(kind, text, context))
        self._live[surface] = task
        try:
            result = await task
        except asyncio.CancelledError:
            if self._live.get(surface) is not task:
                return TranslationResult.neutral(kind, SUPERSEDED)
            raise
        finally:
            if self._live.get(surface) is task:
                del self._live[surface]
        return result

    async def _call(self, kind: TranslationKind, text: str, context: TranslationContext) -> TranslationResult:
        try:
            result = await asyncio.wait_for(self.translator.translate(text, kind, context), self.timeout_s)
        except asyncio.TimeoutError:
            logger.warning("translator timed out after %.1fs (%s)", self.timeout_s, kind.value)
            return TranslationResult.neutral(kind)
        except Exception as exc:  # noqa: BLE001
            logger.warning("translator failed (%s): %s: %s", kind.value, type(exc).__name__, exc)
            return TranslationResult.neutral(kind)
        return self._screen(result, kind)

    def _screen(self, result: object, kind: TranslationKind) -> TranslationResult:
        if not isinstance(result, TranslationResult) or result.kind != kind:
            logger.warning("translator returned a malformed result for %s", kind.value)
            return TranslationResult.neutral(kind)
        if not result.ok:
            return result
        if not isinstance(result.payload, _PAYLOAD_TYPES[kind]):
            logger.warning("translator payload has the wrong type for %s", kind.value)
            return TranslationResult.neutral(kind)
        if kind in _MUTATING_KINDS and result.confidence <= self.confidence_threshold:
            return TranslationResult.neutral(
                kind,
                f"low confidence ({result.confidence:.2f}); please rephrase",
            )
        return result


@dataclass(frozen=True, slots=True)
class ValidationRun:
    generation: int
    snapshot: EntitySnapshot


@dataclass(frozen=True, slots=True)
class SearchOutcome:
    result: TranslationResult
    matches: dict[EntityKind, list[int]] = field(default_factory=dict)


class AllocationSession:
    def __init__(
        self,
        *,
        translator: NLTranslator | None = None,
        settings: Settings | None = None,
        registry: RuleRegistry | None = None,
    ):
        self.settings = settings or Settings()
        self.store = EntityStore()
        if registry is None:
            registry = RuleRegistry(self.store, enforce_references=self.settings.enforce_rule_references)
        elif registry.store is None:
            registry.store = self.store
        self.rules = registry
        self.priorities = PriorityWeights()
        self.gateway = TranslatorGateway(
            translator or LocalKeywordTranslator(),
            timeout_s=self.settings.translator_timeout_s,
            confidence_threshold=self.settings.confidence_threshold,
        )
        self.validation: ValidationResult | None = None
        self.pending_modification: ModificationIntent | None = None
        self.pending_rule_draft: RuleDraft | None = None
        self._generation = 0
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Data entry points (manual edits and accepted intents alike)
    # ------------------------------------------------------------------

    def load(self, kind: EntityKind | str, rows: Iterable[Any]) -> ValidationResult | None:
        self.store.load(kind, rows)
        return self.revalidate()

    def edit_cell(self, kind: EntityKind | str, row_index: int, column: str, value: CellValue) -> ValidationResult | None:
        self.store.update_cell(kind, row_index, column, value)
        return self.revalidate()

    def append_row(self, kind: EntityKind | str, row: Mapping[str, Any]) -> ValidationResult | None:
        self.store.append_row(kind, row)
        return self.revalidate()

    def delete_rows(self, kind: EntityKind | str, row_indices: Iterable[int]) -> ValidationResult | None:
        self.store.delete_rows(kind, row_indices)
        return self.revalidate()

    # ------------------------------------------------------------------
    # Validation sequencing
    # ------------------------------------------------------------------

    def begin_validation(self) -> ValidationRun:
        with self._lock:
            self._generation += 1
            return ValidationRun(generation=self._generation, snapshot=self.store.snapshot())

    def complete_validation(self, run: ValidationRun, result: ValidationResult) -> bool:
        with self._lock:
            if run.generation != self._generation:
                logger.debug("discarding stale validation run %d (latest %d)", run.generation, self._generation)
                return False
            self.validation = result
            return True

    def revalidate(self) -> ValidationResult | None:
        run = self.begin_validation()
        self.complete_validation(run, validate_snapshot(run.snapshot))
        return self.validation

    async def revalidate_async(self) -> ValidationResult | None:
        run = self.begin_validation()
        result = await asyncio.to_thread(validate_snapshot, run.snapshot)
        self.complete_validation(run, result)
        return self.validation

    # ------------------------------------------------------------------
    # Rules / readiness / export
    # ------------------------------------------------------------------

    def add_rule(self, draft: RuleDraft) -> Rule | RuleRejection:
        return self.rules.add_rule(draft)

    def remove_rule(self, rule_id: str) -> bool:
        return self.rules.remove_rule(rule_id)

    def readiness(self) -> ExportReadiness:
        return check_export_readiness(self.store.counts, self.validation)

    def rule_bundle(self) -> dict[str, Any]:
        return build_rule_bundle(
            self.rules.list_rules(),
            self.priorities,
            self.validation,
            version=self.settings.export_version,
        )

    def export(self, directory: Path | str) -> list[Path]:
        return write_export(
            directory,
            self.store.snapshot(),
            self.rules.list_rules(),
            self.priorities,
            self.validation,
            version=self.settings.export_version,
        )

    # ------------------------------------------------------------------
    # Translator surfaces
    # ------------------------------------------------------------------

    def _context(self) -> TranslationContext:
        return TranslationContext(snapshot=self.store.snapshot())

    async def search(self, text: str) -> SearchOutcome:
        result = await self.gateway.request(Surface.SEARCH, text, self._context())
        if not result.ok:
            return SearchOutcome(result=result)
        spec: FilterSpec = result.payload
        snapshot = self.store.snapshot()
        kinds = [spec.entity] if spec.entity else list(EntityKind)
        return SearchOutcome(result=result, matches={k: apply_filter(spec, snapshot.rows(k)) for k in kinds})

    async def suggest_modification(self, text: str) -> TranslationResult:
        result = await self.gateway.request(Surface.MODIFICATION, text, self._context())
        if result.ok:
            self.pending_modification = result.payload
        return result

    def accept_modification(self) -> int:
        """Apply the pending modification through the store's edit entry points."""
        intent = self.pending_modification
        if intent is None:
            raise ValueError("No pending modification to accept")
        self.pending_modification = None

        indices = apply_filter(intent.filters, self.store.rows(intent.entity))
        if intent.action == "update":
            for index in indices:
                for column, value in intent.changes.items():
                    self.store.update_cell(intent.entity, index, column, value)
            affected = len(indices)
        elif intent.action == "add":
            self.store.append_row(intent.entity, intent.changes)
            affected = 1
        elif intent.action == "delete":
            if not intent.filters.conditions:
                raise ValueError("Refusing to delete rows without a filter")
            affected = self.store.delete_rows(intent.entity, indices)
        else:
            raise ValueError(f"Unsupported modification action '{intent.action}'")

        logger.info("applied %s to %d %s row(s)", intent.action, affected, intent.entity.value)
        self.revalidate()
        return affected

    def reject_modification(self) -> None:
        self.pending_modification = None

    async def suggest_rule(self, text: str) -> TranslationResult:
        result = await self.gateway.request(Surface.RULE_DRAFT, text, self._context())
        if result.ok:
            self.pending_rule_draft = result.payload
        return result

    def accept_rule(self) -> Rule | RuleRejection:
        draft = self.pending_rule_draft
        if draft is None:
            raise ValueError("No pending rule draft to accept")
        self.pending_rule_draft = None
        return self.rules.add_rule(draft)

    def reject_rule(self) -> None:
        self.pending_rule_draft = None

    async def ask(self, text: str) -> TranslationResult:
        return await self.gateway.request(Surface.INSIGHT, text, self._context())
