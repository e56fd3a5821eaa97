"""Validation and rule engine that prepares clients/workers/tasks data for allocation."""

from .entities import Client, EntityCounts, EntityKind, EntitySnapshot, EntityStore, Task, Worker
from .validation import IssueKind, Severity, ValidationError, ValidationResult, validate, validate_snapshot
from .rules import (
    CoRunRule,
    LoadLimitRule,
    PhaseWindowRule,
    PrecedenceRule,
    Rule,
    RuleDraft,
    RuleRegistry,
    RuleRejection,
    RuleType,
    SlotRestrictionRule,
)
from .priorities import PRESETS, PriorityCategory, PrioritySummary, PriorityWeights
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
from .readiness import ExportReadiness, ReadinessGateResult, check_export_readiness
from .export import ExportBlockedError, build_rule_bundle, entity_csv, write_export
from .ingestion import ContractError, IngestionReport, load_entity_csv, load_entity_workbook
from .config import Settings, load_settings
from .session import AllocationSession, Surface, TranslatorGateway

__all__ = [
    "Client",
    "Worker",
    "Task",
    "EntityKind",
    "EntityCounts",
    "EntitySnapshot",
    "EntityStore",
    "IssueKind",
    "Severity",
    "ValidationError",
    "ValidationResult",
    "validate",
    "validate_snapshot",
    "Rule",
    "RuleType",
    "RuleDraft",
    "RuleRejection",
    "RuleRegistry",
    "CoRunRule",
    "SlotRestrictionRule",
    "LoadLimitRule",
    "PhaseWindowRule",
    "PrecedenceRule",
    "PRESETS",
    "PriorityCategory",
    "PrioritySummary",
    "PriorityWeights",
    "FilterSpec",
    "ModificationIntent",
    "InsightResponse",
    "NLTranslator",
    "LocalKeywordTranslator",
    "TranslationContext",
    "TranslationKind",
    "TranslationResult",
    "apply_filter",
    "ExportReadiness",
    "ReadinessGateResult",
    "check_export_readiness",
    "ExportBlockedError",
    "build_rule_bundle",
    "entity_csv",
    "write_export",
    "ContractError",
    "IngestionReport",
    "load_entity_csv",
    "load_entity_workbook",
    "Settings",
    "load_settings",
    "AllocationSession",
    "Surface",
    "TranslatorGateway",
]
