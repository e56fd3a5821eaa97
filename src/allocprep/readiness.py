from __future__ import annotations

from dataclasses import dataclass

from .entities import EntityCounts
from .validation import ValidationResult


@dataclass(frozen=True, slots=True)
class ReadinessGateResult:
    gate: str
    passed: bool
    details: str


@dataclass(frozen=True, slots=True)
class ExportReadiness:
    ok: bool
    reasons: list[str]
    gates: list[ReadinessGateResult]


def check_export_readiness(counts: EntityCounts, validation: ValidationResult | None) -> ExportReadiness:
    """Evaluate every export gate; reasons list each failing one, not just the first."""
    gates: list[ReadinessGateResult] = []

    if validation is None:
        gates.append(
            ReadinessGateResult(
                gate="validation_passed",
                passed=False,
                details="validation has not been run",
            )
        )
    else:
        gates.append(
            ReadinessGateResult(
                gate="validation_passed",
                passed=validation.is_valid,
                details=(
                    f"errors=0,warnings={validation.total_warnings}"
                    if validation.is_valid
                    else f"{validation.total_errors} validation error(s) must be resolved"
                ),
            )
        )

    has_data = counts.total > 0
    gates.append(
        ReadinessGateResult(
            gate="data_loaded",
            passed=has_data,
            details=(
                f"clients={counts.clients},workers={counts.workers},tasks={counts.tasks}"
                if has_data
                else "no data loaded"
            ),
        )
    )

    return ExportReadiness(
        ok=all(g.passed for g in gates),
        reasons=[g.details for g in gates if not g.passed],
        gates=gates,
    )
