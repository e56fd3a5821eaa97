from __future__ import annotations

import csv
import io
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from .entities import EntityKind, EntitySnapshot, Record
from .priorities import PriorityWeights
from .readiness import check_export_readiness
from .rules import Rule, rule_to_dict
from .validation import ValidationResult

logger = logging.getLogger(__name__)

BUNDLE_VERSION = "1.0"

EXPORT_FILENAMES = {
    EntityKind.CLIENTS: "clients-validated.csv",
    EntityKind.WORKERS: "workers-validated.csv",
    EntityKind.TASKS: "tasks-validated.csv",
}
RULES_FILENAME = "rules-config.json"


class ExportBlockedError(RuntimeError):
    def __init__(self, reasons: list[str]):
        super().__init__("Export blocked: " + "; ".join(reasons))
        self.reasons = reasons


def build_rule_bundle(
    rules: Sequence[Rule],
    priorities: PriorityWeights,
    validation: ValidationResult | None,
    *,
    version: str = BUNDLE_VERSION,
    exported_at: datetime | None = None,
) -> dict[str, Any]:
    stamp = (exported_at or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return {
        "rules": [rule_to_dict(r) for r in rules],
        "priorities": priorities.as_dict(),
        "metadata": {
            "exportedAt": stamp.isoformat().replace("+00:00", "Z"),
            "version": version,
            "totalRules": len(rules),
            "validationStatus": "passed" if validation is not None and validation.is_valid else "failed",
        },
    }


def bundle_json(bundle: dict[str, Any]) -> str:
    return json.dumps(bundle, indent=2)


def entity_csv(records: Sequence[Record]) -> str:
    """Header row from the first record's columns, then one line per record.

    Values containing a comma (or a quote / newline) are wrapped in double quotes.
    """
    if not records:
        return ""
    headers = list(records[0].columns)
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(headers)
    for record in records:
        row = record.to_row()
        writer.writerow(["" if row.get(h) is None else row.get(h) for h in headers])
    return buffer.getvalue()


def write_export(
    directory: Path | str,
    snapshot: EntitySnapshot,
    rules: Sequence[Rule],
    priorities: PriorityWeights,
    validation: ValidationResult | None,
    *,
    version: str = BUNDLE_VERSION,
) -> list[Path]:
    """Write the validated CSVs and the rule bundle; refuses unless export is ready."""
    readiness = check_export_readiness(snapshot.counts, validation)
    if not readiness.ok:
        raise ExportBlockedError(readiness.reasons)

    out_dir = Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for kind, filename in EXPORT_FILENAMES.items():
        records = snapshot.rows(kind)
        if not records:
            continue
        path = out_dir / filename
        path.write_text(entity_csv(records), encoding="utf-8")
        written.append(path)

    bundle = build_rule_bundle(rules, priorities, validation, version=version)
    path = out_dir / RULES_FILENAME
    path.write_text(bundle_json(bundle), encoding="utf-8")
    written.append(path)
    logger.info("exported %d files to %s", len(written), out_dir)
    return written
