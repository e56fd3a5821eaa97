"""Command-line entry point: load data, validate, draft rules, export.

Usage:
    python -m src.allocprep.cli --workbook data.xlsx
    python -m src.allocprep.cli --clients clients.csv --workers workers.csv --tasks tasks.csv
    python -m src.allocprep.cli --workbook data.xlsx --preset fairness --rule "T1 and T2 run together" --export-dir out
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import load_settings
from .entities import EntityKind
from .export import ExportBlockedError
from .ingestion import ContractError, load_entity_csv, load_entity_workbook
from .priorities import PRESETS
from .rules import RuleRejection, rule_to_dict
from .session import AllocationSession
from .translator import LocalKeywordTranslator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Validate clients/workers/tasks data and prepare allocation rules")
    parser.add_argument("--workbook", default=None, help="Workbook with Clients, Workers and Tasks sheets")
    parser.add_argument("--clients", default=None, help="Clients CSV")
    parser.add_argument("--workers", default=None, help="Workers CSV")
    parser.add_argument("--tasks", default=None, help="Tasks CSV")
    parser.add_argument("--preset", choices=sorted(PRESETS), default=None, help="Priority weight preset")
    parser.add_argument("--rule", action="append", default=[], help="Business rule in plain English (repeatable)")
    parser.add_argument("--yes", action="store_true", help="Accept drafted rules without asking")
    parser.add_argument("--use-llm", action="store_true", help="Interpret rules with the Anthropic model")
    parser.add_argument("--export-dir", default=None, help="Write validated CSVs and rules-config.json here")
    parser.add_argument("--env-file", default=None, help="Path to .env file")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser


def _load_data(session: AllocationSession, args: argparse.Namespace) -> None:
    if args.workbook:
        found, reports = load_entity_workbook(args.workbook)
        for kind, rows in found.items():
            session.load(kind, rows)
        for report in reports:
            print(f"  Loaded {report.records_parsed} {report.entity.value} from '{report.source}'")
    for kind, path in (
        (EntityKind.CLIENTS, args.clients),
        (EntityKind.WORKERS, args.workers),
        (EntityKind.TASKS, args.tasks),
    ):
        if not path:
            continue
        rows, report = load_entity_csv(path, kind)
        session.load(kind, rows)
        print(f"  Loaded {report.records_parsed} {kind.value} from '{report.source}'")


def _print_validation(session: AllocationSession) -> None:
    result = session.validation
    if result is None:
        print("\n  Validation: not run")
        return
    print("\n" + "=" * 60)
    print(f"  Validation score: {result.score}/100")
    print(f"  Errors: {result.total_errors}   Warnings: {result.total_warnings}")
    print("=" * 60)
    for issue in result.errors:
        where = f"{issue.entity.value}"
        if issue.row_index is not None:
            where += f" row {issue.row_index + 1}"
        print(f"  [{issue.severity.value.upper():7}] {where}: {issue.message}")
        if issue.suggestion:
            print(f"            -> {issue.suggestion}")


def _confirm(prompt: str) -> bool:
    try:
        return input(f"  {prompt} [y/N] ").strip().lower() in ("y", "yes")
    except (EOFError, KeyboardInterrupt):
        return False


def _draft_rules(session: AllocationSession, texts: list[str], auto_accept: bool) -> None:
    for text in texts:
        result = asyncio.run(session.suggest_rule(text))
        if not result.ok:
            print(f"\n  Rule not understood: \"{text}\" ({result.message})")
            continue
        draft = session.pending_rule_draft
        print(f"\n  Drafted {draft.rule_type.value} rule ({result.confidence:.0%} confidence): {dict(draft.params)}")
        if not (auto_accept or _confirm("Add this rule?")):
            session.reject_rule()
            print("  Rule discarded.")
            continue
        outcome = session.accept_rule()
        if isinstance(outcome, RuleRejection):
            print(f"  Rule rejected: {outcome.reason}")
        else:
            print(f"  Rule {outcome.id} added: {rule_to_dict(outcome)['description']}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = load_settings(args.env_file)

    translator = LocalKeywordTranslator()
    if args.use_llm:
        if not settings.has_api_key:
            print("\n[ERROR] ANTHROPIC_API_KEY not set.")
            print("Please set it in .env file or export it:")
            print("  export ANTHROPIC_API_KEY=sk-ant-...")
            return 1
        from .llm import AnthropicTranslator

        translator = AnthropicTranslator(api_key=settings.anthropic_api_key, model=settings.model)

    session = AllocationSession(translator=translator, settings=settings)

    if not (args.workbook or args.clients or args.workers or args.tasks):
        print("\n[ERROR] Nothing to load. Pass --workbook or --clients/--workers/--tasks.")
        return 1

    try:
        _load_data(session, args)
    except (ContractError, FileNotFoundError) as exc:
        print(f"\n[ERROR] Failed to load data: {exc}")
        return 1

    _print_validation(session)

    if args.preset:
        session.priorities.apply_preset(args.preset)
    summary = session.priorities.summary()
    print(f"\n  Priorities: {session.priorities.as_dict()}")
    print(f"    highest={summary.highest.value} lowest={summary.lowest.value} average={summary.average:.1f}")

    if args.rule:
        _draft_rules(session, args.rule, args.yes)

    readiness = session.readiness()
    print(f"\n  Export ready: {'yes' if readiness.ok else 'no'}")
    for reason in readiness.reasons:
        print(f"    - {reason}")

    if args.export_dir:
        try:
            written = session.export(args.export_dir)
        except ExportBlockedError as exc:
            print(f"\n[ERROR] {exc}")
            return 2
        for path in written:
            print(f"  Wrote {path}")

    return 0 if readiness.ok else 2


if __name__ == "__main__":
    sys.exit(main())
