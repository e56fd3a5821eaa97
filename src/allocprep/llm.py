"""Hosted-model implementation of the NL translator port.

Uses the Anthropic API with tightly constrained prompts that ask for JSON
only. Anything that goes wrong (transport error, refusal, prose instead of
JSON, a payload that does not decode) comes back as a neutral
``TranslationResult``; nothing is raised to the caller.
"""
from __future__ import annotations

import json
import logging
import os
import re

from anthropic import AsyncAnthropic

from .config import DEFAULT_MODEL
from .translator import (
    COULD_NOT_PROCESS,
    TranslationContext,
    TranslationKind,
    TranslationResult,
    payload_from_dict,
)

logger = logging.getLogger(__name__)

SAMPLE_ROWS = 5


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = """You are the data assistant of a resource-allocation preparation tool.
The user works with three tables: clients, workers and tasks.
List-valued cells (RequestedTaskIDs, Skills, RequiredSkills, PreferredPhases) are comma-separated strings.
You must return ONLY valid JSON, no markdown, no explanation.
Include a "confidence" number between 0 and 1. Be conservative: use a low confidence when the request is ambiguous."""

_SHAPES = {
    TranslationKind.FILTER: """Convert the query into a data filter:
{"entity": "clients|workers|tasks|null", "filters": [{"field": "ColumnName", "operator": "equals|contains|greater|less", "value": "..."}], "logic": "and|or", "confidence": 0.9}""",
    TranslationKind.MODIFICATION: """Convert the request into one data change:
{"action": "update|add|delete", "entity": "clients|workers|tasks", "filters": [{"field": "ColumnName", "operator": "equals", "value": "..."}], "logic": "and", "changes": {"ColumnName": "newValue"}, "confidence": 0.95}""",
    TranslationKind.RULE_DRAFT: """Convert the request into one allocation rule. Use exactly one of these shapes:
{"type": "coRun", "tasks": ["T1", "T2"], "description": "...", "confidence": 0.9}
{"type": "slotRestriction", "groupType": "client|worker", "group": "...", "minCommonSlots": 2, "description": "...", "confidence": 0.9}
{"type": "loadLimit", "workerGroup": "...", "maxSlotsPerPhase": 3, "description": "...", "confidence": 0.9}
{"type": "phaseWindow", "taskId": "T1", "allowedPhases": [1, 2], "description": "...", "confidence": 0.9}
{"type": "precedence", "before": "T1", "after": "T2", "description": "...", "confidence": 0.9}
Only reference IDs and groups that appear in the data sample.""",
    TranslationKind.INSIGHT: """Answer the question about the data:
{"answer": "...", "dataPoints": 12, "suggestions": ["..."], "confidence": 0.8}""",
}


def build_prompt(text: str, kind: TranslationKind, context: TranslationContext) -> str:
    snapshot = context.snapshot
    sample = {
        "clients": [r.to_row() for r in snapshot.clients[:SAMPLE_ROWS]],
        "workers": [r.to_row() for r in snapshot.workers[:SAMPLE_ROWS]],
        "tasks": [r.to_row() for r in snapshot.tasks[:SAMPLE_ROWS]],
    }
    counts = snapshot.counts
    return f"""Request: "{text}"

Columns: {json.dumps(context.schema())}
Row counts: clients={counts.clients}, workers={counts.workers}, tasks={counts.tasks}
Data sample: {json.dumps(sample, default=str)}

{_SHAPES[kind]}"""


# ---------------------------------------------------------------------------
# Translator
# ---------------------------------------------------------------------------

class AnthropicTranslator:
    """Wrapper around the Anthropic messages API implementing ``NLTranslator``."""

    def __init__(self, api_key: str | None = None, model: str = DEFAULT_MODEL, client: AsyncAnthropic | None = None):
        if client is None:
            key = api_key or os.environ.get("ANTHROPIC_API_KEY", "")
            if not key or key == "your-key-here":
                raise ValueError(
                    "ANTHROPIC_API_KEY not set. Please set it in .env or as an environment variable."
                )
            client = AsyncAnthropic(api_key=key)
        self.client = client
        self.model = model

    async def translate(
        self,
        text: str,
        kind: TranslationKind,
        context: TranslationContext,
    ) -> TranslationResult:
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=1024,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": build_prompt(text, kind, context)}],
            )
            raw = response.content[0].text.strip()
        except Exception as exc:  # noqa: BLE001
            logger.warning("translator request failed: %s: %s", type(exc).__name__, exc)
            return TranslationResult.neutral(kind)
        return self._parse_response(raw, kind)

    def _parse_response(self, raw: str, kind: TranslationKind) -> TranslationResult:
        """Parse and validate the model's JSON reply."""
        # Strip markdown code fences if present
        cleaned = raw.strip()
        if cleaned.startswith("```"):
            cleaned = re.sub(r"^```(?:json)?\n?", "", cleaned)
            cleaned = re.sub(r"\n?```$", "", cleaned)
        cleaned = cleaned.strip()

        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError:
            logger.warning("translator returned non-JSON output for %s", kind.value)
            return TranslationResult.neutral(kind)
        if not isinstance(data, dict):
            return TranslationResult.neutral(kind)

        try:
            confidence = float(data.pop("confidence", 0.0))
        except (TypeError, ValueError):
            confidence = 0.0
        confidence = min(1.0, max(0.0, confidence))

        try:
            payload = payload_from_dict(kind, data)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("translator payload for %s rejected: %s", kind.value, exc)
            return TranslationResult.neutral(kind, COULD_NOT_PROCESS)
        return TranslationResult(kind=kind, payload=payload, confidence=confidence)
