from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .export import BUNDLE_VERSION

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

DEFAULT_MODEL = "claude-sonnet-4-20250514"

_PLACEHOLDER_KEYS = {"", "your-key-here"}
_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class Settings:
    anthropic_api_key: str = ""
    model: str = DEFAULT_MODEL
    translator_timeout_s: float = 20.0
    confidence_threshold: float = 0.8
    export_version: str = BUNDLE_VERSION
    enforce_rule_references: bool = True

    @property
    def has_api_key(self) -> bool:
        return self.anthropic_api_key not in _PLACEHOLDER_KEYS


def _float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def load_settings(env_file: Path | str | None = None) -> Settings:
    """Read settings from the environment, after loading ``.env`` if present."""
    load_dotenv(env_file or PROJECT_ROOT / ".env")
    key = os.environ.get("ANTHROPIC_API_KEY", "").strip()
    return Settings(
        anthropic_api_key="" if key in _PLACEHOLDER_KEYS else key,
        model=os.environ.get("ALLOCPREP_MODEL", "").strip() or DEFAULT_MODEL,
        translator_timeout_s=_float("ALLOCPREP_TRANSLATOR_TIMEOUT", 20.0),
        confidence_threshold=_float("ALLOCPREP_CONFIDENCE_THRESHOLD", 0.8),
        export_version=os.environ.get("ALLOCPREP_EXPORT_VERSION", "").strip() or BUNDLE_VERSION,
        enforce_rule_references=os.environ.get("ALLOCPREP_ENFORCE_RULE_REFERENCES", "true").strip().lower()
        in _TRUTHY,
    )
