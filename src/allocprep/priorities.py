from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Mapping


class PriorityCategory(str, Enum):
    TASK_FULFILLMENT = "taskFulfillment"
    FAIRNESS = "fairness"
    EFFICIENCY = "efficiency"
    URGENCY = "urgency"
    SKILL_MATCH = "skillMatch"
    WORKLOAD_BALANCE = "workloadBalance"


# canonical order, also used for tie-breaking
CATEGORIES: tuple[PriorityCategory, ...] = tuple(PriorityCategory)

WEIGHT_MIN = 0
WEIGHT_MAX = 100

DEFAULT_WEIGHTS: dict[PriorityCategory, int] = {
    PriorityCategory.TASK_FULFILLMENT: 50,
    PriorityCategory.FAIRNESS: 30,
    PriorityCategory.EFFICIENCY: 40,
    PriorityCategory.URGENCY: 60,
    PriorityCategory.SKILL_MATCH: 45,
    PriorityCategory.WORKLOAD_BALANCE: 35,
}

PRESETS: dict[str, dict[PriorityCategory, int]] = {
    "efficiency": {
        PriorityCategory.TASK_FULFILLMENT: 80,
        PriorityCategory.FAIRNESS: 20,
        PriorityCategory.EFFICIENCY: 90,
        PriorityCategory.URGENCY: 40,
        PriorityCategory.SKILL_MATCH: 70,
        PriorityCategory.WORKLOAD_BALANCE: 30,
    },
    "fairness": {
        PriorityCategory.TASK_FULFILLMENT: 40,
        PriorityCategory.FAIRNESS: 90,
        PriorityCategory.EFFICIENCY: 30,
        PriorityCategory.URGENCY: 50,
        PriorityCategory.SKILL_MATCH: 60,
        PriorityCategory.WORKLOAD_BALANCE: 80,
    },
    "urgent": {
        PriorityCategory.TASK_FULFILLMENT: 60,
        PriorityCategory.FAIRNESS: 40,
        PriorityCategory.EFFICIENCY: 50,
        PriorityCategory.URGENCY: 95,
        PriorityCategory.SKILL_MATCH: 70,
        PriorityCategory.WORKLOAD_BALANCE: 25,
    },
}


def clamp_weight(value: float) -> int:
    value = float(value)
    if math.isnan(value):
        raise ValueError("priority weight must be a number, got NaN")
    return int(round(min(WEIGHT_MAX, max(WEIGHT_MIN, value))))


def weight_band(value: int) -> str:
    if value >= 70:
        return "high"
    if value >= 40:
        return "medium"
    return "low"


@dataclass(frozen=True, slots=True)
class PrioritySummary:
    total: int
    average: float
    highest: PriorityCategory
    lowest: PriorityCategory


class PriorityWeights:
    """Six fixed allocation weights, each held in [0, 100]."""

    def __init__(self, weights: Mapping[PriorityCategory, int] | None = None):
        self._weights: dict[PriorityCategory, int] = dict(DEFAULT_WEIGHTS)
        if weights:
            for category, value in weights.items():
                self._weights[PriorityCategory(category)] = clamp_weight(value)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, float]) -> "PriorityWeights":
        """Merge a partial ``{"fairness": 70, ...}`` mapping over the defaults."""
        return cls({PriorityCategory(k): v for k, v in payload.items()})

    def get(self, category: PriorityCategory | str) -> int:
        return self._weights[PriorityCategory(category)]

    def set_weight(self, category: PriorityCategory | str, value: float) -> int:
        category = PriorityCategory(category)
        self._weights[category] = clamp_weight(value)
        return self._weights[category]

    def apply_preset(self, name: str) -> None:
        preset = PRESETS.get(name.strip().lower())
        if preset is None:
            raise ValueError(f"Unknown priority preset '{name}'. Expected one of: {', '.join(PRESETS)}")
        self._weights = dict(preset)

    def reset_to_default(self) -> None:
        self._weights = dict(DEFAULT_WEIGHTS)

    def summary(self) -> PrioritySummary:
        values = [self._weights[c] for c in CATEGORIES]
        total = sum(values)
        # max/min return the first match, which is the canonical tie-breaker
        highest = max(CATEGORIES, key=lambda c: self._weights[c])
        lowest = min(CATEGORIES, key=lambda c: self._weights[c])
        return PrioritySummary(total=total, average=total / len(CATEGORIES), highest=highest, lowest=lowest)

    def as_dict(self) -> dict[str, int]:
        return {c.value: self._weights[c] for c in CATEGORIES}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PriorityWeights):
            return NotImplemented
        return self.as_dict() == other.as_dict()

    def __repr__(self) -> str:
        return f"PriorityWeights({self.as_dict()})"
