"""Goal lifecycle, weight trend and weekly reflection.

Key components:
- Half-life EWMA trend weight over logged entries
- Timeline planning with safety-capped weekly rates
- GoalManager: the single active goal and its current targets
- ReflectionWorkflow: banner gating, target preview and atomic submit
"""

from __future__ import annotations

from goaltrack.tracking.ema import calculate_trend_weight, update_trend
from goaltrack.tracking.goals import GoalManager, GoalParams, GoalStatus
from goaltrack.tracking.models import (
    BannerState,
    Goal,
    Profile,
    Reflection,
    ReflectionResult,
    Sentiment,
    TargetSnapshot,
    WeightEntry,
)
from goaltrack.tracking.reflection import (
    ReflectionPhase,
    ReflectionWorkflow,
    apply_hysteresis,
)
from goaltrack.tracking.user_settings import UserSettings
from goaltrack.tracking.weights import WeightLog

__all__ = [
    "BannerState",
    "Goal",
    "GoalManager",
    "GoalParams",
    "GoalStatus",
    "Profile",
    "Reflection",
    "ReflectionPhase",
    "ReflectionResult",
    "ReflectionWorkflow",
    "Sentiment",
    "TargetSnapshot",
    "UserSettings",
    "WeightEntry",
    "WeightLog",
    "apply_hysteresis",
    "calculate_trend_weight",
    "update_trend",
]
