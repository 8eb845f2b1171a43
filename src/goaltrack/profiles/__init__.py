"""Metabolic calculations: BMR, TDEE, calorie targets and macro splits."""

from goaltrack.profiles.body_calc import (
    ACTIVITY_MULTIPLIERS,
    CALORIE_FLOORS,
    CALORIES_PER_KG,
    ActivityLevel,
    GoalType,
    MacroTargets,
    PlanningMode,
    Sex,
    calculate_age,
    calculate_bmr,
    calculate_macros,
    calculate_target_calories,
    calculate_tdee,
    clamp_macros,
)
from goaltrack.profiles.macros import (
    EatingStyle,
    ProteinPriority,
    calculate_styled_macros,
    validate_macros,
)

__all__ = [
    "ACTIVITY_MULTIPLIERS",
    "CALORIES_PER_KG",
    "CALORIE_FLOORS",
    "ActivityLevel",
    "EatingStyle",
    "GoalType",
    "MacroTargets",
    "PlanningMode",
    "ProteinPriority",
    "Sex",
    "calculate_age",
    "calculate_bmr",
    "calculate_macros",
    "calculate_styled_macros",
    "calculate_target_calories",
    "calculate_tdee",
    "clamp_macros",
    "validate_macros",
]
