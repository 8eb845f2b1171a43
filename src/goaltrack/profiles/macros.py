"""Macro split by eating style and protein priority.

Used when a goal is created with explicit eating preferences. Protein is
set from body weight first; the calories left over are divided between
carbohydrate and fat according to the eating style, and styles with a carb
cap move any excess carbohydrate calories over to fat.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from goaltrack.profiles.body_calc import CALORIES_PER_GRAM, MacroTargets


class EatingStyle(Enum):
    """How non-protein calories are split between carbs and fat."""
    FLEXIBLE = "flexible"
    CARB_FOCUSED = "carb_focused"
    FAT_FOCUSED = "fat_focused"
    VERY_LOW_CARB = "very_low_carb"


class ProteinPriority(Enum):
    """Protein intake level relative to body weight."""
    STANDARD = "standard"
    ACTIVE = "active"
    ATHLETIC = "athletic"
    MAXIMUM = "maximum"


@dataclass(frozen=True)
class StyleSplit:
    """Carb/fat ratios of the non-protein calories, with optional carb cap."""

    carb_ratio: float
    fat_ratio: float
    carb_cap_g: Optional[int] = None


EATING_STYLE_SPLITS = {
    EatingStyle.FLEXIBLE: StyleSplit(0.5, 0.5),
    EatingStyle.CARB_FOCUSED: StyleSplit(0.65, 0.35),
    EatingStyle.FAT_FOCUSED: StyleSplit(0.35, 0.65, carb_cap_g=150),
    EatingStyle.VERY_LOW_CARB: StyleSplit(0.1, 0.9, carb_cap_g=50),
}

# grams of protein per kg of body weight
PROTEIN_PRIORITY_G_PER_KG = {
    ProteinPriority.STANDARD: 1.32,  # 0.6 g/lb
    ProteinPriority.ACTIVE: 1.65,    # 0.75 g/lb
    ProteinPriority.ATHLETIC: 1.98,  # 0.9 g/lb
    ProteinPriority.MAXIMUM: 2.2,    # 1.0 g/lb
}

MIN_PROTEIN_G = 40
MIN_FAT_G = 30
MAX_CALORIE_DRIFT = 50


def calculate_styled_macros(
    weight_kg: float,
    target_calories: float,
    eating_style: Union[EatingStyle, str] = EatingStyle.FLEXIBLE,
    protein_priority: Union[ProteinPriority, str] = ProteinPriority.ACTIVE,
) -> MacroTargets:
    """Calculate macro targets from eating style and protein priority.

    Steps:
    1. Protein from body weight and protein priority
    2. Remaining calories after protein (never negative)
    3. Split the remainder between carbs and fat by eating style
    4. Apply the style's carb cap, reallocating excess calories to fat
    """
    style = EatingStyle(eating_style) if isinstance(eating_style, str) else eating_style
    priority = (
        ProteinPriority(protein_priority)
        if isinstance(protein_priority, str)
        else protein_priority
    )
    split = EATING_STYLE_SPLITS[style]

    protein_g = round(weight_kg * PROTEIN_PRIORITY_G_PER_KG[priority])
    protein_calories = protein_g * CALORIES_PER_GRAM["protein"]

    remaining = max(0.0, target_calories - protein_calories)

    carbs_g = round(remaining * split.carb_ratio / CALORIES_PER_GRAM["carbs"])
    fat_g = round(remaining * split.fat_ratio / CALORIES_PER_GRAM["fat"])

    if split.carb_cap_g is not None and carbs_g > split.carb_cap_g:
        carbs_g = split.carb_cap_g
        excess = remaining - carbs_g * CALORIES_PER_GRAM["carbs"]
        fat_g = round(excess / CALORIES_PER_GRAM["fat"])

    return MacroTargets(
        protein_g=max(0, protein_g),
        carbs_g=max(0, carbs_g),
        fat_g=max(0, fat_g),
    )


def validate_macros(macros: MacroTargets, target_calories: float) -> list[str]:
    """Return warnings for a macro combination; empty when it looks sane."""
    warnings = []

    if macros.protein_g < MIN_PROTEIN_G:
        warnings.append("Protein is very low. Consider increasing protein priority.")

    if macros.fat_g < MIN_FAT_G:
        warnings.append("Fat is very low. This may affect hormone function.")

    if macros.carbs_g < 0:
        warnings.append("Carbs calculation resulted in negative value.")

    if abs(macros.calories - target_calories) > MAX_CALORIE_DRIFT:
        warnings.append("Macro totals differ significantly from calorie target.")

    return warnings
