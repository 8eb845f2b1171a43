"""Metabolic calculator for calorie and macro targets.

Calculates BMR, TDEE, goal-adjusted calorie targets and a macro split from
body metrics. All functions are pure: no I/O, no clamping of biometric
inputs, and no error handling. Callers decide what is recoverable.

Uses Mifflin-St Jeor equation for BMR as it's widely validated for
calculating resting metabolic rate.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Union


class Sex(Enum):
    """Biological sex for BMR calculation."""
    MALE = "male"
    FEMALE = "female"


class ActivityLevel(Enum):
    """Activity level multipliers for TDEE calculation."""
    SEDENTARY = "sedentary"                  # Desk job, little to no exercise
    LIGHTLY_ACTIVE = "lightly_active"        # Light exercise 1-3 days/week
    MODERATELY_ACTIVE = "moderately_active"  # Moderate exercise 3-5 days/week
    VERY_ACTIVE = "very_active"              # Hard exercise 6-7 days/week
    EXTREMELY_ACTIVE = "extremely_active"    # Very hard exercise, physical job


class GoalType(Enum):
    """Direction of the body-weight goal."""
    LOSE = "lose"
    MAINTAIN = "maintain"
    GAIN = "gain"


class PlanningMode(Enum):
    """How the weekly rate of a goal is chosen."""
    RATE = "rate"          # User picks % of body weight per week
    TIMELINE = "timeline"  # Rate derived from target weight + target date


# Activity level multipliers (Harris-Benedict activity factors)
ACTIVITY_MULTIPLIERS = {
    ActivityLevel.SEDENTARY: 1.2,
    ActivityLevel.LIGHTLY_ACTIVE: 1.375,
    ActivityLevel.MODERATELY_ACTIVE: 1.55,
    ActivityLevel.VERY_ACTIVE: 1.725,
    ActivityLevel.EXTREMELY_ACTIVE: 1.9,
}

# Minimum safe daily intake; always wins over the requested rate
CALORIE_FLOORS = {
    Sex.MALE: 1500,
    Sex.FEMALE: 1200,
}

# ~7700 kcal per kg of body mass
CALORIES_PER_KG = 7700

CALORIES_PER_GRAM = {
    "protein": 4,
    "carbs": 4,
    "fat": 9,
}

PROTEIN_G_PER_KG = 1.8
FAT_CALORIE_FRACTION = 0.275

DAYS_PER_YEAR = 365.25


@dataclass(frozen=True)
class MacroTargets:
    """Daily macronutrient targets in whole grams."""

    protein_g: int
    carbs_g: int
    fat_g: int

    @property
    def calories(self) -> int:
        """Calories implied by the gram values (4/4/9)."""
        return (
            self.protein_g * CALORIES_PER_GRAM["protein"]
            + self.carbs_g * CALORIES_PER_GRAM["carbs"]
            + self.fat_g * CALORIES_PER_GRAM["fat"]
        )


def _as_sex(sex: Union[Sex, str]) -> Sex:
    return sex if isinstance(sex, Sex) else Sex(sex.lower())


def _as_activity(level: Union[ActivityLevel, str]) -> ActivityLevel:
    return level if isinstance(level, ActivityLevel) else ActivityLevel(level.lower())


def _as_goal_type(goal_type: Union[GoalType, str]) -> GoalType:
    return goal_type if isinstance(goal_type, GoalType) else GoalType(goal_type.lower())


def calculate_bmr(
    weight_kg: float,
    height_cm: float,
    age_years: float,
    sex: Union[Sex, str],
) -> float:
    """Calculate Basal Metabolic Rate using Mifflin-St Jeor equation.

    Male:   BMR = 10 × weight(kg) + 6.25 × height(cm) − 5 × age(y) + 5
    Female: BMR = 10 × weight(kg) + 6.25 × height(cm) − 5 × age(y) − 161

    Args:
        weight_kg: Weight in kilograms
        height_cm: Height in centimetres
        age_years: Age in years
        sex: Biological sex

    Returns:
        BMR in calories per day
    """
    base = (10 * weight_kg) + (6.25 * height_cm) - (5 * age_years)
    if _as_sex(sex) == Sex.MALE:
        return base + 5
    return base - 161


def calculate_tdee(
    bmr: float,
    activity_level: Union[ActivityLevel, str],
) -> float:
    """Calculate Total Daily Energy Expenditure.

    Args:
        bmr: Basal Metabolic Rate
        activity_level: Activity level (enum member or its value)

    Returns:
        TDEE in calories per day

    Raises:
        ValueError: If the activity level is not one of ``ActivityLevel``
    """
    multiplier = ACTIVITY_MULTIPLIERS[_as_activity(activity_level)]
    return bmr * multiplier


def calculate_target_calories(
    tdee: float,
    goal_type: Union[GoalType, str],
    rate_percent: float,
    sex: Union[Sex, str],
    weight_kg: float,
) -> float:
    """Calculate the daily calorie target for a goal.

    The weekly body-mass change implied by ``rate_percent`` (percent of body
    weight per week) becomes a daily deficit or surplus. ``maintain`` ignores
    the rate. The result never drops below the sex-specific floor, so the
    realised rate can be slower than the requested one.

    Args:
        tdee: Total Daily Energy Expenditure
        goal_type: lose, maintain or gain
        rate_percent: Target rate as % of body weight per week
        sex: Biological sex (selects the calorie floor)
        weight_kg: Current weight in kilograms

    Returns:
        Target calories per day (unrounded)
    """
    goal = _as_goal_type(goal_type)
    weekly_kg_change = (rate_percent / 100) * weight_kg
    daily_adjustment = (weekly_kg_change * CALORIES_PER_KG) / 7

    if goal == GoalType.LOSE:
        target = tdee - daily_adjustment
    elif goal == GoalType.GAIN:
        target = tdee + daily_adjustment
    else:
        target = tdee

    return max(target, CALORIE_FLOORS[_as_sex(sex)])


def calculate_macros(target_calories: float, weight_kg: float) -> MacroTargets:
    """Split a calorie target into protein, fat and carbohydrate grams.

    Protein is fixed at 1.8 g/kg, fat at 27.5% of calories, carbs take the
    remainder. Carbs come out negative when protein and fat already exceed
    a very low calorie target; see ``clamp_macros``.
    """
    protein_g = round(weight_kg * PROTEIN_G_PER_KG)
    protein_calories = protein_g * CALORIES_PER_GRAM["protein"]

    fat_calories = target_calories * FAT_CALORIE_FRACTION
    fat_g = round(fat_calories / CALORIES_PER_GRAM["fat"])

    carb_calories = target_calories - protein_calories - fat_calories
    carbs_g = round(carb_calories / CALORIES_PER_GRAM["carbs"])

    return MacroTargets(protein_g=protein_g, carbs_g=carbs_g, fat_g=fat_g)


def clamp_macros(macros: MacroTargets) -> MacroTargets:
    """Return a copy of ``macros`` with every gram value at least zero."""
    return MacroTargets(
        protein_g=max(0, macros.protein_g),
        carbs_g=max(0, macros.carbs_g),
        fat_g=max(0, macros.fat_g),
    )


def calculate_age(date_of_birth: date, today: date) -> int:
    """Whole years between ``date_of_birth`` and ``today``."""
    return int((today - date_of_birth).days // DAYS_PER_YEAR)


def round_to_nearest(value: float, nearest: int) -> int:
    """Round ``value`` to the nearest multiple of ``nearest``."""
    return int(round(value / nearest) * nearest)
