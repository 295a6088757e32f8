"""Nutrition calculation helpers.

Provides the BMR -> TDEE -> calorie target -> macro split pipeline used when a
profile is saved, and the fixed macro estimate applied to a captured meal.
None of these functions validate their inputs.
"""

import math
from typing import Dict, Tuple
from core.logger import get_logger
from schemas import MacroSplit, NutritionTargets, ProfileData, ProfileInput

logger = get_logger("services.nutrition_calculator")

# Moderate activity is assumed for every user.
ACTIVITY_FACTOR = 1.55
GOAL_CALORIE_OFFSET = {'lose': -500, 'gain': 500}

# (protein, carbs, fats) share of calories
GOAL_MACRO_RATIOS: Dict[str, Tuple[float, float, float]] = {
    'lose': (0.35, 0.35, 0.30),
    'gain': (0.30, 0.45, 0.25),
    'maintain': (0.30, 0.40, 0.30),
}
MEAL_MACRO_RATIOS = (0.30, 0.40, 0.30)

KCAL_PER_GRAM_PROTEIN = 4
KCAL_PER_GRAM_CARBS = 4
KCAL_PER_GRAM_FAT = 9


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


class NutritionCalculator:
    """Class-based nutrition calculator used across the app."""

    def calculate_bmr(self, gender: str, weight_kg: float, height_cm: float, age: int) -> float:
        """Calculate BMR using the Mifflin-St Jeor equation.

        Any gender other than 'male' uses the female constant.
        """
        if gender == 'male':
            return 10 * weight_kg + 6.25 * height_cm - 5 * age + 5
        return 10 * weight_kg + 6.25 * height_cm - 5 * age - 161

    def calculate_tdee(self, bmr: float) -> float:
        return bmr * ACTIVITY_FACTOR

    def calculate_target_calories(self, bmr: float, goal: str) -> int:
        """Derive the daily calorie target: TDEE shifted by the goal offset.

        Unknown goals are treated as 'maintain'. There is no lower bound, so a
        small BMR with goal 'lose' may produce a low or negative target.
        """
        tdee = self.calculate_tdee(bmr)
        val = round_half_up(tdee + GOAL_CALORIE_OFFSET.get(goal, 0))
        logger.debug("Target calories for goal %s: %s", goal, val)
        return val

    def calculate_macro_targets(self, calories: float, goal: str) -> MacroSplit:
        """Allocate whole-gram macro targets from a calorie target.

        Each gram figure is rounded independently, so the calorie equivalent
        of the result may drift slightly from `calories`.
        """
        protein_ratio, carbs_ratio, fats_ratio = GOAL_MACRO_RATIOS.get(goal, GOAL_MACRO_RATIOS['maintain'])
        macros = MacroSplit(
            protein=round_half_up(calories * protein_ratio / KCAL_PER_GRAM_PROTEIN),
            carbs=round_half_up(calories * carbs_ratio / KCAL_PER_GRAM_CARBS),
            fats=round_half_up(calories * fats_ratio / KCAL_PER_GRAM_FAT),
        )
        logger.debug("Macro targets calculated: %s", macros)
        return macros

    def estimate_meal_macros(self, calories: float) -> MacroSplit:
        """Split a meal's calories 30/40/30 into protein/carbs/fat grams.

        Unlike the targets, the split ignores the user's goal and keeps
        fractional grams; rounding is left to presentation.
        """
        protein_ratio, carbs_ratio, fats_ratio = MEAL_MACRO_RATIOS
        return MacroSplit(
            protein=calories * protein_ratio / KCAL_PER_GRAM_PROTEIN,
            carbs=calories * carbs_ratio / KCAL_PER_GRAM_CARBS,
            fats=calories * fats_ratio / KCAL_PER_GRAM_FAT,
        )

    def calculate_targets(self, profile: ProfileInput) -> NutritionTargets:
        """Run the full BMR -> calories -> macros pipeline for a profile."""
        bmr = self.calculate_bmr(profile.gender, profile.weight_kg, profile.height_cm, profile.age)
        calories = self.calculate_target_calories(bmr, profile.goal)
        macros = self.calculate_macro_targets(calories, profile.goal)
        return NutritionTargets(
            target_calories=calories,
            target_protein=int(macros.protein),
            target_carbs=int(macros.carbs),
            target_fats=int(macros.fats),
        )

    def build_profile(self, profile: ProfileInput) -> ProfileData:
        """Attach freshly computed targets to a profile, ready to be saved."""
        targets = self.calculate_targets(profile)
        return ProfileData(**profile.model_dump(), **targets.model_dump())


# export singleton
nutrition_calculator = NutritionCalculator()
__all__ = ["NutritionCalculator", "nutrition_calculator", "round_half_up"]
