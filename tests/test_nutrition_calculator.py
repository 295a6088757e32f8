"""Tests for the BMR -> TDEE -> target pipeline and the meal macro estimate."""
import pytest

from schemas import ProfileInput
from services.nutrition_calculator import (
    ACTIVITY_FACTOR,
    GOAL_CALORIE_OFFSET,
    GOAL_MACRO_RATIOS,
    NutritionCalculator,
    round_half_up,
)

calc = NutritionCalculator()


def test_bmr_uses_gender_constant():
    assert calc.calculate_bmr("male", 70, 175, 30) == pytest.approx(1648.75)
    assert calc.calculate_bmr("female", 70, 175, 30) == pytest.approx(1482.75)


def test_round_half_up_matches_half_away_from_floor():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(-2.5) == -2
    assert round_half_up(0.49) == 0


@pytest.mark.parametrize("goal", ["lose", "maintain", "gain"])
def test_target_calories_apply_goal_offset(goal):
    bmr = 1648.75
    expected = round_half_up(bmr * ACTIVITY_FACTOR + GOAL_CALORIE_OFFSET.get(goal, 0))
    assert calc.calculate_target_calories(bmr, goal) == expected


def test_target_calories_known_values():
    assert calc.calculate_target_calories(1648.75, "maintain") == 2556
    assert calc.calculate_target_calories(1648.75, "lose") == 2056
    assert calc.calculate_target_calories(1648.75, "gain") == 3056


def test_target_calories_are_not_clamped():
    """A tiny BMR with a 'lose' goal may go negative."""
    assert calc.calculate_target_calories(200, "lose") == -190


@pytest.mark.parametrize("goal", ["lose", "maintain", "gain"])
def test_goal_macro_ratios_sum_to_one(goal):
    assert sum(GOAL_MACRO_RATIOS[goal]) == pytest.approx(1.0)


@pytest.mark.parametrize("calories", [0, 1200, 2056, 2556, 3056])
@pytest.mark.parametrize("goal", ["lose", "maintain", "gain"])
def test_macro_targets_round_each_gram_figure(calories, goal):
    protein_ratio, carbs_ratio, fats_ratio = GOAL_MACRO_RATIOS[goal]
    macros = calc.calculate_macro_targets(calories, goal)
    assert macros.protein == round_half_up(calories * protein_ratio / 4)
    assert macros.carbs == round_half_up(calories * carbs_ratio / 4)
    assert macros.fats == round_half_up(calories * fats_ratio / 9)


def test_macro_targets_known_values():
    maintain = calc.calculate_macro_targets(2556, "maintain")
    assert (maintain.protein, maintain.carbs, maintain.fats) == (192, 256, 85)
    lose = calc.calculate_macro_targets(2056, "lose")
    assert (lose.protein, lose.carbs, lose.fats) == (180, 180, 69)
    gain = calc.calculate_macro_targets(3056, "gain")
    assert (gain.protein, gain.carbs, gain.fats) == (229, 344, 85)


def test_unknown_goal_falls_back_to_maintain_split():
    assert calc.calculate_macro_targets(2000, "bulk") == calc.calculate_macro_targets(2000, "maintain")


def test_meal_macros_use_fixed_split():
    macros = calc.estimate_meal_macros(200)
    assert macros.protein == pytest.approx(15)
    assert macros.carbs == pytest.approx(20)
    assert macros.fats == pytest.approx(6.6667, rel=1e-4)


@pytest.mark.parametrize("calories", [0, 200, 300, 845])
def test_meal_macros_account_for_all_calories(calories):
    macros = calc.estimate_meal_macros(calories)
    assert macros.protein * 4 + macros.carbs * 4 + macros.fats * 9 == pytest.approx(calories)


def test_build_profile_attaches_targets():
    profile = ProfileInput(gender="male", height_cm=175, weight_kg=70, age=30, goal="lose")
    data = calc.build_profile(profile)
    assert data.goal == "lose"
    assert data.target_calories == 2056
    assert (data.target_protein, data.target_carbs, data.target_fats) == (180, 180, 69)
