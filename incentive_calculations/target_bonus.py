"""
Target Bonus Module
Resolves the tiered bonus for a credit point achievement against a monthly target.

Thresholds are step functions: the bonus is the amount of the highest threshold
whose achievement percentage has been reached. Thresholds with equal
percentages keep their defined order, so the later-defined entry wins.
"""

from typing import List, Tuple

import numpy as np

from app.models.incentive_models import BonusThreshold, MonthlyTarget
from incentive_calculations.performance_metrics import achievement_percentage


def sort_thresholds(thresholds: List[BonusThreshold]) -> List[BonusThreshold]:
    """Stable ascending sort by achievement percentage"""
    if not thresholds:
        return []
    achievements = np.array([t.achievement for t in thresholds], dtype=float)
    order = np.argsort(achievements, kind="stable")
    return [thresholds[i] for i in order]


def resolve_bonus_for_percentage(percentage: float, thresholds: List[BonusThreshold]) -> float:
    """Bonus amount of the highest threshold at or below the given percentage, 0 if none"""
    ordered = sort_thresholds(thresholds)
    if not ordered:
        return 0.0

    achievements = np.array([t.achievement for t in ordered], dtype=float)
    # Index of the last threshold with achievement <= percentage
    position = int(np.searchsorted(achievements, percentage, side="right")) - 1
    if position < 0:
        return 0.0
    return float(ordered[position].bonus_amount)


def resolve_target_bonus(achieved_points: float, target: MonthlyTarget) -> Tuple[float, float]:
    """
    Resolve the target bonus for achieved credit points

    Args:
        achieved_points: Credit points earned in the period
        target: Monthly target holding target_credit_points and bonus_thresholds

    Returns:
        (achievement_percentage, bonus)
    """
    percentage = achievement_percentage(achieved_points, target.target_credit_points)
    bonus = resolve_bonus_for_percentage(percentage, target.bonus_thresholds)
    return percentage, bonus
