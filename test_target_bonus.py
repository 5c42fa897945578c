"""
Tests for tiered target bonus resolution
"""

import pytest

from app.models.incentive_models import BonusThreshold
from incentive_calculations.target_bonus import resolve_bonus_for_percentage, resolve_target_bonus

THRESHOLDS = [
    BonusThreshold(achievement=10, bonus_amount=50),
    BonusThreshold(achievement=50, bonus_amount=200),
    BonusThreshold(achievement=90, bonus_amount=500),
]


@pytest.mark.parametrize("percentage, bonus", [
    (0, 0),
    (9.99, 0),
    (10, 50),
    (49.9, 50),
    (50, 200),
    (60, 200),
    (90, 500),
    (250, 500),
])
def test_highest_qualifying_floor(percentage, bonus):
    assert resolve_bonus_for_percentage(percentage, THRESHOLDS) == bonus


def test_threshold_order_does_not_matter():
    shuffled = [THRESHOLDS[2], THRESHOLDS[0], THRESHOLDS[1]]
    assert resolve_bonus_for_percentage(60, shuffled) == 200


def test_equal_thresholds_resolve_to_later_defined():
    thresholds = [
        BonusThreshold(achievement=50, bonus_amount=100),
        BonusThreshold(achievement=50, bonus_amount=150),
    ]
    assert resolve_bonus_for_percentage(75, thresholds) == 150


def test_no_thresholds_means_no_bonus():
    assert resolve_bonus_for_percentage(100, []) == 0


def test_resolve_target_bonus_from_points(target):
    # 24 of 40 points = 60%
    percentage, bonus = resolve_target_bonus(24, target)
    assert percentage == 60
    assert bonus == 200


def test_zero_target_points_gives_no_bonus(target):
    target.target_credit_points = 0
    assert resolve_target_bonus(100, target) == (0.0, 0.0)
