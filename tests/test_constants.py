"""
tests/test_constants.py — Level Tiers & Point Catalogue
========================================================
"""

from __future__ import annotations

import pytest

from steward.constants import (
    CONTENT_ACTIONS,
    LEVEL_THRESHOLDS,
    POINT_VALUES,
    level_for_points,
    level_rank,
    next_level_info,
)


@pytest.mark.parametrize(
    ("points", "level"),
    [
        (0, "New Member"),
        (99, "New Member"),
        (100, "Builder"),
        (249, "Builder"),
        (250, "Overcomer"),
        (499, "Overcomer"),
        (500, "Mentor-in-Training"),
        (749, "Mentor-in-Training"),
        (750, "Legacy Leader"),
        (100_000, "Legacy Leader"),
    ],
)
def test_level_boundaries(points, level):
    assert level_for_points(points) == level


def test_thresholds_ascending():
    minimums = [m for _, m in LEVEL_THRESHOLDS]
    assert minimums == sorted(minimums)
    assert minimums[0] == 0


def test_level_rank_orders_tiers():
    assert level_rank("New Member") < level_rank("Builder") < level_rank("Legacy Leader")
    assert level_rank("Unknown") == -1
    assert level_rank(None) == -1


def test_next_level_info_mid_tier():
    info = next_level_info(175)
    assert info["current_level"] == "Builder"
    assert info["next_level"] == "Overcomer"
    assert info["points_to_next"] == 75
    assert info["progress"] == pytest.approx(50.0)
    assert info["is_max_level"] is False


def test_next_level_info_at_max():
    info = next_level_info(900)
    assert info["is_max_level"] is True
    assert info["next_level"] is None
    assert info["progress"] == 100.0


def test_content_actions_have_point_values():
    for action, _reason in CONTENT_ACTIONS.values():
        assert POINT_VALUES[action] > 0
    assert POINT_VALUES["CREATE_POST"] == 5
    assert POINT_VALUES["COMMENT_POST"] == 3
    assert POINT_VALUES["DAILY_LOGIN"] == 2
