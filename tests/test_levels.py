"""
Tests de la tabla de niveles.
"""

import pytest

from levels import get_level_info, get_next_tier, get_tier, level_for_points, points_for_level


@pytest.mark.parametrize("points,level", [
    (0, 1), (99, 1), (100, 2), (199, 2), (250, 3), (1000, 11), (8000, 81),
])
def test_level_for_points(points, level):
    assert level_for_points(points) == level


def test_points_for_level_is_inverse():
    for level in (1, 2, 10, 50):
        assert level_for_points(points_for_level(level)) == level


def test_tiers_follow_the_same_scale():
    """Test que cada rango empieza justo en un límite de nivel."""
    assert get_tier(0).name == "Novice"
    assert get_tier(199).name == "Novice"
    assert get_tier(200).name == "Apprentice"
    assert get_tier(200).level == 3
    assert get_tier(1000).name == "Expert"
    assert get_tier(1000).level == 11
    assert get_tier(100000).name == "Legend"


def test_next_tier():
    assert get_next_tier(0).name == "Apprentice"
    assert get_next_tier(7999).name == "Legend"
    assert get_next_tier(8000) is None


def test_level_info():
    info = get_level_info(250)

    assert info.level == 3
    assert info.points_in_level == 50
    assert info.points_to_next_level == 50
    assert info.progress == 50.0
    assert info.tier.name == "Apprentice"
    assert info.next_tier.name == "Journeyman"
