from server.src.modules.leveling_helpers import (
    level_from_xp,
    level_progress,
    progress_bar,
    xp_consumed_by_level,
    xp_required_for_level,
)


def test_xp_curve_values():
    assert xp_required_for_level(0) == 0
    assert xp_required_for_level(-3) == 0
    assert xp_required_for_level(1) == 155
    assert xp_required_for_level(10) == 1100
    assert xp_required_for_level(50) == 15100


def test_xp_curve_strictly_increasing():
    for n in range(1, 500):
        assert xp_required_for_level(n + 1) > xp_required_for_level(n)


def test_progress_percentage_bounds():
    for level in range(0, 40):
        for xp in (0, 1, 99, 500, 5000, 50000, 10**7):
            pct = level_progress(level, xp)["percentage"]
            assert 0 <= pct <= 100


def test_progress_below_floor_clamps_to_zero():
    floor = xp_consumed_by_level(10)
    progress = level_progress(10, floor - 500)
    assert progress["current"] == 0
    assert progress["percentage"] == 0


def test_progress_halfway():
    floor = xp_consumed_by_level(3)
    needed = xp_required_for_level(4)
    progress = level_progress(3, floor + needed // 2)
    assert progress["needed"] == needed
    assert progress["percentage"] == 50


def test_level_from_xp_matches_consumed_totals():
    assert level_from_xp(0) == 1
    assert level_from_xp(xp_required_for_level(2) - 1) == 1
    assert level_from_xp(xp_required_for_level(2)) == 2
    for level in (5, 12, 30):
        assert level_from_xp(xp_consumed_by_level(level)) == level
        assert level_from_xp(xp_consumed_by_level(level) - 1) == level - 1


def test_progress_bar_length():
    assert progress_bar(0, 100) == "▱" * 10
    assert progress_bar(100, 100) == "▰" * 10
    assert len(progress_bar(37, 100, length=20)) == 20
