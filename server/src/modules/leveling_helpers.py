from __future__ import annotations

# ----------------------------
# XP curve
# ----------------------------

XP_A, XP_B, XP_C = 5, 50, 100


def xp_required_for_level(level: int) -> int:
    """XP needed to complete `level` (MEE6 curve: 5n² + 50n + 100)."""
    n = int(level)
    if n < 1:
        return 0
    return XP_A * n * n + XP_B * n + XP_C


def xp_consumed_by_level(level: int) -> int:
    """Cumulative XP spent on levels 2..level."""
    return sum(xp_required_for_level(i) for i in range(2, int(level) + 1))


def level_from_xp(xp: int) -> int:
    """Highest level >= 1 whose cumulative floor is covered by `xp`."""
    xp = max(0, int(xp or 0))
    level = 1
    consumed = 0
    while True:
        step = xp_required_for_level(level + 1)
        if consumed + step > xp:
            return level
        consumed += step
        level += 1


def level_progress(level: int, xp: int) -> dict:
    """Progress inside the current level as {current, needed, percentage}.

    XP below the level floor clamps to 0%, XP past the next threshold to 100%.
    """
    level = max(0, int(level or 0))
    xp = max(0, int(xp or 0))
    consumed = xp_consumed_by_level(level)
    needed = xp_required_for_level(level + 1)
    current = min(max(0, xp - consumed), needed)
    ratio = current / needed if needed else 0.0
    percentage = int(round(min(1.0, max(0.0, ratio)) * 100))
    return {"current": current, "needed": needed, "percentage": percentage}


def progress_bar(current: int, needed: int, length: int = 10) -> str:
    length = max(1, int(length))
    filled = 0
    if needed > 0:
        filled = int(round(length * min(1.0, max(0.0, current / needed))))
    return "▰" * filled + "▱" * (length - filled)
