"""
Gamification Service

Streaks and tiers computed from a customer's historical counters.
Pure functions: no I/O, a total function of their inputs. Handlers call
`refresh_fields` after a successful, non-duplicate visit and persist the
result together with the visit.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

TIER_BRONZE = 'bronce'
TIER_SILVER = 'plata'
TIER_GOLD = 'oro'

DEFAULT_TIER_THRESHOLDS = {
    TIER_SILVER: 30,   # 30 lifetime points
    TIER_GOLD: 100,    # 100 lifetime points
}

DEFAULT_STREAK_WINDOW_DAYS = 7
DEFAULT_STREAK_BREAK_DAYS = 14

TIER_BADGES = {
    TIER_GOLD: '🥇',
    TIER_SILVER: '🥈',
    TIER_BRONZE: '🥉',
}


@dataclass(frozen=True)
class StreakResult:
    new_streak: int
    streak_updated: bool


@dataclass(frozen=True)
class GamificationSettings:
    thresholds: Dict[str, int] = None
    window_days: int = DEFAULT_STREAK_WINDOW_DAYS
    break_days: int = DEFAULT_STREAK_BREAK_DAYS

    @classmethod
    def from_config(cls, config) -> 'GamificationSettings':
        """Build from a Flask config mapping (TIER_THRESHOLDS, STREAK_*_DAYS)."""
        return cls(
            thresholds=dict(config.get('TIER_THRESHOLDS') or DEFAULT_TIER_THRESHOLDS),
            window_days=config.get('STREAK_WINDOW_DAYS', DEFAULT_STREAK_WINDOW_DAYS),
            break_days=config.get('STREAK_BREAK_DAYS', DEFAULT_STREAK_BREAK_DAYS),
        )


def calculate_tier(lifetime_points: int, thresholds: Optional[Dict[str, int]] = None) -> str:
    """Classify a customer by lifetime points: bronce < plata < oro."""
    thresholds = thresholds or DEFAULT_TIER_THRESHOLDS
    total = lifetime_points or 0
    if total >= thresholds.get(TIER_GOLD, DEFAULT_TIER_THRESHOLDS[TIER_GOLD]):
        return TIER_GOLD
    if total >= thresholds.get(TIER_SILVER, DEFAULT_TIER_THRESHOLDS[TIER_SILVER]):
        return TIER_SILVER
    return TIER_BRONZE


def process_streak(
    last_visit_at: Optional[datetime],
    current_streak: int,
    now: Optional[datetime] = None,
    window_days: int = DEFAULT_STREAK_WINDOW_DAYS,
    break_days: int = DEFAULT_STREAK_BREAK_DAYS
) -> StreakResult:
    """
    Weekly streak.

    - first visit ever: 1
    - gap shorter than `window_days`: same week, streak unchanged
    - gap between `window_days` and `break_days`: next week, streak + 1
    - longer gap: streak broken, back to 1

    The gap is measured in whole days, rounded up.
    """
    if last_visit_at is None:
        return StreakResult(new_streak=1, streak_updated=True)

    now = now or datetime.utcnow()
    current = current_streak or 0

    gap_seconds = abs((now - last_visit_at).total_seconds())
    gap_days = math.ceil(gap_seconds / 86400)

    if gap_days < window_days:
        return StreakResult(new_streak=max(current, 1), streak_updated=False)

    if gap_days <= break_days:
        return StreakResult(new_streak=current + 1, streak_updated=True)

    return StreakResult(new_streak=1, streak_updated=True)


def get_tier_badge(tier: str) -> str:
    return TIER_BADGES.get(tier, TIER_BADGES[TIER_BRONZE])


def refresh_fields(
    lifetime_points: int,
    last_visit_at: Optional[datetime],
    current_streak: int,
    now: Optional[datetime] = None,
    thresholds: Optional[Dict[str, int]] = None,
    window_days: int = DEFAULT_STREAK_WINDOW_DAYS,
    break_days: int = DEFAULT_STREAK_BREAK_DAYS
) -> Dict[str, object]:
    """
    Customer column values after a visit.

    Args:
        lifetime_points: Lifetime total after the visit is counted
        last_visit_at: Pre-visit snapshot of the last visit
        current_streak: Pre-visit snapshot of the streak

    Returns:
        Dict keyed by Customer attribute names (tier, streak, last_visit_at)
    """
    now = now or datetime.utcnow()
    streak = process_streak(last_visit_at, current_streak, now, window_days, break_days)
    return {
        'tier': calculate_tier(lifetime_points, thresholds),
        'streak': streak.new_streak,
        'last_visit_at': now,
    }


def refresh_with_settings(
    settings: GamificationSettings,
    lifetime_points: int,
    last_visit_at: Optional[datetime],
    current_streak: int,
    now: Optional[datetime] = None
) -> Dict[str, object]:
    return refresh_fields(
        lifetime_points,
        last_visit_at,
        current_streak,
        now=now,
        thresholds=settings.thresholds,
        window_days=settings.window_days,
        break_days=settings.break_days,
    )
