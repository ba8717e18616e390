"""
Tests for streak and tier calculation.
"""
from datetime import datetime, timedelta

from app.services.gamification_service import (
    GamificationSettings,
    TIER_BRONZE,
    TIER_GOLD,
    TIER_SILVER,
    calculate_tier,
    get_tier_badge,
    process_streak,
    refresh_fields,
)

NOW = datetime(2026, 3, 10, 13, 0, 0)


class TestCalculateTier:

    def test_thresholds(self):
        assert calculate_tier(0) == TIER_BRONZE
        assert calculate_tier(29) == TIER_BRONZE
        assert calculate_tier(30) == TIER_SILVER
        assert calculate_tier(99) == TIER_SILVER
        assert calculate_tier(100) == TIER_GOLD

    def test_none_is_bronze(self):
        assert calculate_tier(None) == TIER_BRONZE

    def test_custom_thresholds(self):
        assert calculate_tier(10, {'plata': 5, 'oro': 10}) == TIER_GOLD

    def test_badges(self):
        assert get_tier_badge(TIER_GOLD) == '🥇'
        assert get_tier_badge('desconocido') == '🥉'


class TestProcessStreak:

    def test_first_visit(self):
        result = process_streak(None, 0, NOW)
        assert result.new_streak == 1
        assert result.streak_updated is True

    def test_same_week_unchanged(self):
        result = process_streak(NOW - timedelta(days=3), 4, NOW)
        assert result.new_streak == 4
        assert result.streak_updated is False

    def test_next_week_increments(self):
        assert process_streak(NOW - timedelta(days=7), 4, NOW).new_streak == 5
        assert process_streak(NOW - timedelta(days=14), 4, NOW).new_streak == 5

    def test_gap_rounded_up(self):
        # 6 days and 1 hour counts as 7 days
        assert process_streak(NOW - timedelta(days=6, hours=1), 2, NOW).new_streak == 3

    def test_long_gap_resets(self):
        result = process_streak(NOW - timedelta(days=15), 9, NOW)
        assert result.new_streak == 1
        assert result.streak_updated is True


class TestRefreshFields:

    def test_fields(self):
        fields = refresh_fields(30, NOW - timedelta(days=8), 1, now=NOW)
        assert fields == {'tier': TIER_SILVER, 'streak': 2, 'last_visit_at': NOW}

    def test_settings_from_config(self):
        settings = GamificationSettings.from_config({
            'TIER_THRESHOLDS': {'plata': 2, 'oro': 4},
            'STREAK_WINDOW_DAYS': 1,
            'STREAK_BREAK_DAYS': 2,
        })
        assert settings.thresholds == {'plata': 2, 'oro': 4}
        assert settings.window_days == 1
        assert settings.break_days == 2

    def test_settings_defaults(self):
        settings = GamificationSettings.from_config({})
        assert settings.thresholds == {'plata': 30, 'oro': 100}
        assert settings.window_days == 7
