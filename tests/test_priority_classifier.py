"""Unit tests for the keyword priority classifier and SLA predicate."""

from datetime import datetime, timedelta, timezone

import pytest

from maintenance_dispatch.domain.enums import Severity
from maintenance_dispatch.services.priority_classifier import (
    SLA_HOURS,
    classify_priority,
    hours_since,
    is_sla_breached,
    parse_severity,
)


class TestKeywordTiers:
    @pytest.mark.parametrize(
        "title,description,expected",
        [
            ("Sparks from socket", "", Severity.HIGH),
            ("Water", "Bathroom flood on floor 2", Severity.HIGH),
            ("Projector not working", "", Severity.MEDIUM),
            ("WiFi", "connection drops every hour", Severity.MEDIUM),
            ("Scratch on desk", "purely cosmetic", Severity.LOW),
            ("Bulb", "needs replacing", Severity.LOW),
        ],
    )
    def test_first_matching_tier_wins(self, title, description, expected):
        assert classify_priority(title, description) == expected

    def test_high_beats_lower_tiers_in_same_text(self):
        # "dirty" (low) and "slow" (medium) lose to "leak" (high)
        text = "dirty floor, slow drain and a leak under the sink"
        assert classify_priority("Bathroom", text) == Severity.HIGH

    def test_case_insensitive(self):
        assert classify_priority("FIRE ALARM", "") == Severity.HIGH

    def test_substring_match_inside_words(self):
        # "gas" inside "gasket" is still a hit; matching is plain substring
        assert classify_priority("Fridge gasket", "") == Severity.HIGH


class TestAssetDefaults:
    @pytest.mark.parametrize(
        "asset_type,expected",
        [
            ("projector", Severity.MEDIUM),
            ("ac", Severity.MEDIUM),
            ("computer", Severity.MEDIUM),
            ("light", Severity.LOW),
            ("water_cooler", Severity.HIGH),
            ("other", Severity.LOW),
        ],
    )
    def test_default_by_asset_type(self, asset_type, expected):
        assert classify_priority("Please check", "see attached", asset_type) == expected

    def test_unknown_asset_type_is_medium(self):
        assert classify_priority("Please check", "", "vending_machine") == Severity.MEDIUM

    def test_no_asset_type_is_medium(self):
        assert classify_priority("Please check", "") == Severity.MEDIUM

    def test_keyword_overrides_asset_default(self):
        assert classify_priority("Cooler", "minor scratch", "water_cooler") == Severity.LOW


class TestSLA:
    def test_thresholds(self):
        assert SLA_HOURS[Severity.CRITICAL] < SLA_HOURS[Severity.HIGH] < SLA_HOURS[Severity.MEDIUM]
        assert SLA_HOURS[Severity.MEDIUM] < SLA_HOURS[Severity.LOW]

    def test_high_breached_after_five_hours(self):
        now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert is_sla_breached(now - timedelta(hours=5), "high", now) is True

    def test_high_not_breached_after_three_hours(self):
        now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert is_sla_breached(now - timedelta(hours=3), "high", now) is False

    def test_exactly_at_threshold_is_not_breached(self):
        now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert is_sla_breached(now - timedelta(hours=4), Severity.HIGH, now) is False

    def test_naive_created_at_read_as_utc(self):
        now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        naive = datetime(2026, 3, 1, 9, 0)
        assert hours_since(naive, now) == pytest.approx(3.0)

    def test_unknown_severity_label_reads_as_medium(self):
        assert parse_severity("urgent") == Severity.MEDIUM
        assert parse_severity("HIGH") == Severity.HIGH
