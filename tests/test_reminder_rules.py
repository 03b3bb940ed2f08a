"""Tests for src.core.reminder_rules — offsets, fire times and rule lookup."""

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from src.core.reminder_rules import (
    DEFAULT_REMINDER_RULES,
    DurationOffset,
    MorningOf,
    ReminderRuleResolver,
    compute_fire_time,
    is_due,
    offset_from_dict,
    offset_key,
    offset_to_dict,
    parse_offsets,
)
from src.data.models import Category, ReminderRule

START = datetime(2026, 3, 10, 8, 0)


# ---------------------------------------------------------------------------
# Offsets
# ---------------------------------------------------------------------------


class TestDurationOffset:
    def test_rejects_unknown_unit(self):
        with pytest.raises(ValueError):
            DurationOffset(1, "weeks")

    def test_rejects_negative(self):
        with pytest.raises(ValueError):
            DurationOffset(-1, "days")

    def test_zero_is_allowed(self):
        assert DurationOffset(0, "minutes").value == 0

    @pytest.mark.parametrize("value", [float("nan"), float("inf")])
    def test_rejects_non_finite(self, value):
        with pytest.raises(ValueError):
            DurationOffset(value, "days")

    def test_rejects_lead_time_beyond_a_year(self):
        with pytest.raises(ValueError):
            DurationOffset(1_000_000, "days")
        with pytest.raises(ValueError):
            DurationOffset(367 * 24, "hours")

    def test_one_year_is_allowed(self):
        assert DurationOffset(366, "days").value == 366

    def test_parse_offsets_skips_out_of_range(self):
        offsets = parse_offsets([
            {"value": 1_000_000, "unit": "days"},
            {"value": float("inf"), "unit": "minutes"},
            {"value": 2, "unit": "hours"},
        ])
        assert offsets == [DurationOffset(2, "hours")]


class TestOffsetKey:
    @pytest.mark.parametrize("offset,expected", [
        (DurationOffset(7, "days"), "7d"),
        (DurationOffset(15, "minutes"), "15m"),
        (DurationOffset(2, "hours"), "2h"),
        (DurationOffset(1.5, "hours"), "1.5h"),
        (MorningOf(), "morning-of"),
    ])
    def test_keys(self, offset, expected):
        assert offset_key(offset) == expected

    def test_int_and_float_share_a_key(self):
        assert offset_key(DurationOffset(7, "days")) == offset_key(DurationOffset(7.0, "days"))

    def test_fractional_value_keeps_full_precision(self):
        assert offset_key(DurationOffset(123456.5, "minutes")) == "123456.5m"
        assert offset_key(DurationOffset(123456.5, "minutes")) != offset_key(DurationOffset(123457, "minutes"))

    def test_large_values_do_not_collide(self):
        assert offset_key(DurationOffset(500001, "minutes")) == "500001m"
        assert offset_key(DurationOffset(500001, "minutes")) != offset_key(DurationOffset(500002, "minutes"))


class TestComputeFireTime:
    def test_days(self):
        assert compute_fire_time(START, DurationOffset(7, "days")) == datetime(2026, 3, 3, 8, 0)

    def test_minutes(self):
        assert compute_fire_time(START, DurationOffset(15, "minutes")) == datetime(2026, 3, 10, 7, 45)

    def test_hours(self):
        assert compute_fire_time(START, DurationOffset(2, "hours")) == datetime(2026, 3, 10, 6, 0)

    def test_morning_of(self):
        assert compute_fire_time(START, MorningOf()) == datetime(2026, 3, 10, 7, 0)

    def test_morning_of_custom_hour(self):
        assert compute_fire_time(START, MorningOf(), morning_hour=6) == datetime(2026, 3, 10, 6, 0)

    def test_morning_of_after_event_start(self):
        # an event at 06:30 gets a morning-of fire time after it started
        early = datetime(2026, 3, 10, 6, 30)
        assert compute_fire_time(early, MorningOf()) > early


class TestIsDue:
    def test_fire_time_equal_to_now_is_due(self):
        assert is_due(datetime(2026, 3, 3, 8, 0), START, datetime(2026, 3, 3, 8, 0))

    def test_future_fire_time_not_due(self):
        assert not is_due(datetime(2026, 3, 3, 8, 0), START, datetime(2026, 3, 3, 7, 59))

    def test_event_started_not_due(self):
        assert not is_due(datetime(2026, 3, 3, 8, 0), START, START)


# ---------------------------------------------------------------------------
# Storage shape
# ---------------------------------------------------------------------------


class TestOffsetDicts:
    def test_duration_from_dict(self):
        assert offset_from_dict({"value": 7, "unit": "days"}) == DurationOffset(7, "days")

    def test_unit_defaults_to_days(self):
        assert offset_from_dict({"value": 2}) == DurationOffset(2, "days")

    def test_morning_of_label_wins(self):
        assert offset_from_dict({"value": 0, "unit": "days", "label": "morning-of"}) == MorningOf()

    def test_non_numeric_value(self):
        with pytest.raises(ValueError):
            offset_from_dict({"value": "7", "unit": "days"})

    def test_missing_value(self):
        with pytest.raises(ValueError):
            offset_from_dict({"unit": "days"})

    def test_to_dict(self):
        assert offset_to_dict(DurationOffset(1, "hours")) == {"value": 1, "unit": "hours"}
        assert offset_to_dict(MorningOf()) == {"value": 0, "unit": "days", "label": "morning-of"}

    def test_parse_offsets_skips_malformed(self):
        offsets = parse_offsets([
            {"value": 7, "unit": "days"},
            {"value": 1, "unit": "fortnights"},
            {"value": None},
            {"label": "morning-of"},
        ])
        assert offsets == [DurationOffset(7, "days"), MorningOf()]

    def test_parse_offsets_none(self):
        assert parse_offsets(None) == []


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class TestReminderRuleResolver:
    def _resolver(self, rules):
        store = MagicMock()
        store.list_rules.return_value = rules
        return ReminderRuleResolver(store), store

    def test_offsets_for_loaded_rule(self):
        resolver, _ = self._resolver([
            ReminderRule(family_id=1, category=Category.TEST, offsets=[MorningOf()]),
        ])
        assert resolver.load() == 1
        assert resolver.offsets_for(1, "test") == [MorningOf()]
        assert resolver.offsets_for(1, Category.TEST) == [MorningOf()]

    def test_missing_rule_is_empty(self):
        resolver, _ = self._resolver([])
        resolver.load()
        assert resolver.offsets_for(1, "class") == []

    def test_rules_are_per_family(self):
        resolver, _ = self._resolver([
            ReminderRule(family_id=1, category=Category.CLASS, offsets=[DurationOffset(1, "hours")]),
        ])
        resolver.load()
        assert resolver.offsets_for(2, "class") == []

    def test_store_error_propagates(self):
        resolver, store = self._resolver([])
        store.list_rules.side_effect = RuntimeError("db down")
        with pytest.raises(RuntimeError):
            resolver.load()

    def test_defaults_cover_every_category(self):
        assert set(DEFAULT_REMINDER_RULES) == {c.value for c in Category}
