"""
Tests for settlement period helpers.
"""

from datetime import UTC, date, datetime

import pytest
from freezegun import freeze_time

from settlement.exceptions import SettlementValidationError
from settlement.periods import parse_period_date, period_bounds, previous_month_period


class TestPreviousMonthPeriod:
    def test_mid_month(self):
        assert previous_month_period(date(2024, 3, 15)) == (
            date(2024, 2, 1),
            date(2024, 2, 29),
        )

    def test_first_of_month(self):
        assert previous_month_period(date(2024, 2, 1)) == (
            date(2024, 1, 1),
            date(2024, 1, 31),
        )

    def test_january_rolls_back_a_year(self):
        assert previous_month_period(date(2024, 1, 10)) == (
            date(2023, 12, 1),
            date(2023, 12, 31),
        )

    @freeze_time("2024-05-01 02:00:00")
    def test_defaults_to_today(self):
        """The monthly schedule runs on the 1st and settles the month before."""
        assert previous_month_period() == (date(2024, 4, 1), date(2024, 4, 30))


class TestPeriodBounds:
    def test_end_date_is_inclusive(self):
        start, end = period_bounds(date(2024, 1, 1), date(2024, 1, 31))

        assert start == datetime(2024, 1, 1, tzinfo=UTC)
        assert end == datetime(2024, 2, 1, tzinfo=UTC)

    def test_single_day_period(self):
        start, end = period_bounds(date(2024, 1, 15), date(2024, 1, 15))

        assert end - start == datetime(2024, 1, 16, tzinfo=UTC) - datetime(
            2024, 1, 15, tzinfo=UTC
        )

    def test_end_before_start_rejected(self):
        with pytest.raises(SettlementValidationError) as exc_info:
            period_bounds(date(2024, 2, 1), date(2024, 1, 31))

        assert exc_info.value.details == {
            "period_start": "2024-02-01",
            "period_end": "2024-01-31",
        }


class TestParsePeriodDate:
    def test_iso_date(self):
        assert parse_period_date("2024-01-31", "period_end") == date(2024, 1, 31)

    @pytest.mark.parametrize("value", ["2024-13-01", "31/01/2024", "", None])
    def test_invalid_value(self, value):
        with pytest.raises(SettlementValidationError) as exc_info:
            parse_period_date(value, "period_start")

        assert "period_start" in exc_info.value.message
