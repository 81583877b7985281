"""
Settlement period helpers.

Periods are calendar dates with an inclusive end date. Earnings are
matched against the half-open UTC window [start 00:00, end + 1 day 00:00).
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta

from django.utils import timezone

from settlement.exceptions import SettlementValidationError


def previous_month_period(today: date | None = None) -> tuple[date, date]:
    """
    Return (first day, last day) of the calendar month before today.

    Example:
        previous_month_period(date(2024, 3, 15)) == (date(2024, 2, 1), date(2024, 2, 29))
    """
    today = today or timezone.localdate()
    period_end = today.replace(day=1) - timedelta(days=1)
    return period_end.replace(day=1), period_end


def period_bounds(period_start: date, period_end: date) -> tuple[datetime, datetime]:
    """Convert an inclusive date period to an aware half-open datetime window."""
    if period_end < period_start:
        raise SettlementValidationError(
            "period_end must not be before period_start",
            details={
                "period_start": period_start.isoformat(),
                "period_end": period_end.isoformat(),
            },
        )
    window_start = datetime.combine(period_start, time.min, tzinfo=UTC)
    window_end = datetime.combine(period_end + timedelta(days=1), time.min, tzinfo=UTC)
    return window_start, window_end


def parse_period_date(value: str, field_name: str) -> date:
    """Parse an ISO date (YYYY-MM-DD) supplied by a caller."""
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise SettlementValidationError(
            f"{field_name} must be an ISO date (YYYY-MM-DD)",
            details={field_name: value},
        ) from e
