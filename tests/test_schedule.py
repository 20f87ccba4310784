"""
Tests for `domain/schedule.py`.

Covers contract rules:
- weekly/biweekly advance by fixed day counts.
- monthly uses calendar-month arithmetic, clamping to the end of short months.
- Every round date is counted from the first payout date, so clamping never drifts.
- Unknown frequencies fall back to weekly (with a warning); creation-time
  parsing rejects them.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest

from domain.errors import ValidationError
from domain.schedule import (
    Frequency,
    first_payout_date_from,
    next_date,
    parse_frequency,
    payout_date_for_round,
    schedule_dates,
)


def _utc(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, 12, 0, 0, tzinfo=timezone.utc)


def test_next_date_weekly_adds_seven_days() -> None:
    """Verify weekly schedules advance exactly 7 days."""

    assert next_date(_utc(2025, 1, 8), Frequency.WEEKLY) == _utc(2025, 1, 15)


def test_next_date_biweekly_adds_fourteen_days() -> None:
    """Verify biweekly schedules advance exactly 14 days, across month ends."""

    assert next_date(_utc(2025, 1, 25), Frequency.BIWEEKLY) == _utc(2025, 2, 8)


def test_next_date_monthly_keeps_day_of_month() -> None:
    assert next_date(_utc(2025, 1, 15), Frequency.MONTHLY) == _utc(2025, 2, 15)
    assert next_date(_utc(2025, 2, 15), Frequency.MONTHLY) == _utc(2025, 3, 15)


def test_next_date_monthly_clamps_to_end_of_shorter_month() -> None:
    """Verify Jan 31 + 1 month is Feb 28 (Feb 29 in leap years), not a fixed day count."""

    assert next_date(_utc(2025, 1, 31), Frequency.MONTHLY) == _utc(2025, 2, 28)
    assert next_date(_utc(2024, 1, 31), Frequency.MONTHLY) == _utc(2024, 2, 29)


def test_next_date_accepts_frequency_strings() -> None:
    assert next_date(_utc(2025, 3, 1), "monthly") == _utc(2025, 4, 1)
    assert next_date(_utc(2025, 3, 1), "BiWeekly") == _utc(2025, 3, 15)


def test_next_date_unknown_frequency_falls_back_to_weekly_and_warns(caplog) -> None:
    """Verify unrecognized frequencies schedule weekly and are logged, not silently accepted."""

    with caplog.at_level(logging.WARNING, logger="domain.schedule"):
        result = next_date(_utc(2025, 1, 8), "fortnightly")

    assert result == _utc(2025, 1, 15)
    assert any("fortnightly" in record.getMessage() for record in caplog.records)


def test_next_date_requires_utc_timestamp() -> None:
    with pytest.raises(ValueError):
        next_date(datetime(2025, 1, 8), Frequency.WEEKLY)

    with pytest.raises(ValueError):
        next_date(datetime(2025, 1, 8, tzinfo=timezone(timedelta(hours=3))), Frequency.WEEKLY)


def test_parse_frequency_rejects_unknown_values() -> None:
    """Verify pool creation can hard-fail on unsupported frequencies."""

    assert parse_frequency(" Weekly ") is Frequency.WEEKLY
    with pytest.raises(ValidationError) as exc:
        parse_frequency("daily")
    assert "daily" in exc.value.reason


def test_schedule_dates_counts_every_round_from_the_first_date() -> None:
    """Verify the payout calendar lists rounds 1..count as offsets from round 1."""

    dates = schedule_dates(_utc(2025, 1, 8), Frequency.WEEKLY, 3)
    assert dates == [_utc(2025, 1, 8), _utc(2025, 1, 15), _utc(2025, 1, 22)]
    assert schedule_dates(_utc(2025, 1, 8), Frequency.WEEKLY, 0) == []

    with pytest.raises(ValueError):
        schedule_dates(_utc(2025, 1, 8), Frequency.WEEKLY, -1)


def test_monthly_schedule_from_month_end_does_not_drift() -> None:
    """A clamped February must not pull March and April back to the 28th."""

    assert schedule_dates(_utc(2025, 1, 31), Frequency.MONTHLY, 4) == [
        _utc(2025, 1, 31),
        _utc(2025, 2, 28),
        _utc(2025, 3, 31),
        _utc(2025, 4, 30),
    ]


def test_payout_date_for_round() -> None:
    first = _utc(2025, 1, 31)

    assert payout_date_for_round(first, Frequency.MONTHLY, 1) == first
    assert payout_date_for_round(first, Frequency.MONTHLY, 3) == _utc(2025, 3, 31)
    assert payout_date_for_round(first, Frequency.BIWEEKLY, 3) == _utc(2025, 2, 28)

    with pytest.raises(ValueError):
        payout_date_for_round(first, Frequency.MONTHLY, 0)


def test_first_payout_date_from_later_round() -> None:
    assert first_payout_date_from(_utc(2025, 1, 22), Frequency.WEEKLY, 3) == _utc(2025, 1, 8)
    assert first_payout_date_from(_utc(2025, 3, 15), Frequency.MONTHLY, 3) == _utc(2025, 1, 15)
