"""
Domain: payout schedule calculation (pure).

Rules implemented here:
- weekly advances 7 days, biweekly 14 days.
- monthly advances one calendar month; the day is clamped to the end of
  shorter months (Jan 31 -> Feb 28), never a fixed day count.
- Every round date is an offset from the pool's first payout date, so a clamped
  month end never drifts later rounds and paying a round early never shifts
  the following rounds.
- Unknown frequency strings fall back to weekly. Pool creation validates the
  frequency up front with `parse_frequency`, so the fallback only covers
  documents written before that validation existed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Union

from dateutil.relativedelta import relativedelta

from .errors import ValidationError
from .time import require_utc_timestamp

logger = logging.getLogger(__name__)


class Frequency(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


def parse_frequency(value: Union[str, Frequency]) -> Frequency:
    """
    Resolve a Frequency from user input.

    Raises:
        ValidationError: if the value is not a supported frequency
    """

    if isinstance(value, Frequency):
        return value
    try:
        return Frequency(str(value).strip().lower())
    except ValueError:
        supported = ", ".join(f.value for f in Frequency)
        raise ValidationError(f"Unsupported frequency '{value}'. Use one of: {supported}") from None


def _resolve(frequency: Union[str, Frequency]) -> Frequency:
    try:
        return parse_frequency(frequency)
    except ValidationError:
        logger.warning(
            f"Unrecognized frequency '{frequency}', scheduling weekly",
            extra={"frequency": str(frequency)},
        )
        return Frequency.WEEKLY


def _offset(frequency: Frequency, intervals: int):
    if frequency is Frequency.MONTHLY:
        return relativedelta(months=intervals)
    if frequency is Frequency.BIWEEKLY:
        return timedelta(days=14 * intervals)
    return timedelta(days=7 * intervals)


def next_date(from_date: datetime, frequency: Union[str, Frequency]) -> datetime:
    """
    Return the payout date one frequency interval after `from_date`.

    Example:
        next_date(datetime(2025, 1, 31, tzinfo=timezone.utc), Frequency.MONTHLY)
        # datetime(2025, 2, 28, tzinfo=timezone.utc)
    """

    require_utc_timestamp("from_date", from_date)
    return from_date + _offset(_resolve(frequency), 1)


def payout_date_for_round(first: datetime, frequency: Union[str, Frequency], round_number: int) -> datetime:
    """
    Scheduled payout date of `round_number` (1-based) in a pool whose first
    payout is `first`.

    Offsets are taken from `first`, not from the previous round, so a clamped
    month end does not carry over: Jan 31 -> Feb 28 -> Mar 31 -> Apr 30.
    """

    require_utc_timestamp("first", first)
    if round_number < 1:
        raise ValueError("round_number must be >= 1")
    return first + _offset(_resolve(frequency), round_number - 1)


def schedule_dates(first: datetime, frequency: Union[str, Frequency], count: int) -> List[datetime]:
    """Full payout calendar: the dates of rounds 1..count."""

    require_utc_timestamp("first", first)
    if count < 0:
        raise ValueError("count must be >= 0")

    return [payout_date_for_round(first, frequency, r) for r in range(1, count + 1)]


def first_payout_date_from(scheduled: datetime, frequency: Union[str, Frequency], round_number: int) -> datetime:
    """
    Recover round 1's date from the scheduled date of `round_number`.

    Only for stored pools written without a first payout date. A monthly date
    that was already clamped (Feb 28 from Jan 31) cannot be told apart, so the
    result is exact for weekly and biweekly pools and best effort for monthly.
    """

    require_utc_timestamp("scheduled", scheduled)
    if round_number < 1:
        raise ValueError("round_number must be >= 1")
    return scheduled - _offset(_resolve(frequency), round_number - 1)
