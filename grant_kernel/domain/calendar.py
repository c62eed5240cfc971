"""
Reference-month calendar.

Pure functions over an instant and a timezone: which month is "current",
whether a reference month is past/current/future, and when a rejected
report's resubmission window closes.  ``ReportingCalendar`` binds a Clock
and a timezone so services can ask these questions about "now" without
computing dates themselves.
"""

from datetime import UTC, datetime, timedelta, tzinfo
from enum import Enum

from grant_kernel.domain.clock import Clock
from grant_kernel.domain.installment import (
    first_day_of,
    reference_month_of,
)

RESUBMISSION_WINDOW = timedelta(days=5)
"""Fixed period a scholar has to resubmit after a rejection."""


class MonthClassification(str, Enum):
    PAST = "past"
    CURRENT = "current"
    FUTURE = "future"


def current_reference_month(now: datetime, tz: tzinfo = UTC) -> str:
    """The ``YYYY-MM`` containing ``now`` in the calendar timezone."""
    return reference_month_of(now.astimezone(tz).date())


def classify(reference_month: str, now: datetime, tz: tzinfo = UTC) -> MonthClassification:
    """Compare first-of-month dates of ``reference_month`` and ``now``."""
    target = first_day_of(reference_month)
    current = first_day_of(current_reference_month(now, tz))
    if target < current:
        return MonthClassification.PAST
    if target == current:
        return MonthClassification.CURRENT
    return MonthClassification.FUTURE


def resubmission_deadline(reviewed_at: datetime) -> datetime:
    return reviewed_at + RESUBMISSION_WINDOW


def is_expired(deadline: datetime, now: datetime) -> bool:
    """A deadline is still open at its exact instant."""
    return now > deadline


class ReportingCalendar:
    """Calendar questions answered against an injected Clock."""

    def __init__(self, clock: Clock, tz: tzinfo = UTC):
        self._clock = clock
        self.tz = tz

    def now(self) -> datetime:
        return self._clock.now_utc()

    def current_reference_month(self) -> str:
        return current_reference_month(self.now(), self.tz)

    def classify(self, reference_month: str) -> MonthClassification:
        return classify(reference_month, self.now(), self.tz)

    def resubmission_deadline(self, reviewed_at: datetime) -> datetime:
        return resubmission_deadline(reviewed_at)

    def is_expired(self, deadline: datetime) -> bool:
        return is_expired(deadline, self.now())
