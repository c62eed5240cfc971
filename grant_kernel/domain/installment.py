"""
Installment identity and schedule arithmetic.

An installment is not a stored entity: it is the pairing of one Payment row
and the Report versions sharing ``(user_id, reference_month)``.
``InstallmentKey`` is the one value type both report and payment lookups
use, so the pairing rule lives in exactly one place.

Reference months are ``YYYY-MM`` strings.  The format is lexically sortable,
which lets range queries compare strings without parsing dates.
"""

import re
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from grant_kernel.exceptions import InvalidDateRangeError, InvalidReferenceMonthError

_REFERENCE_MONTH_RE = re.compile(r"([0-9]{4})-(0[1-9]|1[0-2])")


def parse_reference_month(value: str) -> tuple[int, int]:
    """Return ``(year, month)`` for a ``YYYY-MM`` string.

    Raises:
        InvalidReferenceMonthError: if ``value`` is not a valid YYYY-MM.
    """
    if not isinstance(value, str):
        raise InvalidReferenceMonthError(value)
    match = _REFERENCE_MONTH_RE.fullmatch(value)
    if match is None or int(match.group(1)) == 0:
        raise InvalidReferenceMonthError(value)
    return int(match.group(1)), int(match.group(2))


def format_reference_month(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def reference_month_of(day: date) -> str:
    return format_reference_month(day.year, day.month)


def first_day_of(reference_month: str) -> date:
    year, month = parse_reference_month(reference_month)
    return date(year, month, 1)


def add_months(reference_month: str, months: int) -> str:
    """Shift a reference month by ``months`` (may be negative)."""
    year, month = parse_reference_month(reference_month)
    index = year * 12 + (month - 1) + months
    return format_reference_month(index // 12, index % 12 + 1)


def months_between(start_month: str, end_month: str) -> int:
    """Number of whole months from ``start_month`` to ``end_month``."""
    start_year, start = parse_reference_month(start_month)
    end_year, end = parse_reference_month(end_month)
    return (end_year - start_year) * 12 + (end - start)


def count_installments(start_date: date, end_date: date) -> int:
    """Monthly installments covered by an enrollment period, both ends inclusive.

    Raises:
        InvalidDateRangeError: if ``end_date`` is not after ``start_date``.
    """
    if end_date <= start_date:
        raise InvalidDateRangeError(start_date, end_date)
    return (end_date.year - start_date.year) * 12 + (end_date.month - start_date.month) + 1


@dataclass(frozen=True)
class InstallmentKey:
    """Natural key shared by a Payment and its Report versions."""

    user_id: UUID
    reference_month: str

    def __post_init__(self) -> None:
        parse_reference_month(self.reference_month)

    def __str__(self) -> str:
        return f"{self.user_id}:{self.reference_month}"


@dataclass(frozen=True)
class ScheduledInstallment:
    installment_number: int
    reference_month: str


def build_schedule(start_date: date, end_date: date) -> tuple[ScheduledInstallment, ...]:
    """One installment per calendar month from ``start_date`` to ``end_date``.

    Installment numbers start at 1; reference months are consecutive.
    """
    total = count_installments(start_date, end_date)
    first = reference_month_of(start_date)
    return tuple(
        ScheduledInstallment(
            installment_number=n + 1,
            reference_month=add_months(first, n),
        )
        for n in range(total)
    )
