"""
Installment keys, reference-month parsing and schedule generation.
"""

from datetime import date
from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from grant_kernel.domain.installment import (
    InstallmentKey,
    add_months,
    build_schedule,
    count_installments,
    first_day_of,
    months_between,
    parse_reference_month,
)
from grant_kernel.exceptions import InvalidDateRangeError, InvalidReferenceMonthError

months = st.builds(
    lambda y, m: f"{y:04d}-{m:02d}",
    st.integers(min_value=1990, max_value=2100),
    st.integers(min_value=1, max_value=12),
)


class TestParseReferenceMonth:
    def test_valid(self):
        assert parse_reference_month("2024-03") == (2024, 3)

    @pytest.mark.parametrize(
        "value",
        ["2024-13", "2024-00", "2024-3", "24-03", "2024/03", "2024-03-01", "2024-03\n", "0000-01", "", None],
    )
    def test_invalid(self, value):
        with pytest.raises(InvalidReferenceMonthError) as exc_info:
            parse_reference_month(value)
        assert exc_info.value.code == "INVALID_REFERENCE_MONTH"

    @given(month=months)
    def test_round_trips_through_first_day(self, month):
        day = first_day_of(month)
        assert f"{day.year:04d}-{day.month:02d}" == month

    @given(month=months, shift=st.integers(min_value=-60, max_value=60))
    def test_add_months_inverts_months_between(self, month, shift):
        assert months_between(month, add_months(month, shift)) == shift

    @given(a=months, b=months)
    def test_lexical_order_matches_calendar_order(self, a, b):
        assert (a < b) == (first_day_of(a) < first_day_of(b))


class TestInstallmentKey:
    def test_rejects_malformed_month(self):
        with pytest.raises(InvalidReferenceMonthError):
            InstallmentKey(uuid4(), "2024-3")

    def test_equality_by_value(self):
        user_id = uuid4()
        assert InstallmentKey(user_id, "2024-03") == InstallmentKey(user_id, "2024-03")

    def test_str(self):
        user_id = uuid4()
        assert str(InstallmentKey(user_id, "2024-03")) == f"{user_id}:2024-03"


class TestCountInstallments:
    @pytest.mark.parametrize(
        "start, end, expected",
        [
            (date(2024, 1, 1), date(2024, 1, 31), 1),
            (date(2024, 1, 1), date(2024, 6, 30), 6),
            (date(2024, 1, 15), date(2024, 2, 1), 2),
            (date(2023, 11, 1), date(2024, 2, 28), 4),
            (date(2024, 1, 1), date(2024, 12, 31), 12),
        ],
    )
    def test_formula(self, start, end, expected):
        assert count_installments(start, end) == expected

    @pytest.mark.parametrize(
        "start, end",
        [
            (date(2024, 1, 1), date(2024, 1, 1)),
            (date(2024, 6, 1), date(2024, 1, 1)),
        ],
    )
    def test_end_must_be_after_start(self, start, end):
        with pytest.raises(InvalidDateRangeError) as exc_info:
            count_installments(start, end)
        assert exc_info.value.code == "INVALID_DATE_RANGE"


class TestBuildSchedule:
    def test_consecutive_months_numbered_from_one(self):
        schedule = build_schedule(date(2023, 11, 10), date(2024, 2, 5))
        assert [(s.installment_number, s.reference_month) for s in schedule] == [
            (1, "2023-11"),
            (2, "2023-12"),
            (3, "2024-01"),
            (4, "2024-02"),
        ]

    @given(
        start=st.dates(min_value=date(2000, 1, 1), max_value=date(2080, 12, 31)),
        length_days=st.integers(min_value=1, max_value=3650),
    )
    def test_schedule_properties(self, start, length_days):
        end = date.fromordinal(start.toordinal() + length_days)
        schedule = build_schedule(start, end)

        assert len(schedule) == count_installments(start, end)
        assert [s.installment_number for s in schedule] == list(range(1, len(schedule) + 1))
        assert schedule[0].reference_month == f"{start.year:04d}-{start.month:02d}"
        assert schedule[-1].reference_month == f"{end.year:04d}-{end.month:02d}"
        for previous, current in zip(schedule, schedule[1:]):
            assert add_months(previous.reference_month, 1) == current.reference_month
