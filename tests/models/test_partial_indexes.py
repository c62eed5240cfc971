"""
ORM model tests for the partial unique indexes.

Tests: one report under review per installment key, one live payment per
installment key, one active enrollment per scholar.  Rows are inserted
directly through the ORM so the database, not the services, is what
refuses the duplicate.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from grant_kernel.models.enrollment import Enrollment
from grant_kernel.models.payment import Payment
from grant_kernel.models.report import Report


def _report(user_id, reference_month, version, now, status="under_review"):
    return Report(
        user_id=user_id,
        reference_month=reference_month,
        installment_number=3,
        version=version,
        file_reference=f"reports/{user_id}/{reference_month}/v{version}.pdf",
        status=status,
        submitted_at=now,
    )


def _payment(enrollment_id, user_id, reference_month, installment_number, actor_id):
    return Payment(
        user_id=user_id,
        enrollment_id=enrollment_id,
        installment_number=installment_number,
        reference_month=reference_month,
        amount=Decimal("700.00"),
        status="pending",
        created_by_id=actor_id,
    )


class TestOneReportUnderReview:
    def test_second_pending_version_refused(self, session, submit_report, create_enrollment, scholar_id, deterministic_clock):
        create_enrollment(user_id=scholar_id)
        submit_report(scholar_id, "2024-03")

        with pytest.raises(IntegrityError):
            with session.begin_nested():
                session.add(_report(scholar_id, "2024-03", 2, deterministic_clock.now_utc()))
                session.flush()

    def test_other_months_unaffected(self, session, submit_report, create_enrollment, scholar_id, deterministic_clock):
        create_enrollment(user_id=scholar_id)
        submit_report(scholar_id, "2024-03")

        with session.begin_nested():
            session.add(_report(scholar_id, "2024-02", 1, deterministic_clock.now_utc()))
            session.flush()


class TestOneLivePayment:
    def test_duplicate_live_installment_refused(self, session, create_enrollment, scholar_id, test_actor_id):
        enrollment = create_enrollment(user_id=scholar_id)

        with pytest.raises(IntegrityError):
            with session.begin_nested():
                session.add(_payment(enrollment.id, scholar_id, "2024-03", 99, test_actor_id))
                session.flush()

    def test_cancelled_row_frees_the_key(
        self, session, create_enrollment, payment_for, payment_settlement, scholar_id, test_actor_id,
    ):
        enrollment = create_enrollment(user_id=scholar_id)
        payment_settlement.cancel(payment_for(scholar_id, "2024-03").id, test_actor_id)

        with session.begin_nested():
            session.add(_payment(enrollment.id, scholar_id, "2024-03", 99, test_actor_id))
            session.flush()

        assert payment_for(scholar_id, "2024-03").installment_number == 99


class TestOneActiveEnrollment:
    def test_second_active_enrollment_refused(self, session, create_enrollment, scholar_id, test_actor_id):
        create_enrollment(user_id=scholar_id)

        with pytest.raises(IntegrityError):
            with session.begin_nested():
                session.add(
                    Enrollment(
                        user_id=scholar_id,
                        subproject_id=uuid4(),
                        grant_value=Decimal("700.00"),
                        start_date=date(2025, 1, 1),
                        end_date=date(2025, 6, 30),
                        total_installments=6,
                        status="active",
                        created_by_id=test_actor_id,
                    )
                )
                session.flush()
