"""
EnrollmentService -- scholar assignment and installment schedule creation.

Responsibility:
    Creates an enrollment together with one pending payment per monthly
    installment, and moves enrollments between statuses.

Architecture position:
    Kernel > Services.  Writes ``enrollments`` and creates the initial
    ``payments`` rows of a new schedule (creation only; every later
    payment change belongs to PaymentSettlementService).

Invariants enforced:
    - end_date after start_date; grant_value positive.
    - At most one active enrollment per scholar.
    - The enrollment and its whole schedule are flushed inside one
      savepoint: either every installment exists or none does.
    - Live installments of a scholar never overlap in reference month.

Failure modes:
    - InvalidDateRangeError, ValidationError, ActiveEnrollmentExistsError,
      InstallmentOverlapError, EnrollmentNotFoundError,
      InvalidTransitionError.

Audit relevance:
    ``assign_scholar_to_project`` on creation, ``change_enrollment_status``
    on status moves.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from grant_kernel.domain.enrollment import (
    ENROLLMENT_TRANSITIONS,
    EnrollmentRecord,
    EnrollmentStatus,
    GrantModality,
)
from grant_kernel.domain.installment import build_schedule
from grant_kernel.domain.payment import PaymentStatus
from grant_kernel.exceptions import (
    ActiveEnrollmentExistsError,
    EnrollmentNotFoundError,
    InstallmentOverlapError,
    InvalidTransitionError,
    ValidationError,
)
from grant_kernel.logging_config import get_logger
from grant_kernel.models.audit_event import AuditAction, AuditEntityType
from grant_kernel.models.enrollment import Enrollment
from grant_kernel.models.payment import Payment
from grant_kernel.services.base import BaseService, snapshot

logger = get_logger("services.enrollment")


class EnrollmentService(BaseService[Enrollment]):
    """Enrollment lifecycle and schedule generation."""

    model = Enrollment
    not_found = EnrollmentNotFoundError

    def get_enrollment(self, enrollment_id: UUID) -> EnrollmentRecord:
        return self._load(enrollment_id).to_dto()

    def active_enrollment_for(self, user_id: UUID) -> EnrollmentRecord | None:
        row = self._session.execute(
            select(Enrollment).where(
                Enrollment.user_id == user_id,
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
            )
        ).scalar_one_or_none()
        return row.to_dto() if row else None

    def create_enrollment(
        self,
        user_id: UUID,
        subproject_id: UUID,
        grant_value: Decimal,
        start_date: date,
        end_date: date,
        actor_id: UUID,
        modality: GrantModality = GrantModality.ICT,
        organization_id: UUID | None = None,
    ) -> EnrollmentRecord:
        """
        Enroll a scholar and generate the payment schedule.

        Postconditions:
            - One enrollment (active) and ``total_installments`` pending
              payments with amount = grant_value and consecutive months.
        """
        modality = GrantModality(modality)
        grant_value = Decimal(grant_value)
        if grant_value <= 0:
            raise ValidationError("Grant value must be positive", field="grant_value")
        schedule = build_schedule(start_date, end_date)

        existing = self.active_enrollment_for(user_id)
        if existing is not None:
            raise ActiveEnrollmentExistsError(user_id, existing.id)

        months = [item.reference_month for item in schedule]
        taken = self._session.execute(
            select(Payment.reference_month).where(
                Payment.user_id == user_id,
                Payment.reference_month.in_(months),
                Payment.status != PaymentStatus.CANCELLED.value,
            )
        ).scalars().all()
        if taken:
            raise InstallmentOverlapError(user_id, sorted(taken))

        enrollment = Enrollment(
            user_id=user_id,
            subproject_id=subproject_id,
            organization_id=organization_id,
            modality=modality.value,
            grant_value=grant_value,
            start_date=start_date,
            end_date=end_date,
            total_installments=len(schedule),
            status=EnrollmentStatus.ACTIVE.value,
            created_by_id=actor_id,
        )
        try:
            with self._session.begin_nested():
                self._session.add(enrollment)
                self._session.flush()
                self._session.add_all(
                    Payment(
                        user_id=user_id,
                        enrollment_id=enrollment.id,
                        installment_number=item.installment_number,
                        reference_month=item.reference_month,
                        amount=grant_value,
                        status=PaymentStatus.PENDING.value,
                        created_by_id=actor_id,
                    )
                    for item in schedule
                )
                self._session.flush()
        except IntegrityError:
            logger.warning(
                "enrollment_create_conflict",
                extra={"user_id": str(user_id), "subproject_id": str(subproject_id)},
            )
            current = self.active_enrollment_for(user_id)
            if current is not None:
                raise ActiveEnrollmentExistsError(user_id, current.id) from None
            raise InstallmentOverlapError(user_id, months) from None

        record = enrollment.to_dto()
        self._auditor.record(
            actor_id=actor_id,
            action=AuditAction.ASSIGN_SCHOLAR_TO_PROJECT,
            entity_type=AuditEntityType.ENROLLMENT,
            entity_id=record.id,
            new_value=snapshot(record),
            details={
                "scholar_id": user_id,
                "subproject_id": subproject_id,
                "modality": modality.value,
                "grant_value": grant_value,
                "total_installments": record.total_installments,
                "first_reference_month": months[0],
                "last_reference_month": months[-1],
            },
        )
        logger.info(
            "enrollment_created",
            extra={
                "enrollment_id": str(record.id),
                "user_id": str(user_id),
                "total_installments": record.total_installments,
            },
        )
        return record

    def change_status(
        self,
        enrollment_id: UUID,
        new_status: EnrollmentStatus,
        actor_id: UUID,
    ) -> EnrollmentRecord:
        new_status = EnrollmentStatus(new_status)
        before = self._load(enrollment_id).to_dto()
        if new_status not in ENROLLMENT_TRANSITIONS[before.status]:
            raise InvalidTransitionError(
                "enrollment", enrollment_id, before.status.value, new_status.value,
            )
        if new_status == EnrollmentStatus.ACTIVE:
            existing = self.active_enrollment_for(before.user_id)
            if existing is not None:
                raise ActiveEnrollmentExistsError(before.user_id, existing.id)

        values = {"status": new_status.value, "updated_by_id": actor_id}
        if not self._compare_and_set(enrollment_id, before.status.value, values):
            current = self._load(enrollment_id)
            raise InvalidTransitionError(
                "enrollment", enrollment_id, current.status, new_status.value,
            )

        after = self._load(enrollment_id).to_dto()
        self._auditor.record(
            actor_id=actor_id,
            action=AuditAction.CHANGE_ENROLLMENT_STATUS,
            entity_type=AuditEntityType.ENROLLMENT,
            entity_id=enrollment_id,
            previous_value=snapshot(before),
            new_value=snapshot(after),
        )
        logger.info(
            "enrollment_status_changed",
            extra={
                "enrollment_id": str(enrollment_id),
                "from_status": before.status.value,
                "to_status": new_status.value,
            },
        )
        return after
