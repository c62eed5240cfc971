"""
Module: grant_kernel.models.report
Responsibility: ORM persistence for report versions.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - Version numbers are unique per (user_id, reference_month).
    - At most one version per (user_id, reference_month) is under review
      (partial unique index).
    - A rejected version carries feedback and a resubmission deadline.
    - Submitted content (file, observations, version, key) is never
      updated; a new version supersedes it (ORM listener).
    - A reviewed version never changes again (ORM listener).
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, Integer, String, Text, UniqueConstraint, event, inspect, text
from sqlalchemy.orm import Mapped, mapped_column

from grant_kernel.db.base import Base, UUIDString
from grant_kernel.domain.report import ReportRecord, ReportStatus
from grant_kernel.exceptions import ImmutabilityViolationError

_CONTENT_COLUMNS = (
    "user_id",
    "reference_month",
    "installment_number",
    "version",
    "file_reference",
    "observations",
    "submitted_at",
)


class Report(Base):
    """One submitted report version. Content is append-only."""

    __tablename__ = "reports"

    __table_args__ = (
        CheckConstraint(
            "status IN ('under_review', 'approved', 'rejected')",
            name="ck_reports_valid_status",
        ),
        CheckConstraint(
            "status != 'rejected' OR "
            "(feedback IS NOT NULL AND resubmission_deadline IS NOT NULL)",
            name="ck_reports_rejection_complete",
        ),
        CheckConstraint("version >= 1", name="ck_reports_version"),
        UniqueConstraint(
            "user_id", "reference_month", "version",
            name="uq_reports_key_version",
        ),
        Index(
            "ix_reports_one_under_review",
            "user_id", "reference_month",
            unique=True,
            postgresql_where=text("status = 'under_review'"),
            sqlite_where=text("status = 'under_review'"),
        ),
        Index("ix_reports_status_submitted", "status", "submitted_at"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    reference_month: Mapped[str] = mapped_column(String(7), nullable=False)
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    file_reference: Mapped[str] = mapped_column(String(500), nullable=False)
    observations: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="under_review")
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    resubmission_deadline: Mapped[datetime | None] = mapped_column(nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(nullable=False)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reviewed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Report {self.id} {self.user_id}:{self.reference_month} "
            f"v{self.version} status={self.status}>"
        )

    def to_dto(self) -> ReportRecord:
        return ReportRecord(
            id=self.id,
            user_id=self.user_id,
            reference_month=self.reference_month,
            installment_number=self.installment_number,
            version=self.version,
            file_reference=self.file_reference,
            observations=self.observations,
            status=ReportStatus(self.status),
            submitted_at=self.submitted_at,
            feedback=self.feedback,
            resubmission_deadline=self.resubmission_deadline,
            reviewed_at=self.reviewed_at,
            reviewed_by=self.reviewed_by,
        )


@event.listens_for(Report, "before_update")
def _guard_report_content(mapper, connection, target: Report) -> None:
    state = inspect(target)
    for column in _CONTENT_COLUMNS:
        if state.attrs[column].history.has_changes():
            raise ImmutabilityViolationError(
                "report", str(target.id), f"{column} cannot change; submit a new version"
            )
    previous_status = state.attrs["status"].history.deleted
    if previous_status and previous_status[0] != ReportStatus.UNDER_REVIEW.value:
        raise ImmutabilityViolationError(
            "report", str(target.id), f"review outcome '{previous_status[0]}' is final"
        )
