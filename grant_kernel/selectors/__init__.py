"""Read-only query selectors for the grant kernel."""

from grant_kernel.selectors.installment_selector import (
    InstallmentSelector,
    InstallmentView,
    ScholarSummary,
)

__all__ = [
    "InstallmentSelector",
    "InstallmentView",
    "ScholarSummary",
]
