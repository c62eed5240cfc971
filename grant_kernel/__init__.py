"""
Grant Kernel - disbursement lifecycle engine.

The transactional core of a research-grant administration system:
- Enrollment and installment schedule generation
- Versioned report submission and review
- Payment eligibility and settlement
- Bank-account validation with edit locking
- Hash-chained audit trail for every state change
"""

__version__ = "0.1.0"
