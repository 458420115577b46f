from backoffice.reconciliation.rules import (
    OutstandingBalance,
    ReconciliationResult,
    compute_outstanding,
    derive_payment_status,
    payment_references,
    run_reconciliation,
)

__all__ = [
    "OutstandingBalance",
    "ReconciliationResult",
    "compute_outstanding",
    "derive_payment_status",
    "payment_references",
    "run_reconciliation",
]
