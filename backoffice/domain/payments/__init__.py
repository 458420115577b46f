from backoffice.domain.payments.ledger import (
    COMPLETED_STATUSES,
    DIRECTION_BY_ORDER_TYPE,
    PAYMENT_METHODS,
    STATUS_TABLE,
    PayableRef,
    Payment,
    RelatedOrder,
    create_payment,
    default_status,
    is_completed,
    is_settled,
    payment_allocations,
    record_deposit,
    status_row,
    summarize_payments,
    update_payment_status,
)

__all__ = [
    "COMPLETED_STATUSES",
    "DIRECTION_BY_ORDER_TYPE",
    "PAYMENT_METHODS",
    "STATUS_TABLE",
    "PayableRef",
    "Payment",
    "RelatedOrder",
    "create_payment",
    "default_status",
    "is_completed",
    "is_settled",
    "payment_allocations",
    "record_deposit",
    "status_row",
    "summarize_payments",
    "update_payment_status",
]
