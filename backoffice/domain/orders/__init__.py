from backoffice.domain.orders.adjustments import convert_line_to_cash, revert_line_to_cash
from backoffice.domain.orders.aggregates import (
    CASH_CONVERSION,
    COMPLETION_STATUS,
    KIND_BY_ORDER_TYPE,
    ORDER_STATUSES,
    ORDER_TYPES,
    Order,
    OrderAdjustment,
    OrderLineItem,
    PaymentReference,
    cancel_order,
    create_order,
    record_fulfillment,
    recompute_totals,
    revise_order,
    transition_status,
)

__all__ = [
    "CASH_CONVERSION",
    "COMPLETION_STATUS",
    "KIND_BY_ORDER_TYPE",
    "ORDER_STATUSES",
    "ORDER_TYPES",
    "Order",
    "OrderAdjustment",
    "OrderLineItem",
    "PaymentReference",
    "cancel_order",
    "convert_line_to_cash",
    "create_order",
    "record_fulfillment",
    "recompute_totals",
    "revert_line_to_cash",
    "revise_order",
    "transition_status",
]
