from backoffice.domain.pricing.checkout import (
    DISCOUNT_TYPES,
    POS_PAYMENT_METHODS,
    CartLine,
    CheckoutQuote,
    Settlement,
    TransactionRecord,
    compute_discount,
    compute_quote,
    settle,
    split_vat,
)

__all__ = [
    "DISCOUNT_TYPES",
    "POS_PAYMENT_METHODS",
    "CartLine",
    "CheckoutQuote",
    "Settlement",
    "TransactionRecord",
    "compute_discount",
    "compute_quote",
    "settle",
    "split_vat",
]
