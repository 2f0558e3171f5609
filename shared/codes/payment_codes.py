"""
Payment specific codes and gateway status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Gateway errors (6xxxx)
    SIGNATURE_ERROR = 60002


# PayU reports a single free-form status; only "success" settles the order.
PAYU_SUCCESS_STATUS = "success"


def is_success_status(status: str | None) -> bool:
    return (status or "").strip().lower() == PAYU_SUCCESS_STATUS
