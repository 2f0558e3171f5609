"""
PayU request/response hash codec.

PayU signs the outbound payment request and the inbound response with
SHA-512 over pipe-delimited fields, but in *different* orders:

    request : key|txnid|amount|productinfo|firstname|email|udf1..udf5||||||SALT
    response: [additionalCharges|]SALT|status||||||udf5..udf1|email|firstname|productinfo|amount|txnid|key

The user-defined fields are never populated by this service, so both
directions carry ten empty slots. The two orders are kept as named
constants; they are not inverses of each other.
"""
from __future__ import annotations

import hashlib
import hmac
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional

HASH_DELIMITER = "|"
PLACEHOLDER_SLOTS = 10

OUTBOUND_HASH_FIELDS = ("key", "txnid", "amount", "productinfo", "firstname", "email")
INBOUND_HASH_FIELDS = ("email", "firstname", "productinfo", "amount", "txnid", "key")


def format_amount(amount: Decimal) -> str:
    """Fixed two-decimal rendering used both on the wire and in the hash."""
    return str(Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _digest(parts: list[str]) -> str:
    return hashlib.sha512(HASH_DELIMITER.join(parts).encode("utf-8")).hexdigest()


def _values(fields: Mapping[str, object], names: tuple[str, ...]) -> list[str]:
    return ["" if fields.get(name) is None else str(fields.get(name)) for name in names]


def _outbound_parts(fields: Mapping[str, object], secret: str) -> list[str]:
    return _values(fields, OUTBOUND_HASH_FIELDS) + [""] * PLACEHOLDER_SLOTS + [secret]


def outbound_hash_string(fields: Mapping[str, object], secret: str) -> str:
    return HASH_DELIMITER.join(_outbound_parts(fields, secret))


def compute_outbound_signature(fields: Mapping[str, object], secret: str) -> str:
    """Hash for the payment request posted to the gateway (lowercase hex)."""
    return _digest(_outbound_parts(fields, secret))


def compute_inbound_signature(
    fields: Mapping[str, object],
    secret: str,
    status: str,
    additional_charges: Optional[str] = None,
) -> str:
    """Hash the gateway is expected to send back with its response."""
    parts = [secret, status or ""] + [""] * PLACEHOLDER_SLOTS + _values(fields, INBOUND_HASH_FIELDS)
    if additional_charges:
        parts.insert(0, str(additional_charges))
    return _digest(parts)


def verify_inbound_signature(
    fields: Mapping[str, object],
    secret: str,
    claimed_signature: Optional[str],
    status: str,
    additional_charges: Optional[str] = None,
) -> bool:
    if not claimed_signature:
        return False
    expected = compute_inbound_signature(fields, secret, status, additional_charges)
    return hmac.compare_digest(expected.encode("ascii"), claimed_signature.strip().lower().encode("utf-8"))
