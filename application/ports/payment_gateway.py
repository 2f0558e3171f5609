"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import CheckoutRedirectDTO, PayUCallbackDTO
from domain.purchase.entity import Purchase


@runtime_checkable
class PaymentGateway(Protocol):
    """Redirect-style gateway: sign outbound requests, verify inbound responses.

    Implementations do no IO so they can run inside a transaction.
    """

    provider: str

    def ensure_configured(self) -> None:
        """Raise PaymentConfigurationException when credentials are missing."""
        ...

    def build_checkout(self, purchase: Purchase) -> CheckoutRedirectDTO: ...

    def verify_callback(self, callback: PayUCallbackDTO) -> bool:
        """True only when the hash and the merchant key both check out."""
        ...
