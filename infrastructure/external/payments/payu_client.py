"""
PayU hosted-checkout adapter.

PayU's redirect flow needs no server-side API call: the browser posts a
signed form to the gateway, and the outcome comes back signed (reverse hash)
through the webhook and the surl/furl redirect. This adapter only builds and
verifies those payloads.
"""
from __future__ import annotations

from application.dtos.payments import CheckoutRedirectDTO, PayUCallbackDTO
from application.ports.payment_gateway import PaymentGateway
from core.config import PayUSettings
from core.logging_config import get_logger
from domain.common.exceptions import PaymentConfigurationException
from domain.purchase.entity import Purchase
from infrastructure.external.payments import payu_hash


logger = get_logger(__name__)


class PayUClient(PaymentGateway):
    provider = "payu"

    def __init__(self, config: PayUSettings) -> None:
        self.config = config

    def ensure_configured(self) -> None:
        missing = self.config.missing_credentials()
        if missing:
            logger.error("payu_not_configured", missing=missing)
            raise PaymentConfigurationException(missing)

    def _product_info(self, purchase: Purchase) -> str:
        parts = [f"{item.display_name} x{item.quantity}" for item in purchase.line_items]
        info = ", ".join(parts)
        # the gateway rejects longer descriptions; "|" would corrupt the hash string
        return info.replace("|", "/")[: self.config.product_info_max_length]

    def build_checkout(self, purchase: Purchase) -> CheckoutRedirectDTO:
        self.ensure_configured()
        callback_url = self.config.redirect_callback_url
        fields = {
            "key": self.config.merchant_key,
            "txnid": purchase.id,
            "amount": payu_hash.format_amount(purchase.total_amount),
            "productinfo": self._product_info(purchase),
            "firstname": purchase.first_name.replace("|", ""),
            "email": purchase.email,
        }
        signature = payu_hash.compute_outbound_signature(fields, self.config.merchant_salt)
        return CheckoutRedirectDTO(
            action_url=self.config.gateway_url,
            phone=purchase.phone,
            surl=callback_url,
            furl=callback_url,
            hash=signature,
            **fields,
        )

    def verify_callback(self, callback: PayUCallbackDTO) -> bool:
        self.ensure_configured()
        if callback.key != self.config.merchant_key:
            logger.warning("payu_merchant_key_mismatch", txnid=callback.txnid)
            return False
        return payu_hash.verify_inbound_signature(
            callback.hash_fields(),
            self.config.merchant_salt,
            callback.hash,
            status=callback.status or "",
            additional_charges=callback.additional_charges,
        )
