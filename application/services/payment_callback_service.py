"""
Payment callback reconciler.

The gateway reports each outcome twice: a server-to-server webhook and a
browser redirect to surl/furl. Both surfaces run the same pipeline here:
parse -> correlate -> verify -> transition. Transitions are idempotent, so
whichever arrives second is acknowledged as a no-op.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import urlencode

from application.dtos.payments import CallbackOutcomeDTO, PayUCallbackDTO
from application.ports.payment_gateway import PaymentGateway
from application.services.purchase_service import PurchaseApplicationService
from core.config import PayUSettings
from core.logging_config import get_logger
from domain.common.exceptions import CallbackMissingFieldsException, PaymentSignatureException
from domain.purchase.entity import Purchase, PurchaseStatus
from shared.codes.payment_codes import is_success_status


logger = get_logger(__name__)


def _amount_matches(posted: Optional[str], expected: Decimal) -> bool:
    if not posted:
        return False
    try:
        return Decimal(posted) == expected
    except InvalidOperation:
        return False


class PaymentCallbackService:
    def __init__(
        self,
        purchases: PurchaseApplicationService,
        gateway: PaymentGateway,
        config: PayUSettings,
    ) -> None:
        self.purchases = purchases
        self.gateway = gateway
        self.config = config

    async def handle_callback(self, callback: PayUCallbackDTO, *, source: str) -> CallbackOutcomeDTO:
        """Verify a gateway notification and settle the purchase it refers to.

        Raises CallbackMissingFieldsException, PurchaseNotFoundException,
        PaymentSignatureException (policy "reject") or PurchaseStateException
        when the purchase never went through checkout.
        """
        missing = [name for name, value in (("txnid", callback.txnid), ("status", callback.status)) if not value]
        if missing:
            logger.warning("payu_callback_missing_fields", source=source, missing=missing)
            raise CallbackMissingFieldsException(missing)

        logger.info(
            "payu_callback_received",
            source=source,
            txnid=callback.txnid,
            status=callback.status,
            mihpayid=callback.mihpayid,
        )
        purchase = await self.purchases.find_purchase(callback.txnid)
        self._verify(callback, purchase, source=source)

        if is_success_status(callback.status):
            purchase, changed = await self.purchases.confirm_payment(purchase.id, gateway_ref=callback.mihpayid)
        else:
            reason = callback.error_message or f"gateway status: {callback.status}"
            purchase, changed = await self.purchases.cancel_payment(
                purchase.id, reason=reason, gateway_ref=callback.mihpayid
            )

        return CallbackOutcomeDTO(
            purchase_id=purchase.id,
            status=purchase.status.value,
            changed=changed,
            succeeded=purchase.status == PurchaseStatus.CONFIRMED,
            reason=purchase.failure_reason,
        )

    def _verify(self, callback: PayUCallbackDTO, purchase: Purchase, *, source: str) -> None:
        failed_checks = []
        if not self.gateway.verify_callback(callback):
            failed_checks.append("signature")
        # a validly signed response for a different amount must not settle this order
        if is_success_status(callback.status) and not _amount_matches(callback.amount, purchase.total_amount):
            failed_checks.append("amount")
        if not failed_checks:
            return

        if self.config.verification_policy == "log_and_continue":
            logger.warning(
                "payu_signature_mismatch_ignored",
                source=source,
                txnid=callback.txnid,
                failed_checks=failed_checks,
            )
            return

        logger.warning(
            "payu_callback_rejected",
            source=source,
            txnid=callback.txnid,
            failed_checks=failed_checks,
        )
        raise PaymentSignatureException(details={"txnid": callback.txnid, "failed_checks": failed_checks})

    # ---- browser redirect destinations ----

    def success_redirect_url(self, outcome: CallbackOutcomeDTO) -> str:
        query = urlencode({"txnid": outcome.purchase_id, "status": outcome.status})
        return f"{self.config.frontend_base_url.rstrip('/')}/payment-success?{query}"

    def failure_redirect_url(
        self,
        txnid: Optional[str],
        status: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> str:
        params = {"txnid": txnid or "", "status": status or "failed"}
        if reason:
            params["reason"] = reason
        return f"{self.config.frontend_base_url.rstrip('/')}/payment-failed?{urlencode(params)}"

    def redirect_url_for(self, outcome: CallbackOutcomeDTO) -> str:
        if outcome.succeeded:
            return self.success_redirect_url(outcome)
        return self.failure_redirect_url(outcome.purchase_id, outcome.status, outcome.reason)
