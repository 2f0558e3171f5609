import asyncio

import pytest

from application.dtos.payments import PayUCallbackDTO
from application.services.payment_callback_service import PaymentCallbackService
from application.services.purchase_service import PurchaseApplicationService
from domain.common.exceptions import (
    CallbackMissingFieldsException,
    PaymentSignatureException,
    PurchaseNotFoundException,
    PurchaseStateException,
)


OWNER = 3


async def _pending_purchase(purchase_service, create_dto):
    purchase = await purchase_service.create_purchase(OWNER, create_dto)
    await purchase_service.initiate_checkout(OWNER, purchase.id)
    return purchase


@pytest.mark.asyncio
async def test_success_callback_confirms_and_notifies(purchase_service, callback_service, create_dto, signed_callback, notifier):
    purchase = await _pending_purchase(purchase_service, create_dto)
    outcome = await callback_service.handle_callback(
        PayUCallbackDTO.from_mapping(signed_callback(purchase)), source="webhook"
    )
    await PurchaseApplicationService.drain_notifications()

    assert outcome.purchase_id == purchase.id
    assert outcome.status == "confirmed"
    assert outcome.changed and outcome.succeeded
    stored = await purchase_service.get_purchase(OWNER, purchase.id)
    assert stored.gateway_ref == "403993715523"
    assert len(notifier.calls) == 1


@pytest.mark.asyncio
async def test_failure_callback_cancels_with_gateway_message(purchase_service, callback_service, create_dto, signed_callback, notifier):
    purchase = await _pending_purchase(purchase_service, create_dto)
    data = signed_callback(purchase, status="failure")
    data["error_Message"] = "Bank declined"
    outcome = await callback_service.handle_callback(PayUCallbackDTO.from_mapping(data), source="redirect")

    assert outcome.status == "cancelled"
    assert outcome.changed and not outcome.succeeded
    assert outcome.reason == "Bank declined"
    assert notifier.calls == []


@pytest.mark.asyncio
async def test_unknown_status_cancels_with_generic_reason(purchase_service, callback_service, create_dto, signed_callback):
    purchase = await _pending_purchase(purchase_service, create_dto)
    outcome = await callback_service.handle_callback(
        PayUCallbackDTO.from_mapping(signed_callback(purchase, status="userCancelled")), source="redirect"
    )
    assert outcome.status == "cancelled"
    assert outcome.reason == "gateway status: userCancelled"


@pytest.mark.asyncio
async def test_webhook_then_redirect_is_acknowledged_once(purchase_service, callback_service, create_dto, signed_callback, notifier):
    purchase = await _pending_purchase(purchase_service, create_dto)
    callback = PayUCallbackDTO.from_mapping(signed_callback(purchase))

    first = await callback_service.handle_callback(callback, source="webhook")
    second = await callback_service.handle_callback(callback, source="redirect")
    await PurchaseApplicationService.drain_notifications()

    assert first.changed is True
    assert second.changed is False
    assert second.status == "confirmed" and second.succeeded
    assert len(notifier.calls) == 1


@pytest.mark.asyncio
async def test_concurrent_callbacks_settle_exactly_once(purchase_service, callback_service, create_dto, signed_callback, notifier):
    purchase = await _pending_purchase(purchase_service, create_dto)
    callback = PayUCallbackDTO.from_mapping(signed_callback(purchase))

    outcomes = await asyncio.gather(
        callback_service.handle_callback(callback, source="webhook"),
        callback_service.handle_callback(callback, source="redirect"),
    )
    await PurchaseApplicationService.drain_notifications()

    assert sorted(o.changed for o in outcomes) == [False, True]
    assert all(o.status == "confirmed" for o in outcomes)
    assert len(notifier.calls) == 1


@pytest.mark.asyncio
async def test_conflicting_concurrent_outcomes_keep_the_first_writer(purchase_service, callback_service, create_dto, signed_callback):
    purchase = await _pending_purchase(purchase_service, create_dto)
    success = PayUCallbackDTO.from_mapping(signed_callback(purchase))
    failure = PayUCallbackDTO.from_mapping(signed_callback(purchase, status="failure"))

    outcomes = await asyncio.gather(
        callback_service.handle_callback(success, source="webhook"),
        callback_service.handle_callback(failure, source="redirect"),
    )
    await PurchaseApplicationService.drain_notifications()

    assert sum(o.changed for o in outcomes) == 1
    final = {o.status for o in outcomes}
    assert len(final) == 1
    stored = await purchase_service.get_purchase(OWNER, purchase.id)
    assert stored.status in final


@pytest.mark.asyncio
async def test_tampered_hash_is_rejected_and_state_untouched(purchase_service, callback_service, create_dto, signed_callback):
    purchase = await _pending_purchase(purchase_service, create_dto)
    data = signed_callback(purchase)
    data["hash"] = "0" * 128

    with pytest.raises(PaymentSignatureException):
        await callback_service.handle_callback(PayUCallbackDTO.from_mapping(data), source="webhook")
    stored = await purchase_service.get_purchase(OWNER, purchase.id)
    assert stored.status == "pending_payment"


@pytest.mark.asyncio
async def test_validly_signed_wrong_amount_is_rejected(purchase_service, callback_service, create_dto, signed_callback):
    purchase = await _pending_purchase(purchase_service, create_dto)
    data = signed_callback(purchase, amount="1.00")

    with pytest.raises(PaymentSignatureException) as exc_info:
        await callback_service.handle_callback(PayUCallbackDTO.from_mapping(data), source="webhook")
    assert exc_info.value.details["failed_checks"] == ["amount"]


@pytest.mark.asyncio
async def test_foreign_merchant_key_is_rejected(purchase_service, callback_service, create_dto, signed_callback):
    purchase = await _pending_purchase(purchase_service, create_dto)
    data = signed_callback(purchase, key="someone-else")

    with pytest.raises(PaymentSignatureException):
        await callback_service.handle_callback(PayUCallbackDTO.from_mapping(data), source="webhook")


@pytest.mark.asyncio
async def test_log_and_continue_policy_proceeds_on_mismatch(purchase_service, create_dto, signed_callback, payu_settings):
    lenient = payu_settings.model_copy(update={"verification_policy": "log_and_continue"})
    service = PaymentCallbackService(purchase_service, purchase_service.gateway, lenient)
    purchase = await _pending_purchase(purchase_service, create_dto)
    data = signed_callback(purchase)
    data["hash"] = "deadbeef"

    outcome = await service.handle_callback(PayUCallbackDTO.from_mapping(data), source="webhook")
    await PurchaseApplicationService.drain_notifications()
    assert outcome.status == "confirmed"


@pytest.mark.asyncio
async def test_missing_txnid_or_status(callback_service):
    with pytest.raises(CallbackMissingFieldsException) as exc_info:
        await callback_service.handle_callback(PayUCallbackDTO.from_mapping({"status": " "}), source="webhook")
    assert exc_info.value.details["missing"] == ["txnid", "status"]


@pytest.mark.asyncio
async def test_unknown_purchase(callback_service):
    with pytest.raises(PurchaseNotFoundException):
        await callback_service.handle_callback(
            PayUCallbackDTO.from_mapping({"txnid": "f" * 24, "status": "success"}), source="webhook"
        )


@pytest.mark.asyncio
async def test_callback_before_checkout_is_a_precondition_failure(purchase_service, callback_service, create_dto, signed_callback):
    purchase = await purchase_service.create_purchase(OWNER, create_dto)
    with pytest.raises(PurchaseStateException):
        await callback_service.handle_callback(
            PayUCallbackDTO.from_mapping(signed_callback(purchase)), source="webhook"
        )


def test_camel_case_aliases_are_accepted():
    dto = PayUCallbackDTO.from_mapping(
        {"transactionId": "abc", "status": "success", "signature": "H", "merchantKey": "K", "productInfo": "P", "firstName": "F"}
    )
    assert (dto.txnid, dto.hash, dto.key, dto.productinfo, dto.firstname) == ("abc", "H", "K", "P", "F")


def test_redirect_urls(callback_service):
    assert callback_service.failure_redirect_url("abc", "failure", "Bank declined") == (
        "https://shop.example.com/payment-failed?txnid=abc&status=failure&reason=Bank+declined"
    )
    assert callback_service.failure_redirect_url(None) == "https://shop.example.com/payment-failed?txnid=&status=failed"
