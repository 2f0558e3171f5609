"""
Payments API routes.

PayU reports every outcome twice: a server-to-server webhook and a browser
redirect to surl/furl. Both routes parse the fields and delegate to the
callback reconciler; keep them thin.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, RedirectResponse

from api.dependencies import get_callback_service
from application.dtos.payments import PayUCallbackDTO
from application.services.payment_callback_service import PaymentCallbackService
from core.exceptions import business_code_to_http_status
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


async def _callback_fields(request: Request) -> dict[str, Any]:
    """Merge query parameters with a JSON or form body; body values win."""
    fields: dict[str, Any] = dict(request.query_params)
    if request.method != "POST":
        return fields

    ct = (request.headers.get("content-type") or "").lower()
    if "application/json" in ct:
        try:
            body = await request.json()
        except ValueError:
            logger.warning("payu_callback_body_unparseable", content_type=ct)
            return fields
        if isinstance(body, dict):
            fields.update(body)
    elif "application/x-www-form-urlencoded" in ct or "multipart/form-data" in ct:
        form = await request.form()
        fields.update({k: v for k, v in form.items() if isinstance(v, str)})
    return fields


@router.post("/payu/webhook", summary="PayU server-to-server notification", response_class=PlainTextResponse)
async def payu_webhook(
    request: Request,
    service: PaymentCallbackService = Depends(get_callback_service),
):
    callback = PayUCallbackDTO.from_mapping(await _callback_fields(request))
    try:
        outcome = await service.handle_callback(callback, source="webhook")
    except BusinessException as exc:
        # The gateway only reads the status; answer in its plain-text dialect.
        return PlainTextResponse(exc.message, status_code=business_code_to_http_status(exc.code))
    return PlainTextResponse("OK" if outcome.changed else "DUPLICATE")


@router.api_route(
    "/payu/redirect",
    methods=["GET", "POST"],
    summary="PayU browser return (surl/furl)",
    response_class=RedirectResponse,
)
async def payu_redirect(
    request: Request,
    service: PaymentCallbackService = Depends(get_callback_service),
):
    callback = PayUCallbackDTO.from_mapping(await _callback_fields(request))
    try:
        outcome = await service.handle_callback(callback, source="redirect")
    except BusinessException as exc:
        target = service.failure_redirect_url(callback.txnid, callback.status, exc.message)
    except Exception:
        # The browser must land somewhere; the failure is logged and the buyer sees the failed page.
        logger.error("payu_redirect_failed", txnid=callback.txnid, exc_info=True)
        target = service.failure_redirect_url(callback.txnid, callback.status, "internal error")
    else:
        target = service.redirect_url_for(outcome)
    return RedirectResponse(target, status_code=302)
