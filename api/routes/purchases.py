"""
Purchase API routes - cart management, checkout and administrative cancel
"""
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Security, status

from api.dependencies import get_current_superuser, get_current_user, get_purchase_service
from application.dto import CurrentUserDTO, PaginationParams
from application.dtos.payments import CheckoutRedirectDTO
from application.dtos.purchases import (
    AdminCancelDTO,
    PurchaseCreateDTO,
    PurchaseResponseDTO,
    PurchaseUpdateDTO,
)
from application.services.purchase_service import PurchaseApplicationService
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.purchase.entity import PurchaseStatus


router = APIRouter(
    prefix="/purchases",
    tags=["Purchases"],
)


@router.post(
    "",
    summary="Create purchase",
    response_model=ApiResponse[PurchaseResponseDTO],
    status_code=status.HTTP_201_CREATED,
)
async def create_purchase(
    payload: PurchaseCreateDTO,
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PurchaseApplicationService = Depends(get_purchase_service),
):
    purchase = await service.create_purchase(current_user.id, payload)
    return success_response(data=purchase, message="Purchase created")


@router.get(
    "",
    summary="List my purchases",
    response_model=ApiResponse[PaginatedData[PurchaseResponseDTO]],
)
async def list_purchases(
    params: PaginationParams = Depends(),
    purchase_status: Optional[PurchaseStatus] = Query(None, alias="status", description="Filter by status"),
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PurchaseApplicationService = Depends(get_purchase_service),
):
    purchases, total = await service.list_purchases(
        current_user.id, params.skip, params.limit, purchase_status
    )
    return paginated_response(items=purchases, total=total, page=params.page, size=params.limit)


@router.get("/{purchase_id}", summary="Get purchase", response_model=ApiResponse[PurchaseResponseDTO])
async def get_purchase(
    purchase_id: str,
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PurchaseApplicationService = Depends(get_purchase_service),
):
    purchase = await service.get_purchase(current_user.id, purchase_id)
    return success_response(data=purchase)


@router.patch("/{purchase_id}", summary="Edit cart", response_model=ApiResponse[PurchaseResponseDTO])
async def update_purchase(
    purchase_id: str,
    payload: PurchaseUpdateDTO,
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PurchaseApplicationService = Depends(get_purchase_service),
):
    purchase = await service.update_purchase(current_user.id, purchase_id, payload)
    return success_response(data=purchase, message="Purchase updated")


@router.delete("/{purchase_id}", summary="Delete purchase", response_model=ApiResponse[Any])
async def delete_purchase(
    purchase_id: str,
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PurchaseApplicationService = Depends(get_purchase_service),
):
    await service.delete_purchase(current_user.id, purchase_id)
    return success_response(data={"id": purchase_id}, message="Purchase deleted")


@router.post(
    "/{purchase_id}/checkout",
    summary="Start gateway checkout",
    response_model=ApiResponse[CheckoutRedirectDTO],
)
async def checkout(
    purchase_id: str,
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PurchaseApplicationService = Depends(get_purchase_service),
):
    """
    Move the purchase to pending_payment and return the signed form the
    browser posts to the gateway (actionUrl plus the form fields).
    """
    redirect = await service.initiate_checkout(current_user.id, purchase_id)
    return success_response(data=redirect, message="Checkout initiated")


@router.post(
    "/{purchase_id}/cancel",
    summary="Cancel a pending purchase (superuser)",
    response_model=ApiResponse[PurchaseResponseDTO],
)
async def admin_cancel(
    purchase_id: str,
    payload: Optional[AdminCancelDTO] = None,
    service: PurchaseApplicationService = Depends(get_purchase_service),
    _current_user: CurrentUserDTO = Security(get_current_superuser),
):
    reason = payload.reason if payload else None
    purchase = await service.admin_cancel(purchase_id, reason)
    return success_response(data=purchase, message="Purchase cancelled")
