"""
API dependencies - authentication and service wiring
"""
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from application.dto import CurrentUserDTO
from application.services.payment_callback_service import PaymentCallbackService
from application.services.purchase_service import PurchaseApplicationService
from core.config import settings
from core.exceptions import ForbiddenException, UnauthorizedException
from core.logging_config import get_logger
from infrastructure.external.payments.payu_client import PayUClient
from infrastructure.notifications import CeleryOrderNotifier
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


logger = get_logger(__name__)

http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT bearer token issued by the identity service",
    auto_error=False,
)


async def get_token(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> str:
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials
    raise UnauthorizedException("Missing authentication credentials")


def decode_access_token(token: str) -> CurrentUserDTO:
    """Verify the signature and expiry, then read the identity claims."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedException("Token expired")
    except jwt.PyJWTError as e:
        logger.warning("invalid_access_token", error=str(e))
        raise UnauthorizedException("Invalid authentication credentials")

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise UnauthorizedException("Token subject is missing or malformed")
    return CurrentUserDTO(id=user_id, is_superuser=bool(payload.get("is_superuser", False)))


async def get_current_user(token: str = Depends(get_token)) -> CurrentUserDTO:
    return decode_access_token(token)


async def get_current_superuser(
    current_user: CurrentUserDTO = Depends(get_current_user),
) -> CurrentUserDTO:
    if not current_user.is_superuser:
        raise ForbiddenException("Superuser privileges required")
    return current_user


async def get_purchase_service() -> PurchaseApplicationService:
    return PurchaseApplicationService(
        uow_factory=SQLAlchemyUnitOfWork,
        gateway=PayUClient(settings.payu),
        notifier=CeleryOrderNotifier(),
    )


async def get_callback_service(
    purchases: PurchaseApplicationService = Depends(get_purchase_service),
) -> PaymentCallbackService:
    return PaymentCallbackService(
        purchases=purchases,
        gateway=purchases.gateway,
        config=settings.payu,
    )
