"""Business exceptions shared by the domain and infrastructure layers.

The core layer only maps these to transport responses; the domain never
imports from core.
"""
from __future__ import annotations

from typing import Optional

from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """Base class for every expected, user-facing failure."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="ValidationError",
            details=details,
            field=field,
        )


class CallbackMissingFieldsException(BusinessException):
    """Gateway callback lacks the fields needed to correlate it."""

    def __init__(self, missing: list[str]):
        super().__init__(
            code=BusinessCode.PARAM_MISSING,
            message=f"Missing callback fields: {', '.join(missing)}",
            error_type="MissingFields",
            details={"missing": missing},
        )


class PurchaseNotFoundException(BusinessException):
    def __init__(self, purchase_id: Optional[str] = None):
        details = {"purchase_id": purchase_id} if purchase_id else None
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message="Purchase not found",
            error_type="NotFound",
            details=details,
        )


class PurchaseStateException(BusinessException):
    """Requested transition is not an edge of the purchase state machine."""

    def __init__(self, current: str, target: str):
        super().__init__(
            code=BusinessCode.PURCHASE_STATE_CONFLICT,
            message=f"Cannot move purchase from {current} to {target}",
            error_type="PreconditionFailed",
            details={"current": current, "target": target},
            field="status",
        )


class PurchasePreconditionException(BusinessException):
    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(
            code=BusinessCode.PURCHASE_PRECONDITION_FAILED,
            message=message,
            error_type="PreconditionFailed",
            details=details,
        )


class PurchaseConcurrencyException(BusinessException):
    def __init__(self, purchase_id: str, expected_version: int):
        super().__init__(
            code=BusinessCode.PURCHASE_CONCURRENT_UPDATE,
            message="Purchase was modified concurrently, reload and retry",
            error_type="PreconditionFailed",
            details={"purchase_id": purchase_id, "expected_version": expected_version},
        )


class PaymentSignatureException(BusinessException):
    """Inbound gateway notification failed authenticity checks."""

    def __init__(self, message: str = "Payment signature verification failed", *, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="VerificationFailed",
            details=details,
        )


class PaymentConfigurationException(BusinessException):
    def __init__(self, missing: list[str]):
        super().__init__(
            code=BusinessCode.CONFIGURATION_ERROR,
            message="Payment gateway is not configured",
            error_type="ConfigurationError",
            details={"missing": missing},
        )


class DependencyFailureException(BusinessException):
    def __init__(self, dependency: str, message: str):
        super().__init__(
            code=BusinessCode.DEPENDENCY_FAILURE,
            message=message,
            error_type="DependencyFailure",
            details={"dependency": dependency},
        )
