"""领域层业务异常定义，供领域、应用与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

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


class ResourceNotFoundException(BusinessException):
    """Reservation or payment absent."""

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message=message,
            error_type="NotFound",
            details=details,
        )


class PaymentNotFoundException(ResourceNotFoundException):
    def __init__(self, identifier: str):
        super().__init__(
            f"Payment not found: {identifier}",
            details={"payment": identifier},
        )


class ReservationNotFoundException(ResourceNotFoundException):
    def __init__(self, reservation_id: int):
        super().__init__(
            f"Reservation {reservation_id} not found",
            details={"reservation_id": reservation_id},
        )


class InvalidStateException(BusinessException):
    """Reservation not payable, or payment not in a state the command accepts."""

    def __init__(self, message: str, *, current_status: Optional[str] = None):
        details = {"current_status": current_status} if current_status is not None else None
        super().__init__(
            code=BusinessCode.INVALID_STATE,
            message=message,
            error_type="InvalidState",
            details=details,
            field="status",
        )
        self.current_status = current_status


class AlreadyPaidException(BusinessException):
    def __init__(self, reservation_id: int, payment_id: Optional[int] = None):
        super().__init__(
            code=BusinessCode.ALREADY_PAID,
            message="This reservation has already been paid",
            error_type="AlreadyPaid",
            details={"reservation_id": reservation_id, "payment_id": payment_id},
        )


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
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class PaymentProviderException(BusinessException):
    """The external processor rejected or failed the operation."""

    def __init__(
        self,
        message: str,
        *,
        provider: str = "stripe",
        provider_code: str | None = None,
        details: Optional[dict] = None,
        code: int = PaymentCode.PROVIDER_ERROR,
        error_type: str = "PaymentProviderError",
    ):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=full_details,
        )
        self.provider = provider
        self.provider_code = provider_code


class WebhookSignatureException(BusinessException):
    """Inbound provider event failed authenticity checks."""

    def __init__(self, message: str, *, provider: str = "stripe", details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="WebhookSignatureError",
            details=full_details,
        )
