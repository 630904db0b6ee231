"""
Exceptions for payment providers mapped to unified BusinessException variants.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import PaymentProviderException, WebhookSignatureException
from shared.codes.payment_codes import PaymentCode


class PaymentProviderError(PaymentProviderException):
    pass


class PaymentRecoverableError(PaymentProviderException):
    """Transient provider failure (network, rate limit) that survived retries."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            message,
            provider=provider,
            provider_code=provider_code,
            details=details,
            code=PaymentCode.PROVIDER_RECOVERABLE,
            error_type="PaymentRecoverableError",
        )


class PaymentSignatureError(WebhookSignatureException):
    pass
