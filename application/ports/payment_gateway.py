"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional, Protocol, runtime_checkable

from application.dtos.payments import (
    ProviderIntentResult,
    ProviderPaymentResult,
    ProviderRefundResult,
    WebhookEvent,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the external payment processor.

    ``confirm`` and ``create_refund`` report processor-side declines in the
    result (status ``failed`` plus error fields) rather than raising;
    ``create_intent`` and ``get_intent`` raise ``PaymentProviderException``.
    ``parse_webhook`` raises ``WebhookSignatureException`` when the payload
    cannot be authenticated.
    """

    provider: str

    async def create_intent(
        self,
        amount: Decimal,
        currency: str,
        reference_id: int,
        metadata: Optional[dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> ProviderIntentResult: ...

    async def confirm(self, intent_id: str, payment_method_id: str) -> ProviderPaymentResult: ...

    async def create_refund(
        self,
        intent_id: str,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
    ) -> ProviderRefundResult: ...

    async def get_intent(self, intent_id: str) -> ProviderPaymentResult: ...

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent: ...
