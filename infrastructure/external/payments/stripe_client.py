"""
Stripe PaymentIntents adapter using the official stripe-python SDK.

Notes on SDK usage:
- Credentials live on a per-instance `stripe.StripeClient`; the module-level
  `stripe.api_key` is never touched, so several clients can coexist.
- SDK calls are blocking and run in a worker thread.
- Idempotency keys are supplied through request options. Webhook
  verification uses `stripe.Webhook.construct_event` with the
  `Stripe-Signature` header.
"""
from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, Optional

import stripe

from application.dtos.payments import (
    ProviderIntentResult,
    ProviderPaymentResult,
    ProviderRefundResult,
    WebhookEvent,
)
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
)
from core.settings import payment_settings
from core.logging_config import get_logger
from shared.codes.payment_codes import DEFAULT_REFUND_REASON, REFUND_REASONS
from shared.money import from_minor_units, to_minor_units


logger = get_logger(__name__)


def normalize_refund_reason(reason: Optional[str]) -> str:
    r = (reason or "").strip().lower()
    return r if r in REFUND_REASONS else DEFAULT_REFUND_REASON


def _object_id(value: Any) -> Optional[str]:
    """Stripe fields such as latest_charge are either an id or an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return getattr(value, "id", None)


def _error_fields(exc: stripe.StripeError) -> tuple[Optional[str], str]:
    message = getattr(exc, "user_message", None) or str(exc) or exc.__class__.__name__
    return getattr(exc, "code", None), message


class StripeClient(BasePaymentClient):
    provider = "stripe"
    retryable = (stripe.APIConnectionError, stripe.RateLimitError)

    def __init__(
        self,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        *,
        client: Optional[stripe.StripeClient] = None,
    ):
        super().__init__(
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
        )
        self._webhook_secret = webhook_secret or payment_settings.stripe.webhook_secret
        if client is not None:
            self._stripe = client
            return
        api_key = secret_key or payment_settings.stripe.secret_key
        if not api_key:
            raise RuntimeError("STRIPE__SECRET_KEY not configured")
        # Retries are driven by tenacity in BasePaymentClient._retry
        self._stripe = stripe.StripeClient(
            api_key,
            http_client=stripe.new_default_http_client(timeout=self.total_timeout),
            max_network_retries=0,
        )

    def _provider_error(self, exc: stripe.StripeError, action: str) -> PaymentProviderError:
        code, message = _error_fields(exc)
        logger.error("stripe_error", action=action, provider_code=code, error=message)
        if isinstance(exc, self.retryable):
            return PaymentRecoverableError(
                f"Payment provider error: {message}", provider=self.provider, provider_code=code
            )
        return PaymentProviderError(
            f"Payment provider error: {message}", provider=self.provider, provider_code=code
        )

    async def create_intent(
        self,
        amount: Decimal,
        currency: str,
        reference_id: int,
        metadata: Optional[dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> ProviderIntentResult:
        meta = {k: str(v) for k, v in (metadata or {}).items() if v is not None}
        meta["reservation_id"] = str(reference_id)

        params = {
            "amount": to_minor_units(amount, currency),
            "currency": currency.lower(),
            "automatic_payment_methods": {"enabled": True},
            "metadata": meta,
            "description": f"Reservation #{reference_id}",
            "statement_descriptor_suffix": payment_settings.stripe.statement_descriptor_suffix,
            "capture_method": "automatic",
        }
        options = {"idempotency_key": idempotency_key} if idempotency_key else None

        try:
            intent = await self._call(self._stripe.payment_intents.create, params=params, options=options)
        except stripe.StripeError as exc:
            raise self._provider_error(exc, "create_intent") from exc

        self._log(
            "stripe_intent_created",
            payment_intent_id=intent.id,
            reservation_id=reference_id,
            amount=str(amount),
            currency=currency.upper(),
        )
        return ProviderIntentResult(
            intent_id=intent.id,
            client_secret=getattr(intent, "client_secret", None),
            status=intent.status,
            amount=amount,
            currency=currency.upper(),
        )

    async def confirm(self, intent_id: str, payment_method_id: str) -> ProviderPaymentResult:
        params = {
            "payment_method": payment_method_id,
            "return_url": payment_settings.stripe.return_url,
        }
        # No retry: a confirm is not safe to replay
        try:
            intent = await self._call(
                self._stripe.payment_intents.confirm, intent_id, params=params, retry=False
            )
        except stripe.StripeError as exc:
            code, message = _error_fields(exc)
            logger.error("stripe_confirm_failed", payment_intent_id=intent_id, provider_code=code, error=message)
            return ProviderPaymentResult(
                intent_id=intent_id,
                status="failed",
                error_code=code,
                error_message=message,
            )

        self._log("stripe_intent_confirmed", payment_intent_id=intent.id, status=intent.status)
        return self._payment_result(intent)

    async def create_refund(
        self,
        intent_id: str,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
    ) -> ProviderRefundResult:
        params: dict[str, Any] = {
            "payment_intent": intent_id,
            "reason": normalize_refund_reason(reason),
        }
        currency = None
        if amount is not None:
            # Refund amounts use the intent's currency exponent
            intent = await self._retrieve(intent_id)
            currency = intent.currency
            params["amount"] = to_minor_units(amount, currency)

        try:
            refund = await self._call(self._stripe.refunds.create, params=params, retry=False)
        except stripe.StripeError as exc:
            code, message = _error_fields(exc)
            logger.error("stripe_refund_failed", payment_intent_id=intent_id, provider_code=code, error=message)
            return ProviderRefundResult(
                refund_id="",
                status="failed",
                error_code=code,
                error_message=message,
            )

        refunded = from_minor_units(refund.amount or 0, getattr(refund, "currency", None) or currency or "")
        self._log(
            "stripe_refund_created",
            refund_id=refund.id,
            payment_intent_id=intent_id,
            amount=str(refunded),
            status=refund.status,
        )
        return ProviderRefundResult(refund_id=refund.id, status=refund.status or "", amount=refunded)

    async def get_intent(self, intent_id: str) -> ProviderPaymentResult:
        return self._payment_result(await self._retrieve(intent_id))

    async def _retrieve(self, intent_id: str):
        try:
            return await self._call(self._stripe.payment_intents.retrieve, intent_id)
        except stripe.StripeError as exc:
            raise self._provider_error(exc, "get_intent") from exc

    @staticmethod
    def _payment_result(intent: Any) -> ProviderPaymentResult:
        error = getattr(intent, "last_payment_error", None)
        return ProviderPaymentResult(
            intent_id=intent.id,
            status=intent.status,
            payment_method_id=_object_id(getattr(intent, "payment_method", None)),
            charge_id=_object_id(getattr(intent, "latest_charge", None)),
            error_code=getattr(error, "code", None) if error else None,
            error_message=getattr(error, "message", None) if error else None,
        )

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:
        secret = self._webhook_secret
        if not secret:
            raise PaymentSignatureError("Missing STRIPE__WEBHOOK_SECRET", provider=self.provider)
        sig = next((v for k, v in headers.items() if k.lower() == "stripe-signature"), None)
        if not sig:
            raise PaymentSignatureError("Missing Stripe-Signature header", provider=self.provider)
        try:
            stripe.Webhook.construct_event(
                payload=body,
                sig_header=sig,
                secret=secret,
                tolerance=payment_settings.webhook.tolerance_seconds,
            )
            # Signature is verified; read the event from the raw payload
            event = json.loads(body)
        except (stripe.SignatureVerificationError, ValueError) as exc:
            logger.warning("stripe_webhook_signature_invalid", error=str(exc))
            raise PaymentSignatureError("Invalid signature", provider=self.provider) from exc

        return WebhookEvent(
            id=str(event.get("id") or ""),
            type=str(event.get("type") or ""),
            provider=self.provider,
            data=event.get("data") or {},
        )
