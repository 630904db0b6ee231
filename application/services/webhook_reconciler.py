"""
Webhook reconciliation: replay authenticated processor events onto payments.

Events drive the same entity transitions as the synchronous handlers but read
their inputs from the event payload. Ordering is last-applied-wins; the
payment's ``last_provider_event_id`` cursor suppresses back-to-back
redelivery of the same event.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from application.dtos.payments import WebhookEvent
from application.ports.payment_gateway import PaymentGateway
from application.ports.reservations import ReservationService
from application.services.reservation_notifier import notify_confirmed
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment
from shared.money import from_minor_units


logger = get_logger(__name__)


PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
PAYMENT_INTENT_CANCELED = "payment_intent.canceled"
PAYMENT_INTENT_PROCESSING = "payment_intent.processing"
PAYMENT_INTENT_REQUIRES_ACTION = "payment_intent.requires_action"
CHARGE_REFUNDED = "charge.refunded"


class WebhookOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    PAYMENT_NOT_FOUND = "payment_not_found"


@dataclass
class WebhookResult:
    event_id: str
    event_type: str
    outcome: WebhookOutcome
    payment_id: Optional[int] = None


def _object_id(value: Any) -> Optional[str]:
    # Stripe sends references either as ids or as expanded objects
    if isinstance(value, dict):
        value = value.get("id")
    return str(value) if value else None


def _apply_succeeded(payment: Payment, obj: dict[str, Any]) -> None:
    payment.mark_succeeded(_object_id(obj.get("latest_charge")) or _object_id(obj.get("id")))


def _apply_failed(payment: Payment, obj: dict[str, Any]) -> None:
    error = obj.get("last_payment_error") or {}
    payment.mark_failed(error.get("code"), error.get("message"))


def _apply_canceled(payment: Payment, obj: dict[str, Any]) -> None:
    payment.mark_canceled()


def _apply_processing(payment: Payment, obj: dict[str, Any]) -> None:
    payment.mark_processing()


def _apply_requires_action(payment: Payment, obj: dict[str, Any]) -> None:
    payment.require_action()


def _apply_charge_refunded(payment: Payment, obj: dict[str, Any]) -> None:
    # amount_refunded is the charge's cumulative refunded total
    currency = obj.get("currency") or payment.currency
    payment.refund(from_minor_units(obj.get("amount_refunded") or 0, currency))


_APPLIERS: dict[str, Callable[[Payment, dict[str, Any]], None]] = {
    PAYMENT_INTENT_SUCCEEDED: _apply_succeeded,
    PAYMENT_INTENT_FAILED: _apply_failed,
    PAYMENT_INTENT_CANCELED: _apply_canceled,
    PAYMENT_INTENT_PROCESSING: _apply_processing,
    PAYMENT_INTENT_REQUIRES_ACTION: _apply_requires_action,
    CHARGE_REFUNDED: _apply_charge_refunded,
}


def _intent_id_for(event: WebhookEvent) -> Optional[str]:
    obj = event.object
    if event.type == CHARGE_REFUNDED:
        return _object_id(obj.get("payment_intent"))
    return _object_id(obj.get("id"))


class WebhookReconciler:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        reservations: ReservationService,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._reservations = reservations

    async def reconcile(self, headers: dict[str, Any], body: bytes) -> WebhookResult:
        """Authenticate and apply one webhook delivery.

        Raises ``WebhookSignatureException`` before touching any state when
        the delivery cannot be authenticated; any other exception means the
        event was not applied and the provider should redeliver it.
        """
        event = self._gateway.parse_webhook(headers, body)
        logger.info("payment_webhook_received", event_id=event.id, event_type=event.type, provider=event.provider)
        return await self.apply(event)

    async def apply(self, event: WebhookEvent) -> WebhookResult:
        applier = _APPLIERS.get(event.type)
        if applier is None:
            logger.info("payment_webhook_unhandled_type", event_id=event.id, event_type=event.type)
            return WebhookResult(event.id, event.type, WebhookOutcome.IGNORED)

        intent_id = _intent_id_for(event)
        if not intent_id:
            logger.warning("payment_webhook_missing_intent", event_id=event.id, event_type=event.type)
            return WebhookResult(event.id, event.type, WebhookOutcome.IGNORED)

        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.get_by_provider_intent_id(intent_id)
            if payment is None:
                logger.warning(
                    "payment_webhook_payment_not_found",
                    event_id=event.id,
                    event_type=event.type,
                    payment_intent_id=intent_id,
                )
                return WebhookResult(event.id, event.type, WebhookOutcome.PAYMENT_NOT_FOUND)

            if payment.has_applied_event(event.id):
                logger.info(
                    "payment_webhook_duplicate_ignored",
                    event_id=event.id,
                    event_type=event.type,
                    payment_id=payment.id,
                )
                return WebhookResult(event.id, event.type, WebhookOutcome.DUPLICATE, payment.id)

            applier(payment, event.object)
            payment.update_provider_event_id(event.id)
            payment = await uow.payment_repository.update(payment)
            await uow.commit()

        logger.info(
            "payment_webhook_applied",
            event_id=event.id,
            event_type=event.type,
            payment_id=payment.id,
            payment_intent_id=intent_id,
            status=payment.status.value,
            amount_refunded=str(payment.amount_refunded),
        )

        if event.type == PAYMENT_INTENT_SUCCEEDED:
            await notify_confirmed(self._reservations, payment.reservation_id, payment_id=payment.id)

        return WebhookResult(event.id, event.type, WebhookOutcome.APPLIED, payment.id)
