"""
Confirm a PaymentIntent with a payment method and apply the processor's verdict.
"""
from __future__ import annotations

from typing import Callable

from application.dtos.payments import ConfirmPaymentCommand, PaymentResponseDTO
from application.ports.payment_gateway import PaymentGateway
from application.ports.reservations import ReservationService
from application.services.reservation_notifier import notify_confirmed
from core.logging_config import get_logger
from domain.common.exceptions import PaymentNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from shared.codes.payment_codes import INTENT_REQUIRES_ACTION, INTENT_SUCCEEDED


logger = get_logger(__name__)


class ConfirmPaymentHandler:
    """Maps the confirm result onto the payment.

    ``succeeded`` marks the payment paid and confirms the reservation,
    ``requires_action`` waits for the customer, and every other status
    (``processing``, ``requires_payment_method``, ``canceled``, ...) marks
    the payment failed. Later webhooks may still move a failed payment on.
    """

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        reservations: ReservationService,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._reservations = reservations

    async def handle(self, command: ConfirmPaymentCommand) -> PaymentResponseDTO:
        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.get_by_provider_intent_id(command.payment_intent_id)
            if payment is None:
                raise PaymentNotFoundException(f"payment_intent_id={command.payment_intent_id}")

            result = await self._gateway.confirm(command.payment_intent_id, command.payment_method_id)

            if result.status == INTENT_SUCCEEDED:
                payment.mark_succeeded(result.charge_id or result.payment_method_id or command.payment_method_id)
                logger.info(
                    "payment_confirmed",
                    payment_id=payment.id,
                    payment_intent_id=command.payment_intent_id,
                )
            elif result.status == INTENT_REQUIRES_ACTION:
                payment.require_action()
                logger.info(
                    "payment_requires_action",
                    payment_id=payment.id,
                    payment_intent_id=command.payment_intent_id,
                )
            else:
                payment.mark_failed(result.error_code, result.error_message)
                logger.warning(
                    "payment_confirm_failed",
                    payment_id=payment.id,
                    payment_intent_id=command.payment_intent_id,
                    provider_status=result.status,
                    error_code=result.error_code,
                    error_message=result.error_message,
                )

            payment = await uow.payment_repository.update(payment)
            await uow.commit()

        if result.status == INTENT_SUCCEEDED:
            await notify_confirmed(self._reservations, payment.reservation_id, payment_id=payment.id)

        return PaymentResponseDTO.from_entity(payment)
