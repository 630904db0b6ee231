"""
Refund a succeeded payment through the processor.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Callable, Optional

from application.dtos.payments import (
    PaymentResponseDTO,
    RefundPaymentCommand,
    RefundResponseDTO,
)
from application.ports.payment_gateway import PaymentGateway
from application.ports.reservations import ReservationService
from application.services.reservation_notifier import notify_canceled_refunded
from core.logging_config import get_logger
from domain.common.exceptions import (
    DomainValidationException,
    InvalidStateException,
    PaymentNotFoundException,
    PaymentProviderException,
    ResourceNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment, PaymentStatus
from shared.codes.payment_codes import DEFAULT_REFUND_REASON, REFUND_ACCEPTED_STATUSES


logger = get_logger(__name__)


class RefundPaymentHandler:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        reservations: ReservationService,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._reservations = reservations

    async def handle(self, command: RefundPaymentCommand) -> RefundResponseDTO:
        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.get_by_id(command.payment_id)
            if payment is None:
                raise PaymentNotFoundException(f"id={command.payment_id}")
            return await self._refund(uow, payment, command.amount, command.reason)

    async def handle_for_reservation(
        self,
        reservation_id: int,
        reason: Optional[str] = DEFAULT_REFUND_REASON,
    ) -> RefundResponseDTO:
        """Fully refund the reservation's succeeded payment (service-to-service)."""
        async with self._uow_factory() as uow:
            payments = await uow.payment_repository.list_by_reservation(reservation_id)
            payment = next((p for p in payments if p.status == PaymentStatus.SUCCEEDED), None)
            if payment is None:
                logger.warning("reservation_refund_no_successful_payment", reservation_id=reservation_id)
                raise ResourceNotFoundException(
                    "No successful payment found for this reservation",
                    details={"reservation_id": reservation_id},
                )
            return await self._refund(uow, payment, payment.amount, reason)

    async def _refund(
        self,
        uow: AbstractUnitOfWork,
        payment: Payment,
        amount: Optional[Decimal],
        reason: Optional[str],
    ) -> RefundResponseDTO:
        if payment.status != PaymentStatus.SUCCEEDED:
            raise InvalidStateException(
                "Can only refund succeeded payments",
                current_status=payment.status.value,
            )
        if not payment.provider_intent_id:
            raise InvalidStateException("Payment has no PaymentIntentId", current_status=payment.status.value)
        if amount is not None and amount > payment.amount:
            raise DomainValidationException(
                "Refund amount cannot exceed payment amount",
                field="amount",
                details={"refund_amount": str(amount), "payment_amount": str(payment.amount)},
            )

        result = await self._gateway.create_refund(payment.provider_intent_id, amount, reason)

        if result.status not in REFUND_ACCEPTED_STATUSES:
            logger.error(
                "payment_refund_failed",
                payment_id=payment.id,
                payment_intent_id=payment.provider_intent_id,
                provider_status=result.status,
                error_code=result.error_code,
                error_message=result.error_message,
            )
            raise PaymentProviderException(
                f"Refund failed: {result.error_message}",
                provider_code=result.error_code,
                details={"payment_id": payment.id, "refund_status": result.status},
            )

        payment.refund(amount if amount is not None else payment.amount)
        payment = await uow.payment_repository.update(payment)
        await uow.commit()

        logger.info(
            "payment_refunded",
            payment_id=payment.id,
            refund_id=result.refund_id,
            refund_status=result.status,
            amount=str(payment.amount_refunded),
        )
        await notify_canceled_refunded(self._reservations, payment.reservation_id, payment_id=payment.id)

        return RefundResponseDTO(
            payment=PaymentResponseDTO.from_entity(payment),
            refund_id=result.refund_id,
            refund_status=result.status,
            amount=payment.amount_refunded,
        )
