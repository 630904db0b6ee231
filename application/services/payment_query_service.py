"""
Read-side payment queries (application/services).
"""
from __future__ import annotations

from decimal import Decimal
from typing import Callable, List

from application.dtos.payments import PaymentResponseDTO, ReservationPaymentSummary
from domain.common.exceptions import PaymentNotFoundException, ResourceNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import PaymentStatus


class PaymentQueryService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]) -> None:
        self._uow_factory = uow_factory

    async def get_payment(self, payment_id: int) -> PaymentResponseDTO:
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_id(payment_id)
            if payment is None:
                raise PaymentNotFoundException(f"id={payment_id}")
            return PaymentResponseDTO.from_entity(payment)

    async def get_payment_by_intent(self, payment_intent_id: str) -> PaymentResponseDTO:
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_provider_intent_id(payment_intent_id)
            if payment is None:
                raise PaymentNotFoundException(f"payment_intent_id={payment_intent_id}")
            return PaymentResponseDTO.from_entity(payment)

    async def list_for_reservation(self, reservation_id: int) -> List[PaymentResponseDTO]:
        async with self._uow_factory(readonly=True) as uow:
            payments = await uow.payment_repository.list_by_reservation(reservation_id)
            return [PaymentResponseDTO.from_entity(p) for p in payments]

    async def reservation_summary(self, reservation_id: int) -> ReservationPaymentSummary:
        """Totals across every payment attempt of a reservation.

        A payment counts as paid once it reached ``Succeeded``, including
        payments refunded since, so a full refund nets to zero.
        """
        async with self._uow_factory(readonly=True) as uow:
            payments = await uow.payment_repository.list_by_reservation(reservation_id)
        if not payments:
            raise ResourceNotFoundException(
                "No payments found for this reservation",
                details={"reservation_id": reservation_id},
            )

        total_paid = sum((p.amount for p in payments if p.paid_at is not None), Decimal("0"))
        total_refunded = sum((p.amount_refunded for p in payments), Decimal("0"))
        latest = max(payments, key=lambda p: p.created_at)
        return ReservationPaymentSummary(
            reservation_id=reservation_id,
            has_successful_payment=any(p.status == PaymentStatus.SUCCEEDED for p in payments),
            total_paid=total_paid,
            total_refunded=total_refunded,
            net_amount=total_paid - total_refunded,
            latest_status=latest.status.value,
        )
