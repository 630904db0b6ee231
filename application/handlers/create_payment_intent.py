"""
Create a processor PaymentIntent for a reservation and record the payment.
"""
from __future__ import annotations

import hashlib
from typing import Callable

from application.dtos.payments import (
    CreatePaymentIntentCommand,
    PaymentIntentResponse,
    ReservationDTO,
)
from application.ports.payment_gateway import PaymentGateway
from application.ports.reservations import ReservationService
from core.logging_config import get_logger
from domain.common.exceptions import (
    AlreadyPaidException,
    InvalidStateException,
    ReservationNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment, PaymentStatus


logger = get_logger(__name__)


def _idempotency_key(command: CreatePaymentIntentCommand, attempt: int) -> str:
    # Stable across transport retries of one attempt; a new attempt for the
    # same reservation (after a failed payment) gets a new key.
    base = f"create|{command.reservation_id}|{attempt}|{command.amount}|{command.currency}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


def _intent_metadata(reservation: ReservationDTO) -> dict[str, str]:
    # Part of the idempotent request: must be identical for the same key
    metadata = {
        "reservation_id": str(reservation.id),
        "user_id": str(reservation.user_id),
    }
    if reservation.room_id is not None:
        metadata["room_id"] = str(reservation.room_id)
    if reservation.start_date is not None:
        metadata["start_date"] = reservation.start_date.isoformat()
    if reservation.end_date is not None:
        metadata["end_date"] = reservation.end_date.isoformat()
    return metadata


class CreatePaymentIntentHandler:
    """Steps short-circuit on the first failure:

    1. the reservation must exist and be ``Pending`` or ``Held``;
    2. no earlier payment of the reservation may be ``Succeeded``;
    3. the processor creates the intent;
    4. a new ``RequiresPayment`` payment bound to the intent is committed.
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

    async def handle(self, command: CreatePaymentIntentCommand) -> PaymentIntentResponse:
        reservation = await self._reservations.get_reservation(command.reservation_id)
        if reservation is None:
            raise ReservationNotFoundException(command.reservation_id)
        if not reservation.is_payable:
            raise InvalidStateException(
                f"Reservation is not in a payable state. Current status: {reservation.status}",
                current_status=reservation.status,
            )

        async with self._uow_factory() as uow:
            existing = await uow.payment_repository.list_by_reservation(command.reservation_id)
            paid = next((p for p in existing if p.status == PaymentStatus.SUCCEEDED), None)
            if paid is not None:
                logger.warning(
                    "payment_intent_rejected_already_paid",
                    reservation_id=command.reservation_id,
                    payment_id=paid.id,
                )
                raise AlreadyPaidException(command.reservation_id, paid.id)

            intent = await self._gateway.create_intent(
                amount=command.amount,
                currency=command.currency,
                reference_id=command.reservation_id,
                metadata=_intent_metadata(reservation),
                idempotency_key=_idempotency_key(command, attempt=len(existing)),
            )

            payment = Payment.create(command.reservation_id, command.amount, command.currency)
            payment.set_provider_intent(intent.intent_id, intent.client_secret)
            payment = await uow.payment_repository.add(payment)
            await uow.commit()

        logger.info(
            "payment_intent_created",
            payment_id=payment.id,
            payment_intent_id=intent.intent_id,
            reservation_id=command.reservation_id,
            amount=str(command.amount),
            currency=command.currency,
        )
        return PaymentIntentResponse(
            payment_id=payment.id,
            payment_intent_id=intent.intent_id,
            client_secret=intent.client_secret,
            amount=payment.amount,
            currency=payment.currency,
        )
