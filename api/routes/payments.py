"""
Payments API routes (user-facing).

Thin transport layer: caller identity and ownership checks here, payment
rules in the application handlers.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import (
    Caller,
    get_caller,
    get_confirm_handler,
    get_create_intent_handler,
    get_query_service,
    get_refund_handler,
    get_reservations,
    require_admin,
)
from application.dtos.payments import (
    ConfirmPaymentCommand,
    CreatePaymentIntentCommand,
    RefundPaymentCommand,
    RefundRequestBody,
)
from application.handlers.confirm_payment import ConfirmPaymentHandler
from application.handlers.create_payment_intent import CreatePaymentIntentHandler
from application.handlers.refund_payment import RefundPaymentHandler
from application.ports.reservations import ReservationService
from application.services.payment_query_service import PaymentQueryService
from core.exceptions import ForbiddenException
from core.logging_config import get_logger
from core.response import success_response
from domain.common.exceptions import ReservationNotFoundException


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


async def _ensure_reservation_access(
    reservations: ReservationService,
    reservation_id: int,
    caller: Caller,
) -> None:
    if caller.is_admin:
        return
    reservation = await reservations.get_reservation(reservation_id)
    if reservation is None:
        raise ReservationNotFoundException(reservation_id)
    if not caller.can_access(reservation.user_id):
        logger.warning(
            "payment_access_denied",
            reservation_id=reservation_id,
            caller_user_id=caller.user_id,
        )
        raise ForbiddenException("You do not have access to this reservation")


@router.post("/create-intent")
async def create_payment_intent(
    command: CreatePaymentIntentCommand,
    caller: Caller = Depends(get_caller),
    reservations: ReservationService = Depends(get_reservations),
    handler: CreatePaymentIntentHandler = Depends(get_create_intent_handler),
):
    await _ensure_reservation_access(reservations, command.reservation_id, caller)
    result = await handler.handle(command)
    return success_response(data=result, message="Payment intent created")


@router.post("/confirm")
async def confirm_payment(
    command: ConfirmPaymentCommand,
    caller: Caller = Depends(get_caller),
    reservations: ReservationService = Depends(get_reservations),
    queries: PaymentQueryService = Depends(get_query_service),
    handler: ConfirmPaymentHandler = Depends(get_confirm_handler),
):
    payment = await queries.get_payment_by_intent(command.payment_intent_id)
    await _ensure_reservation_access(reservations, payment.reservation_id, caller)
    result = await handler.handle(command)
    return success_response(data=result, message="Payment confirmation processed")


@router.post("/{payment_id}/refund")
async def refund_payment(
    payment_id: int,
    body: RefundRequestBody | None = None,
    _admin: Caller = Depends(require_admin),
    handler: RefundPaymentHandler = Depends(get_refund_handler),
):
    body = body or RefundRequestBody()
    command = RefundPaymentCommand(payment_id=payment_id, amount=body.amount, reason=body.reason)
    result = await handler.handle(command)
    return success_response(data=result, message="Refund processed successfully")


@router.get("/reservation/{reservation_id}")
async def list_reservation_payments(
    reservation_id: int,
    caller: Caller = Depends(get_caller),
    reservations: ReservationService = Depends(get_reservations),
    queries: PaymentQueryService = Depends(get_query_service),
):
    await _ensure_reservation_access(reservations, reservation_id, caller)
    payments = await queries.list_for_reservation(reservation_id)
    return success_response(data=payments)


@router.get("/{payment_id}")
async def get_payment(
    payment_id: int,
    caller: Caller = Depends(get_caller),
    reservations: ReservationService = Depends(get_reservations),
    queries: PaymentQueryService = Depends(get_query_service),
):
    payment = await queries.get_payment(payment_id)
    await _ensure_reservation_access(reservations, payment.reservation_id, caller)
    return success_response(data=payment)
