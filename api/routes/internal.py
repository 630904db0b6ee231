"""
Service-to-service routes used by the reservations service.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_query_service, get_refund_handler, require_service_token
from application.handlers.refund_payment import RefundPaymentHandler
from application.services.payment_query_service import PaymentQueryService
from core.response import success_response


router = APIRouter(
    prefix="/internal/payments",
    tags=["Internal"],
    dependencies=[Depends(require_service_token)],
)


@router.post("/reservation/{reservation_id}/refund")
async def refund_reservation(
    reservation_id: int,
    handler: RefundPaymentHandler = Depends(get_refund_handler),
):
    result = await handler.handle_for_reservation(reservation_id)
    return success_response(data=result, message="Refund processed successfully")


@router.get("/reservation/{reservation_id}/summary")
async def reservation_summary(
    reservation_id: int,
    queries: PaymentQueryService = Depends(get_query_service),
):
    summary = await queries.reservation_summary(reservation_id)
    return success_response(data=summary)
