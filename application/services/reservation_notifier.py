"""
Best-effort booking outcome notifications.

The payment row is the source of truth: once it is committed, a failure to
tell the reservations service is logged and left for out-of-band
reconciliation instead of being raised to the caller.
"""
from __future__ import annotations

from typing import Optional

from application.ports.reservations import ReservationService
from core.logging_config import get_logger


logger = get_logger(__name__)


async def notify_confirmed(
    reservations: ReservationService,
    reservation_id: int,
    *,
    payment_id: Optional[int] = None,
) -> bool:
    try:
        await reservations.confirm(reservation_id)
    except Exception as exc:
        logger.error(
            "reservation_confirm_notify_failed",
            reservation_id=reservation_id,
            payment_id=payment_id,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return False
    logger.info("reservation_confirm_notified", reservation_id=reservation_id, payment_id=payment_id)
    return True


async def notify_canceled_refunded(
    reservations: ReservationService,
    reservation_id: int,
    *,
    payment_id: Optional[int] = None,
) -> bool:
    try:
        await reservations.mark_canceled_refunded(reservation_id)
    except Exception as exc:
        logger.error(
            "reservation_refund_notify_failed",
            reservation_id=reservation_id,
            payment_id=payment_id,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return False
    logger.info("reservation_refund_notified", reservation_id=reservation_id, payment_id=payment_id)
    return True
