"""
Reservations service HTTP client.

Implements application.ports.reservations.ReservationService over the
reservations service's internal REST endpoints.
"""
from __future__ import annotations

from typing import Optional

import httpx

from application.dtos.payments import ReservationDTO
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode

from .base import APIError, BaseAPIClient, NotFoundError


logger = get_logger(__name__)

SERVICE_TOKEN_HEADER = "X-Service-Token"


class ReservationServiceError(BusinessException):
    """Reservations service unreachable or answered with an error."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message=message,
            error_type="ReservationServiceError",
            details={"status_code": status_code} if status_code else None,
        )


class ReservationsClient(BaseAPIClient):

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        service_token: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        cfg = settings.reservations
        token = service_token if service_token is not None else cfg.service_token
        super().__init__(
            base_url=base_url or cfg.base_url,
            timeout=timeout if timeout is not None else cfg.timeout,
            max_retries=max_retries if max_retries is not None else cfg.max_retries,
            retry_delay=retry_delay if retry_delay is not None else cfg.retry_delay,
            headers={SERVICE_TOKEN_HEADER: token} if token else None,
            transport=transport,
        )

    async def get_reservation(self, reservation_id: int) -> Optional[ReservationDTO]:
        try:
            response = await self.get(f"/internal/reservations/{reservation_id}")
        except NotFoundError:
            logger.info("reservation_not_found", reservation_id=reservation_id)
            return None
        except APIError as exc:
            logger.error("reservation_fetch_failed", reservation_id=reservation_id, error=str(exc))
            raise ReservationServiceError(
                f"Failed to fetch reservation {reservation_id}", status_code=exc.status_code
            ) from exc
        return ReservationDTO.model_validate(response.json())

    async def confirm(self, reservation_id: int) -> None:
        await self._notify(reservation_id, "mark-confirmed")

    async def mark_canceled_refunded(self, reservation_id: int) -> None:
        await self._notify(reservation_id, "mark-canceled-refunded")

    async def _notify(self, reservation_id: int, action: str) -> None:
        try:
            # 通知是尽力而为：单次发送，失败由调用方记录
            await self.post(f"/internal/reservations/{reservation_id}/{action}", retry=False)
        except APIError as exc:
            raise ReservationServiceError(
                f"Reservation {reservation_id} {action} failed", status_code=exc.status_code
            ) from exc
