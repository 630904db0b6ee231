"""
Reservations service port.

Payments only reads a reservation (owner, status, stay) and pushes the
booking outcome back; the HTTP client lives in infrastructure.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from application.dtos.payments import ReservationDTO


@runtime_checkable
class ReservationService(Protocol):

    async def get_reservation(self, reservation_id: int) -> Optional[ReservationDTO]:
        """Return the reservation, or None when it does not exist."""
        ...

    async def confirm(self, reservation_id: int) -> None: ...

    async def mark_canceled_refunded(self, reservation_id: int) -> None: ...
