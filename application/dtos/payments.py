"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.types import condecimal

from domain.payment.entity import Payment


# Reservation statuses in which a reservation can still be paid
PAYABLE_RESERVATION_STATUSES = frozenset({"Pending", "Held"})


def _validate_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    return u


# Commands

class CreatePaymentIntentCommand(BaseModel):
    reservation_id: int = Field(gt=0)
    amount: condecimal(gt=0, max_digits=10, decimal_places=2)  # type: ignore[valid-type]
    currency: str = Field(default="EUR", max_length=10)

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        return _validate_currency(v)


class ConfirmPaymentCommand(BaseModel):
    payment_intent_id: str = Field(min_length=1)
    payment_method_id: str = Field(min_length=1)


class RefundPaymentCommand(BaseModel):
    payment_id: int
    amount: Optional[condecimal(gt=0, max_digits=10, decimal_places=2)] = None  # type: ignore[valid-type]
    reason: Optional[str] = None


class RefundRequestBody(BaseModel):
    """Body of the refund endpoint; the payment id comes from the path."""

    amount: Optional[condecimal(gt=0, max_digits=10, decimal_places=2)] = None  # type: ignore[valid-type]
    reason: Optional[str] = None


# Collaborator shapes

class ReservationDTO(BaseModel):
    """Reservation as returned by the reservations service."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    user_id: int = Field(alias="userId")
    room_id: Optional[int] = Field(default=None, alias="roomId")
    start_date: Optional[date] = Field(default=None, alias="startDate")
    end_date: Optional[date] = Field(default=None, alias="endDate")
    status: str

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _date_only(cls, v: Any) -> Any:
        # The reservations service serialises DateTime; keep the calendar date
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        if isinstance(v, datetime):
            return v.date()
        return v

    @property
    def is_payable(self) -> bool:
        return self.status in PAYABLE_RESERVATION_STATUSES


# Provider gateway results

class ProviderIntentResult(BaseModel):
    intent_id: str
    client_secret: Optional[str] = None
    status: str
    amount: Decimal
    currency: str


class ProviderPaymentResult(BaseModel):
    intent_id: str
    status: str
    payment_method_id: Optional[str] = None
    charge_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class ProviderRefundResult(BaseModel):
    refund_id: str
    status: str
    amount: Decimal = Decimal("0")
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class WebhookEvent(BaseModel):
    id: str
    type: str
    provider: str
    data: dict[str, Any]

    @property
    def object(self) -> dict[str, Any]:
        obj = self.data.get("object") if isinstance(self.data, dict) else None
        return obj if isinstance(obj, dict) else {}


# Responses

class PaymentIntentResponse(BaseModel):
    payment_id: int
    payment_intent_id: str
    client_secret: Optional[str] = None
    amount: Decimal
    currency: str


class PaymentResponseDTO(BaseModel):
    id: int
    reservation_id: int
    amount: Decimal
    currency: str
    payment_intent_id: Optional[str] = None
    status: str
    amount_refunded: Decimal
    is_active: bool
    paid_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    created_at: datetime
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def from_entity(cls, payment: Payment) -> "PaymentResponseDTO":
        return cls(
            id=payment.id,
            reservation_id=payment.reservation_id,
            amount=payment.amount,
            currency=payment.currency,
            payment_intent_id=payment.provider_intent_id,
            status=payment.status.value,
            amount_refunded=payment.amount_refunded,
            is_active=payment.is_active,
            paid_at=payment.paid_at,
            refunded_at=payment.refunded_at,
            created_at=payment.created_at,
            error_code=payment.error_code,
            error_message=payment.error_message,
        )


class RefundResponseDTO(BaseModel):
    payment: PaymentResponseDTO
    refund_id: str
    refund_status: str
    amount: Decimal


class ReservationPaymentSummary(BaseModel):
    reservation_id: int
    has_successful_payment: bool
    total_paid: Decimal
    total_refunded: Decimal
    net_amount: Decimal
    latest_status: str
