"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings, and provide
in-memory doubles for the payment store, the processor gateway and the
reservations service.
"""
import copy
import json
import os
from decimal import Decimal
from typing import Any, Dict, List, Optional

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STRIPE__SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE__WEBHOOK_SECRET", "whsec_test")

import pytest

from application.dtos.payments import (
    ProviderIntentResult,
    ProviderPaymentResult,
    ProviderRefundResult,
    ReservationDTO,
    WebhookEvent,
)
from domain.common.exceptions import DomainValidationException, WebhookSignatureException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment
from domain.payment.repository import PaymentRepository


class InMemoryStore:
    """Committed payment rows shared by every unit of work of a test."""

    def __init__(self) -> None:
        self.rows: Dict[int, Payment] = {}
        self.next_id = 1
        self.commits = 0

    def seed(self, payment: Payment) -> Payment:
        if payment.id is None:
            payment.id = self.next_id
            self.next_id += 1
        self.rows[payment.id] = copy.deepcopy(payment)
        return payment

    def get(self, payment_id: int) -> Payment:
        return self.rows[payment_id]

    def by_intent(self, intent_id: str) -> Optional[Payment]:
        return next((p for p in self.rows.values() if p.provider_intent_id == intent_id), None)


class InMemoryPaymentRepository(PaymentRepository):
    def __init__(self, rows: Dict[int, Payment], store: InMemoryStore) -> None:
        self._rows = rows
        self._store = store

    async def add(self, payment: Payment) -> Payment:
        if payment.provider_intent_id and any(
            p.provider_intent_id == payment.provider_intent_id for p in self._rows.values()
        ):
            raise DomainValidationException("duplicate intent", field="provider_intent_id")
        payment = copy.deepcopy(payment)
        payment.id = self._store.next_id
        self._store.next_id += 1
        self._rows[payment.id] = payment
        return copy.deepcopy(payment)

    async def get_by_id(self, payment_id: int) -> Optional[Payment]:
        p = self._rows.get(payment_id)
        return copy.deepcopy(p) if p else None

    async def list_by_reservation(self, reservation_id: int) -> List[Payment]:
        items = [p for p in self._rows.values() if p.reservation_id == reservation_id]
        items.sort(key=lambda p: (p.created_at, p.id), reverse=True)
        return [copy.deepcopy(p) for p in items]

    async def get_by_provider_intent_id(self, intent_id: str) -> Optional[Payment]:
        p = next((p for p in self._rows.values() if p.provider_intent_id == intent_id), None)
        return copy.deepcopy(p) if p else None

    async def update(self, payment: Payment) -> Payment:
        self._rows[payment.id] = copy.deepcopy(payment)
        return copy.deepcopy(payment)


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: InMemoryStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self._store = store
        self._working: Dict[int, Payment] = {}

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        self._working = copy.deepcopy(self._store.rows)
        self.payment_repository = InMemoryPaymentRepository(self._working, self._store)
        return self

    async def commit(self) -> None:
        if not self._readonly:
            self._store.rows = copy.deepcopy(self._working)
            self._store.commits += 1
        self._committed = True

    async def rollback(self) -> None:
        self._working = copy.deepcopy(self._store.rows)
        self._committed = False


class FakeGateway:
    """Scriptable processor double; records every call."""

    provider = "stripe"

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.intent_ids: List[str] = []
        self.confirm_result: Optional[ProviderPaymentResult] = None
        self.refund_result: Optional[ProviderRefundResult] = None
        self.create_error: Optional[Exception] = None

    async def create_intent(self, amount, currency, reference_id, metadata=None, idempotency_key=None):
        self.calls.append(("create_intent", amount, currency, reference_id, metadata, idempotency_key))
        if self.create_error is not None:
            raise self.create_error
        n = len([c for c in self.calls if c[0] == "create_intent"])
        intent_id = self.intent_ids.pop(0) if self.intent_ids else f"pi_{n}"
        return ProviderIntentResult(
            intent_id=intent_id,
            client_secret=f"sec_{n}",
            status="requires_payment_method",
            amount=amount,
            currency=currency,
        )

    async def confirm(self, intent_id, payment_method_id):
        self.calls.append(("confirm", intent_id, payment_method_id))
        if self.confirm_result is not None:
            return self.confirm_result
        return ProviderPaymentResult(
            intent_id=intent_id,
            status="succeeded",
            payment_method_id=payment_method_id,
            charge_id="ch_1",
        )

    async def create_refund(self, intent_id, amount=None, reason=None):
        self.calls.append(("create_refund", intent_id, amount, reason))
        if self.refund_result is not None:
            return self.refund_result
        return ProviderRefundResult(refund_id="re_1", status="succeeded", amount=amount or Decimal("0"))

    async def get_intent(self, intent_id):
        self.calls.append(("get_intent", intent_id))
        return ProviderPaymentResult(intent_id=intent_id, status="succeeded")

    def parse_webhook(self, headers: Dict[str, Any], body: bytes) -> WebhookEvent:
        if headers.get("stripe-signature") != "valid":
            raise WebhookSignatureException("Invalid signature")
        event = json.loads(body)
        return WebhookEvent(id=event["id"], type=event["type"], provider=self.provider, data=event.get("data") or {})

    def count(self, name: str) -> int:
        return len([c for c in self.calls if c[0] == name])


class FakeReservations:
    def __init__(self) -> None:
        self.reservations: Dict[int, ReservationDTO] = {}
        self.confirmed: List[int] = []
        self.canceled_refunded: List[int] = []
        self.fail_notifications = False

    def add(self, reservation_id: int, *, user_id: int = 7, status: str = "Pending") -> ReservationDTO:
        dto = ReservationDTO(
            id=reservation_id,
            user_id=user_id,
            room_id=3,
            start_date="2025-12-01T00:00:00",
            end_date="2025-12-04T00:00:00",
            status=status,
        )
        self.reservations[reservation_id] = dto
        return dto

    async def get_reservation(self, reservation_id: int) -> Optional[ReservationDTO]:
        return self.reservations.get(reservation_id)

    async def confirm(self, reservation_id: int) -> None:
        if self.fail_notifications:
            raise RuntimeError("reservations service unavailable")
        self.confirmed.append(reservation_id)

    async def mark_canceled_refunded(self, reservation_id: int) -> None:
        if self.fail_notifications:
            raise RuntimeError("reservations service unavailable")
        self.canceled_refunded.append(reservation_id)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def uow_factory(store):
    def _factory(*, readonly: bool = False) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(store, readonly=readonly)
    return _factory


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def reservations() -> FakeReservations:
    return FakeReservations()


@pytest.fixture
def make_payment(store):
    """Seed a committed payment bound to an intent."""
    def _make(
        *,
        reservation_id: int = 42,
        amount: str = "350.00",
        currency: str = "EUR",
        intent_id: Optional[str] = "pi_1",
        succeeded: bool = False,
        **fields: Any,
    ) -> Payment:
        payment = Payment.create(reservation_id, Decimal(amount), currency)
        if intent_id:
            payment.set_provider_intent(intent_id, f"{intent_id}_secret")
        if succeeded:
            payment.mark_succeeded("ch_1")
        for k, v in fields.items():
            setattr(payment, k, v)
        return store.seed(payment)
    return _make
