from decimal import Decimal

import pytest

from application.dtos.payments import CreatePaymentIntentCommand, ProviderIntentResult
from application.handlers.create_payment_intent import CreatePaymentIntentHandler
from domain.common.exceptions import (
    AlreadyPaidException,
    InvalidStateException,
    PaymentProviderException,
    ReservationNotFoundException,
)
from domain.payment.entity import PaymentStatus


def _handler(uow_factory, gateway, reservations) -> CreatePaymentIntentHandler:
    return CreatePaymentIntentHandler(uow_factory=uow_factory, gateway=gateway, reservations=reservations)


def _command(reservation_id: int = 42, amount: str = "350.00") -> CreatePaymentIntentCommand:
    return CreatePaymentIntentCommand(reservation_id=reservation_id, amount=Decimal(amount))


@pytest.mark.asyncio
async def test_create_intent_persists_payment(store, uow_factory, gateway, reservations):
    reservations.add(42, user_id=7, status="Held")

    result = await _handler(uow_factory, gateway, reservations).handle(_command())

    assert result.payment_intent_id == "pi_1"
    assert result.client_secret == "sec_1"
    assert result.amount == Decimal("350.00") and result.currency == "EUR"
    payment = store.get(result.payment_id)
    assert payment.status == PaymentStatus.REQUIRES_PAYMENT
    assert payment.provider_intent_id == "pi_1"
    assert payment.client_secret == "sec_1"

    _, amount, currency, reference_id, metadata, key = gateway.calls[0]
    assert (amount, currency, reference_id) == (Decimal("350.00"), "EUR", 42)
    assert metadata["reservation_id"] == "42"
    assert metadata["user_id"] == "7"
    assert metadata["room_id"] == "3"
    assert metadata["start_date"] == "2025-12-01"
    assert metadata["end_date"] == "2025-12-04"
    assert len(key) == 64


@pytest.mark.asyncio
async def test_missing_reservation(store, uow_factory, gateway, reservations):
    with pytest.raises(ReservationNotFoundException):
        await _handler(uow_factory, gateway, reservations).handle(_command())
    assert gateway.calls == []
    assert store.rows == {}


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["Confirmed", "Canceled", "CanceledRefunded", "Expired"])
async def test_reservation_not_payable(status, store, uow_factory, gateway, reservations):
    reservations.add(42, status=status)
    with pytest.raises(InvalidStateException) as exc_info:
        await _handler(uow_factory, gateway, reservations).handle(_command())
    assert exc_info.value.current_status == status
    assert status in exc_info.value.message
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_second_intent_after_success_is_rejected(store, uow_factory, gateway, reservations, make_payment):
    reservations.add(42)
    make_payment(intent_id="pi_old", succeeded=True)

    with pytest.raises(AlreadyPaidException):
        await _handler(uow_factory, gateway, reservations).handle(_command())
    assert gateway.count("create_intent") == 0
    assert len(store.rows) == 1


@pytest.mark.asyncio
async def test_second_intent_after_failure_is_allowed(store, uow_factory, gateway, reservations):
    reservations.add(42)
    handler = _handler(uow_factory, gateway, reservations)

    first = await handler.handle(_command())
    store.rows[first.payment_id].mark_failed("card_declined", "declined")

    second = await handler.handle(_command())

    assert second.payment_id != first.payment_id
    assert second.payment_intent_id == "pi_2"
    # A new attempt must not reuse the first attempt's idempotency key
    assert gateway.calls[0][5] != gateway.calls[1][5]


@pytest.mark.asyncio
async def test_provider_failure_persists_nothing(store, uow_factory, gateway, reservations):
    reservations.add(42)
    gateway.create_error = PaymentProviderException("Payment provider error: boom")

    with pytest.raises(PaymentProviderException):
        await _handler(uow_factory, gateway, reservations).handle(_command())
    assert store.rows == {}


def test_command_validates_input():
    cmd = CreatePaymentIntentCommand(reservation_id=1, amount=Decimal("10.50"), currency="usd")
    assert cmd.currency == "USD"
    with pytest.raises(ValueError):
        CreatePaymentIntentCommand(reservation_id=1, amount=Decimal("0"))
    with pytest.raises(ValueError):
        CreatePaymentIntentCommand(reservation_id=1, amount=Decimal("10.00"), currency="EURO")


class _IdempotentGateway:
    """Replays the stored intent for a known key and rejects a key reused with other parameters."""

    def __init__(self) -> None:
        self.requests = {}
        self.created = 0

    async def create_intent(self, amount, currency, reference_id, metadata=None, idempotency_key=None):
        params = (amount, currency, reference_id, metadata)
        if idempotency_key in self.requests:
            stored_params, intent = self.requests[idempotency_key]
            if stored_params != params:
                raise PaymentProviderException(
                    "Keys for idempotent requests can only be used with the same parameters"
                )
            return intent
        self.created += 1
        intent = ProviderIntentResult(
            intent_id=f"pi_{self.created}",
            client_secret=f"sec_{self.created}",
            status="requires_payment_method",
            amount=amount,
            currency=currency,
        )
        self.requests[idempotency_key] = (params, intent)
        return intent


def _commit_fails_once(uow_factory):
    state = {"failed": False}

    def _factory(*, readonly: bool = False):
        uow = uow_factory(readonly=readonly)
        if not readonly and not state["failed"]:
            state["failed"] = True

            async def _lost_connection() -> None:
                raise RuntimeError("database connection lost")

            uow.commit = _lost_connection
        return uow

    return _factory


@pytest.mark.asyncio
async def test_retry_after_failed_commit_reuses_the_same_intent(store, uow_factory, reservations):
    reservations.add(42, user_id=7)
    gateway = _IdempotentGateway()
    handler = CreatePaymentIntentHandler(
        uow_factory=_commit_fails_once(uow_factory), gateway=gateway, reservations=reservations
    )

    with pytest.raises(RuntimeError):
        await handler.handle(_command())
    assert store.rows == {}

    result = await handler.handle(_command())

    assert result.payment_intent_id == "pi_1"
    assert gateway.created == 1
    assert [p.provider_intent_id for p in store.rows.values()] == ["pi_1"]
