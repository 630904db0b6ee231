from decimal import Decimal

import pytest

from application.dtos.payments import ProviderRefundResult, RefundPaymentCommand
from application.handlers.refund_payment import RefundPaymentHandler
from domain.common.exceptions import (
    DomainValidationException,
    InvalidStateException,
    PaymentNotFoundException,
    PaymentProviderException,
    ResourceNotFoundException,
)
from domain.payment.entity import PaymentStatus


def _handler(uow_factory, gateway, reservations) -> RefundPaymentHandler:
    return RefundPaymentHandler(uow_factory=uow_factory, gateway=gateway, reservations=reservations)


@pytest.mark.asyncio
async def test_full_refund(store, uow_factory, gateway, reservations, make_payment):
    payment = make_payment(succeeded=True)
    gateway.refund_result = ProviderRefundResult(refund_id="re_1", status="succeeded", amount=Decimal("350.00"))

    result = await _handler(uow_factory, gateway, reservations).handle(RefundPaymentCommand(payment_id=payment.id))

    saved = store.get(payment.id)
    assert saved.status == PaymentStatus.REFUNDED
    assert saved.amount_refunded == Decimal("350.00")
    assert saved.refunded_at is not None
    assert result.refund_id == "re_1"
    assert result.amount == Decimal("350.00")
    assert gateway.calls == [("create_refund", "pi_1", None, None)]
    assert reservations.canceled_refunded == [42]


@pytest.mark.asyncio
async def test_partial_refund_with_pending_status(store, uow_factory, gateway, reservations, make_payment):
    payment = make_payment(succeeded=True)
    gateway.refund_result = ProviderRefundResult(refund_id="re_2", status="pending", amount=Decimal("50.00"))

    await _handler(uow_factory, gateway, reservations).handle(
        RefundPaymentCommand(payment_id=payment.id, amount=Decimal("50.00"), reason="duplicate")
    )

    saved = store.get(payment.id)
    assert saved.amount_refunded == Decimal("50.00")
    assert gateway.calls == [("create_refund", "pi_1", Decimal("50.00"), "duplicate")]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["RequiresPayment", "Failed", "Refunded", "Canceled"])
async def test_refund_requires_succeeded(status, store, uow_factory, gateway, reservations, make_payment):
    payment = make_payment(status=PaymentStatus(status), amount_refunded=Decimal("1.00"))

    with pytest.raises(InvalidStateException) as exc_info:
        await _handler(uow_factory, gateway, reservations).handle(RefundPaymentCommand(payment_id=payment.id))
    assert exc_info.value.message == "Can only refund succeeded payments"
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_refund_requires_intent(store, uow_factory, gateway, reservations, make_payment):
    payment = make_payment(intent_id=None, succeeded=True)

    with pytest.raises(InvalidStateException):
        await _handler(uow_factory, gateway, reservations).handle(RefundPaymentCommand(payment_id=payment.id))
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_refund_over_amount_is_rejected_before_provider(store, uow_factory, gateway, reservations, make_payment):
    payment = make_payment(succeeded=True)

    with pytest.raises(DomainValidationException):
        await _handler(uow_factory, gateway, reservations).handle(
            RefundPaymentCommand(payment_id=payment.id, amount=Decimal("350.01"))
        )
    assert gateway.calls == []
    assert store.get(payment.id).status == PaymentStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_provider_rejection(store, uow_factory, gateway, reservations, make_payment):
    payment = make_payment(succeeded=True)
    gateway.refund_result = ProviderRefundResult(
        refund_id="", status="failed", error_code="charge_already_refunded", error_message="Charge already refunded"
    )

    with pytest.raises(PaymentProviderException) as exc_info:
        await _handler(uow_factory, gateway, reservations).handle(RefundPaymentCommand(payment_id=payment.id))
    assert "Charge already refunded" in exc_info.value.message
    assert store.get(payment.id).status == PaymentStatus.SUCCEEDED
    assert reservations.canceled_refunded == []


@pytest.mark.asyncio
async def test_unknown_payment(uow_factory, gateway, reservations):
    with pytest.raises(PaymentNotFoundException):
        await _handler(uow_factory, gateway, reservations).handle(RefundPaymentCommand(payment_id=999))


@pytest.mark.asyncio
async def test_refund_for_reservation_uses_succeeded_payment(store, uow_factory, gateway, reservations, make_payment):
    make_payment(intent_id="pi_failed", status=PaymentStatus.FAILED, is_active=False)
    paid = make_payment(intent_id="pi_paid", succeeded=True)

    result = await _handler(uow_factory, gateway, reservations).handle_for_reservation(42)

    assert result.payment.id == paid.id
    assert gateway.calls == [("create_refund", "pi_paid", Decimal("350.00"), "requested_by_customer")]
    assert store.get(paid.id).status == PaymentStatus.REFUNDED


@pytest.mark.asyncio
async def test_refund_for_reservation_without_success(uow_factory, gateway, reservations, make_payment):
    make_payment()
    with pytest.raises(ResourceNotFoundException):
        await _handler(uow_factory, gateway, reservations).handle_for_reservation(42)
