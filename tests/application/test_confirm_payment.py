import pytest

from application.dtos.payments import ConfirmPaymentCommand, ProviderPaymentResult
from application.handlers.confirm_payment import ConfirmPaymentHandler
from domain.common.exceptions import PaymentNotFoundException
from domain.payment.entity import PaymentStatus


def _handler(uow_factory, gateway, reservations) -> ConfirmPaymentHandler:
    return ConfirmPaymentHandler(uow_factory=uow_factory, gateway=gateway, reservations=reservations)


_CMD = ConfirmPaymentCommand(payment_intent_id="pi_1", payment_method_id="pm_1")


@pytest.mark.asyncio
async def test_confirm_succeeded(store, uow_factory, gateway, reservations, make_payment):
    payment = make_payment()

    result = await _handler(uow_factory, gateway, reservations).handle(_CMD)

    saved = store.get(payment.id)
    assert result.status == "Succeeded"
    assert saved.status == PaymentStatus.SUCCEEDED
    assert saved.paid_at is not None
    assert saved.provider_charge_id == "ch_1"
    assert reservations.confirmed == [42]
    assert gateway.calls == [("confirm", "pi_1", "pm_1")]


@pytest.mark.asyncio
async def test_confirm_requires_action(store, uow_factory, gateway, reservations, make_payment):
    payment = make_payment()
    gateway.confirm_result = ProviderPaymentResult(intent_id="pi_1", status="requires_action")

    await _handler(uow_factory, gateway, reservations).handle(_CMD)

    saved = store.get(payment.id)
    assert saved.status == PaymentStatus.REQUIRES_ACTION
    assert saved.is_active is True
    assert reservations.confirmed == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["processing", "requires_payment_method", "canceled", "failed"])
async def test_confirm_other_statuses_fail_payment(status, store, uow_factory, gateway, reservations, make_payment):
    payment = make_payment()
    gateway.confirm_result = ProviderPaymentResult(
        intent_id="pi_1", status=status, error_code="card_declined", error_message="Your card was declined."
    )

    await _handler(uow_factory, gateway, reservations).handle(_CMD)

    saved = store.get(payment.id)
    assert saved.status == PaymentStatus.FAILED
    assert saved.is_active is False
    assert saved.error_code == "card_declined"
    assert saved.paid_at is None
    assert reservations.confirmed == []


@pytest.mark.asyncio
async def test_confirm_unknown_intent(uow_factory, gateway, reservations):
    with pytest.raises(PaymentNotFoundException):
        await _handler(uow_factory, gateway, reservations).handle(_CMD)
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_notification_failure_does_not_undo_payment(store, uow_factory, gateway, reservations, make_payment):
    payment = make_payment()
    reservations.fail_notifications = True

    result = await _handler(uow_factory, gateway, reservations).handle(_CMD)

    assert result.status == "Succeeded"
    assert store.get(payment.id).status == PaymentStatus.SUCCEEDED
