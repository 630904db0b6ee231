from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from application.services.payment_query_service import PaymentQueryService
from domain.common.exceptions import PaymentNotFoundException, ResourceNotFoundException
from domain.payment.entity import PaymentStatus

@pytest.mark.asyncio
async def test_get_payment(uow_factory, make_payment):
    payment = make_payment()
    view = await PaymentQueryService(uow_factory).get_payment(payment.id)
    assert view.payment_intent_id == "pi_1"
    assert view.status == "RequiresPayment"

    with pytest.raises(PaymentNotFoundException):
        await PaymentQueryService(uow_factory).get_payment(999)

@pytest.mark.asyncio
async def test_get_payment_by_intent(uow_factory, make_payment):
    payment = make_payment(intent_id="pi_7")
    view = await PaymentQueryService(uow_factory).get_payment_by_intent("pi_7")
    assert view.id == payment.id

@pytest.mark.asyncio
async def test_list_for_reservation_newest_first(uow_factory, make_payment):
    now = datetime.now(timezone.utc)
    older = make_payment(intent_id="pi_a", created_at=now - timedelta(hours=1))
    newer = make_payment(intent_id="pi_b", created_at=now)
    make_payment(reservation_id=43, intent_id="pi_c")

    views = await PaymentQueryService(uow_factory).list_for_reservation(42)

    assert [v.id for v in views] == [newer.id, older.id]

@pytest.mark.asyncio
async def test_summary_nets_refunds(uow_factory, make_payment):
    now = datetime.now(timezone.utc)
    make_payment(intent_id="pi_a", status=PaymentStatus.FAILED, is_active=False, created_at=now - timedelta(hours=2))
    make_payment(
        intent_id="pi_b",
        succeeded=True,
        status=PaymentStatus.REFUNDED,
        amount_refunded=Decimal("100.00"),
        created_at=now - timedelta(hours=1),
    )
    make_payment(intent_id="pi_c", created_at=now)

    summary = await PaymentQueryService(uow_factory).reservation_summary(42)

    assert summary.has_successful_payment is False
    assert summary.total_paid == Decimal("350.00")
    assert summary.total_refunded == Decimal("100.00")
    assert summary.net_amount == Decimal("250.00")
    assert summary.latest_status == "RequiresPayment"

@pytest.mark.asyncio
async def test_summary_with_successful_payment(uow_factory, make_payment):
    make_payment(succeeded=True)

    summary = await PaymentQueryService(uow_factory).reservation_summary(42)

    assert summary.has_successful_payment is True
    assert summary.net_amount == Decimal("350.00")
    assert summary.latest_status == "Succeeded"

@pytest.mark.asyncio
async def test_summary_without_payments(uow_factory):
    with pytest.raises(ResourceNotFoundException):
        await PaymentQueryService(uow_factory).reservation_summary(42)
