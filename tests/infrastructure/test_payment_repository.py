"""SQLAlchemy payment repository and unit of work against a file-backed SQLite database."""
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker

from domain.common.exceptions import DomainValidationException, PaymentNotFoundException
from domain.payment.entity import Payment, PaymentStatus
from infrastructure.database import build_engine, create_tables
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@pytest_asyncio.fixture
async def sql_uow_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}")
    await create_tables(bind=engine)
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    def _factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=session_factory, readonly=readonly)

    yield _factory
    await engine.dispose()


async def _add(factory, reservation_id=42, amount="350.00", intent_id="pi_1") -> Payment:
    async with factory() as uow:
        payment = Payment.create(reservation_id, Decimal(amount), "EUR")
        payment.set_provider_intent(intent_id, f"{intent_id}_secret")
        return await uow.payment_repository.add(payment)


@pytest.mark.asyncio
async def test_add_assigns_id_and_commits(sql_uow_factory):
    saved = await _add(sql_uow_factory)
    assert saved.id is not None

    async with sql_uow_factory(readonly=True) as uow:
        loaded = await uow.payment_repository.get_by_id(saved.id)
    assert loaded is not None
    assert loaded.amount == Decimal("350.00")
    assert loaded.currency == "EUR"
    assert loaded.status is PaymentStatus.REQUIRES_PAYMENT
    assert loaded.client_secret == "pi_1_secret"
    assert loaded.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_lookup_by_intent_and_reservation(sql_uow_factory):
    first = await _add(sql_uow_factory, intent_id="pi_1")
    second = await _add(sql_uow_factory, intent_id="pi_2")
    await _add(sql_uow_factory, reservation_id=99, intent_id="pi_3")

    async with sql_uow_factory(readonly=True) as uow:
        by_intent = await uow.payment_repository.get_by_provider_intent_id("pi_2")
        listed = await uow.payment_repository.list_by_reservation(42)
        missing = await uow.payment_repository.get_by_provider_intent_id("pi_nope")

    assert by_intent.id == second.id
    assert [p.id for p in listed] == [second.id, first.id]
    assert missing is None


@pytest.mark.asyncio
async def test_update_persists_state_changes(sql_uow_factory):
    saved = await _add(sql_uow_factory)

    async with sql_uow_factory() as uow:
        payment = await uow.payment_repository.get_by_id(saved.id)
        payment.mark_succeeded("ch_1")
        payment.refund(Decimal("50.00"))
        payment.update_provider_event_id("evt_1")
        await uow.payment_repository.update(payment)

    async with sql_uow_factory(readonly=True) as uow:
        loaded = await uow.payment_repository.get_by_id(saved.id)
    assert loaded.status is PaymentStatus.REFUNDED
    assert loaded.provider_charge_id == "ch_1"
    assert loaded.amount_refunded == Decimal("50.00")
    assert loaded.last_provider_event_id == "evt_1"
    assert loaded.paid_at is not None


@pytest.mark.asyncio
async def test_exception_rolls_back(sql_uow_factory):
    saved = await _add(sql_uow_factory)

    with pytest.raises(RuntimeError):
        async with sql_uow_factory() as uow:
            payment = await uow.payment_repository.get_by_id(saved.id)
            payment.mark_failed("card_declined", "Your card was declined.")
            await uow.payment_repository.update(payment)
            raise RuntimeError("boom")

    async with sql_uow_factory(readonly=True) as uow:
        loaded = await uow.payment_repository.get_by_id(saved.id)
    assert loaded.status is PaymentStatus.REQUIRES_PAYMENT
    assert loaded.is_active is True


@pytest.mark.asyncio
async def test_duplicate_intent_is_rejected(sql_uow_factory):
    await _add(sql_uow_factory, intent_id="pi_dup")
    with pytest.raises(DomainValidationException):
        await _add(sql_uow_factory, intent_id="pi_dup")


@pytest.mark.asyncio
async def test_update_missing_payment_raises(sql_uow_factory):
    ghost = Payment.create(42, Decimal("10.00"), "EUR")
    ghost.id = 12345
    with pytest.raises(PaymentNotFoundException):
        async with sql_uow_factory() as uow:
            await uow.payment_repository.update(ghost)


@pytest.mark.asyncio
async def test_sessions_are_released_on_exit(sql_uow_factory):
    await _add(sql_uow_factory)

    readonly = sql_uow_factory(readonly=True)
    async with readonly as uow:
        assert await uow.payment_repository.list_by_reservation(42)
        assert uow.session is not None
    assert readonly.session is None
    assert readonly.payment_repository is None
