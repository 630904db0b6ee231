"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional, List
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from domain.common.exceptions import DomainValidationException, PaymentNotFoundException
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.repository import PaymentRepository
from infrastructure.models.payment import PaymentModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyPaymentRepository(PaymentRepository):
    """支付仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        """将数据库模型转换为领域实体"""
        return Payment(
            id=model.id,
            reservation_id=model.reservation_id,
            amount=Decimal(str(model.amount)),
            currency=model.currency,
            status=PaymentStatus(model.status),
            provider=model.provider,
            provider_intent_id=model.provider_intent_id,
            client_secret=model.client_secret,
            provider_charge_id=model.provider_charge_id,
            amount_refunded=Decimal(str(model.amount_refunded or 0)),
            created_at=model.created_at,
            paid_at=model.paid_at,
            refunded_at=model.refunded_at,
            is_active=model.is_active,
            last_provider_event_id=model.last_provider_event_id,
            error_code=model.error_code,
            error_message=model.error_message,
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        """将领域实体转换为数据库模型"""
        return PaymentModel(
            id=entity.id,
            reservation_id=entity.reservation_id,
            amount=entity.amount,
            currency=entity.currency,
            status=entity.status.value,
            provider=entity.provider,
            provider_intent_id=entity.provider_intent_id,
            client_secret=entity.client_secret,
            provider_charge_id=entity.provider_charge_id,
            amount_refunded=entity.amount_refunded,
            created_at=entity.created_at,
            paid_at=entity.paid_at,
            refunded_at=entity.refunded_at,
            is_active=entity.is_active,
            last_provider_event_id=entity.last_provider_event_id,
            error_code=entity.error_code,
            error_message=entity.error_message,
        )

    async def add(self, payment: Payment) -> Payment:
        """创建支付记录"""
        try:
            db_payment = self._to_model(payment)
            self.session.add(db_payment)
            await self.session.flush()
            await self.session.refresh(db_payment)
        except IntegrityError as e:
            msg = str(e).lower()
            if "provider_intent_id" in msg:
                logger.warning(
                    "payment_create_conflict",
                    reservation_id=payment.reservation_id,
                    provider_intent_id=payment.provider_intent_id,
                )
                raise DomainValidationException(
                    "A payment is already bound to this provider intent",
                    field="provider_intent_id",
                ) from e
            raise

        logger.info(
            "payment_created",
            payment_id=db_payment.id,
            reservation_id=db_payment.reservation_id,
            provider=db_payment.provider,
        )
        return self._to_entity(db_payment)

    async def get_by_id(self, payment_id: int) -> Optional[Payment]:
        """根据ID获取支付"""
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.id == payment_id)
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def list_by_reservation(self, reservation_id: int) -> List[Payment]:
        """获取预订下的全部支付尝试（最新在前）"""
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.reservation_id == reservation_id)
            .order_by(PaymentModel.created_at.desc(), PaymentModel.id.desc())
        )
        return [self._to_entity(p) for p in result.scalars().all()]

    async def get_by_provider_intent_id(self, intent_id: str) -> Optional[Payment]:
        """根据渠道 PaymentIntent ID 获取支付"""
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.provider_intent_id == intent_id)
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def update(self, payment: Payment) -> Payment:
        """更新支付记录（reservation/amount/currency 创建后不可变）"""
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.id == payment.id)
        )
        db_payment = result.scalar_one_or_none()

        if not db_payment:
            raise PaymentNotFoundException(payment.id)

        # 更新可变字段
        db_payment.status = payment.status.value
        db_payment.provider_intent_id = payment.provider_intent_id
        db_payment.client_secret = payment.client_secret
        db_payment.provider_charge_id = payment.provider_charge_id
        db_payment.amount_refunded = payment.amount_refunded
        db_payment.paid_at = payment.paid_at
        db_payment.refunded_at = payment.refunded_at
        db_payment.is_active = payment.is_active
        db_payment.last_provider_event_id = payment.last_provider_event_id
        db_payment.error_code = payment.error_code
        db_payment.error_message = payment.error_message

        await self.session.flush()
        await self.session.refresh(db_payment)

        logger.info(
            "payment_updated",
            payment_id=db_payment.id,
            reservation_id=db_payment.reservation_id,
            status=db_payment.status,
        )

        return self._to_entity(db_payment)
