"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Boolean, CheckConstraint, Column, Integer, String, Numeric, DateTime, Index,
)
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    """
    支付数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.payment.entity.Payment 中
    """
    __tablename__ = "payments"

    # 主键
    id = Column(Integer, primary_key=True, autoincrement=True)

    # 预订信息（一个预订可以有多次支付尝试）
    reservation_id = Column(Integer, nullable=False, comment="预订ID")

    # 金额信息（使用 Numeric 存储精确金额）
    amount = Column(Numeric(precision=10, scale=2), nullable=False, comment="支付金额")
    currency = Column(String(10), nullable=False, default="EUR", comment="货币代码 ISO-4217")
    amount_refunded = Column(
        Numeric(precision=10, scale=2),
        nullable=False,
        default=0,
        comment="已退款金额（渠道侧累计值）"
    )

    # 支付渠道信息
    provider = Column(String(20), nullable=False, default="stripe", comment="支付提供商")
    provider_intent_id = Column(String(100), nullable=True, comment="渠道 PaymentIntent ID")
    client_secret = Column(String(500), nullable=True, comment="客户端密钥（用于前端调用）")
    provider_charge_id = Column(String(100), nullable=True, comment="渠道扣款ID")

    # 状态
    status = Column(
        String(30),
        nullable=False,
        default="RequiresPayment",
        comment="支付状态: RequiresPayment/RequiresAction/Processing/Succeeded/Failed/Refunded/Canceled"
    )
    is_active = Column(Boolean, nullable=False, default=True, comment="失败/取消后为 False")

    # Webhook 幂等游标
    last_provider_event_id = Column(String(100), nullable=True, comment="最后应用的渠道事件ID")

    # 失败信息
    error_code = Column(String(50), nullable=True, comment="渠道错误码")
    error_message = Column(String(300), nullable=True, comment="渠道错误信息")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="支付完成时间")
    refunded_at = Column(DateTime(timezone=True), nullable=True, comment="退款时间")

    # 索引与约束
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payments_amount_non_negative"),
        CheckConstraint("amount_refunded >= 0", name="ck_payments_amount_refunded_non_negative"),
        CheckConstraint(
            "status <> 'Refunded' OR amount_refunded > 0",
            name="ck_payments_refund_logic",
        ),
        Index("ix_payments_reservation_id", "reservation_id"),
        # NULL 不参与唯一性比较，未绑定 intent 的记录互不冲突
        Index("ix_payments_provider_intent_id", "provider_intent_id", unique=True),
        Index("ix_payments_provider_charge_id", "provider_charge_id"),
        Index("ix_payments_status", "status"),
        Index("ix_payments_is_active", "is_active"),
        Index("ix_payments_created_at", "created_at"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id={self.id}, reservation_id={self.reservation_id}, "
            f"amount={self.amount}, status='{self.status}')>"
        )
