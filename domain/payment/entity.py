"""
支付领域实体 - 支付聚合根
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from enum import Enum

from domain.common.exceptions import DomainValidationException


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    REQUIRES_PAYMENT = "RequiresPayment"  # 等待客户支付
    REQUIRES_ACTION = "RequiresAction"    # 需要额外验证（如 3DS）
    PROCESSING = "Processing"             # 处理中
    SUCCEEDED = "Succeeded"               # 支付成功
    FAILED = "Failed"                     # 支付失败
    REFUNDED = "Refunded"                 # 已退款
    CANCELED = "Canceled"                 # 已取消


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Payment:
    """
    支付聚合根 - 管理一次预订付款尝试的生命周期

    业务规则：
    1. 金额必须大于0，货币为 ISO-4217 三位字母代码
    2. provider_intent_id 只能设置一次
    3. 退款金额不能超过支付金额，且 Refunded 状态下 amount_refunded > 0
    4. paid_at / refunded_at 只设置一次，不会被清除
    5. is_active 一旦因失败/取消变为 False，不会再恢复

    状态转换方法不检查当前状态：哪些命令可以在哪些状态下执行
    由应用层 handler 决定，实体只保证自身字段始终有效。
    """

    id: Optional[int]
    reservation_id: int
    amount: Decimal
    currency: str
    status: PaymentStatus = PaymentStatus.REQUIRES_PAYMENT
    provider: str = "stripe"

    provider_intent_id: Optional[str] = None
    client_secret: Optional[str] = None  # 前端调用凭证
    provider_charge_id: Optional[str] = None

    amount_refunded: Decimal = Decimal("0")

    # 时间戳
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None

    is_active: bool = True
    last_provider_event_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def __post_init__(self):
        """初始化后验证"""
        self._validate_amount()
        self._validate_currency()
        self.currency = self.currency.upper()
        self.amount_refunded = Decimal(self.amount_refunded or 0)
        self.created_at = _ensure_utc(self.created_at) or _now()
        self.paid_at = _ensure_utc(self.paid_at)
        self.refunded_at = _ensure_utc(self.refunded_at)

    @classmethod
    def create(cls, reservation_id: int, amount: Decimal, currency: str) -> "Payment":
        """为预订创建一笔新的待支付记录"""
        return cls(
            id=None,
            reservation_id=reservation_id,
            amount=Decimal(amount),
            currency=currency,
        )

    def _validate_amount(self) -> None:
        """业务规则：金额必须大于0"""
        if self.amount is None or Decimal(self.amount) <= 0:
            raise DomainValidationException(
                f"Payment amount must be greater than 0: {self.amount}",
                field="amount",
            )
        self.amount = Decimal(self.amount)

    def _validate_currency(self) -> None:
        """业务规则：货币代码必须是3位字母"""
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(
                f"Invalid currency code: {self.currency}",
                field="currency",
            )

    def set_provider_intent(self, intent_id: str, client_secret: Optional[str] = None) -> None:
        """记录支付渠道的 PaymentIntent；已设置后不允许替换为其它 ID"""
        if not intent_id:
            raise DomainValidationException("Provider intent id is required", field="provider_intent_id")
        if self.provider_intent_id and self.provider_intent_id != intent_id:
            raise DomainValidationException(
                f"Payment already bound to intent {self.provider_intent_id}",
                field="provider_intent_id",
                details={"current": self.provider_intent_id, "requested": intent_id},
            )
        self.provider_intent_id = intent_id
        if client_secret:
            self.client_secret = client_secret

    def mark_processing(self) -> None:
        self.status = PaymentStatus.PROCESSING

    def require_action(self) -> None:
        self.status = PaymentStatus.REQUIRES_ACTION

    def mark_succeeded(self, charge_id: Optional[str]) -> None:
        """标记支付成功，清除之前的错误信息"""
        self.status = PaymentStatus.SUCCEEDED
        if charge_id:
            self.provider_charge_id = charge_id
        if self.paid_at is None:
            self.paid_at = _now()
        self.error_code = None
        self.error_message = None

    def mark_failed(self, error_code: Optional[str], error_message: Optional[str]) -> None:
        self.status = PaymentStatus.FAILED
        self.error_code = error_code
        self.error_message = error_message
        self.is_active = False

    def mark_canceled(self) -> None:
        self.status = PaymentStatus.CANCELED
        self.is_active = False

    def refund(self, amount: Decimal) -> None:
        """
        应用退款

        amount 是渠道侧累计已退金额，直接覆盖 amount_refunded（不是累加）。
        校验失败时实体保持不变。
        """
        amount = Decimal(amount)
        if amount > self.amount:
            raise DomainValidationException(
                "Refund amount cannot exceed payment amount",
                field="amount",
                details={"refund_amount": str(amount), "payment_amount": str(self.amount)},
            )
        if amount <= 0:
            raise DomainValidationException(
                f"Refund amount must be greater than 0: {amount}",
                field="amount",
            )
        self.amount_refunded = amount
        if self.refunded_at is None:
            self.refunded_at = _now()
        self.status = PaymentStatus.REFUNDED

    def update_provider_event_id(self, event_id: str) -> None:
        self.last_provider_event_id = event_id

    def has_applied_event(self, event_id: str) -> bool:
        """幂等游标：该 webhook 事件是否刚被应用过"""
        return bool(event_id) and self.last_provider_event_id == event_id
