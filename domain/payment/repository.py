"""
支付仓储接口 - 定义支付数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Payment


class PaymentRepository(ABC):
    """支付仓储抽象接口 - 只定义能做什么，不管怎么做

    事务提交由 Unit of Work 负责，仓储只负责读取与写入会话。
    """

    @abstractmethod
    async def add(self, payment: Payment) -> Payment:
        """新增支付记录，返回带有持久化ID的实体"""
        pass

    @abstractmethod
    async def get_by_id(self, payment_id: int) -> Optional[Payment]:
        """根据ID获取支付"""
        pass

    @abstractmethod
    async def list_by_reservation(self, reservation_id: int) -> List[Payment]:
        """获取预订下的全部支付记录（按创建时间倒序）"""
        pass

    @abstractmethod
    async def get_by_provider_intent_id(self, intent_id: str) -> Optional[Payment]:
        """根据支付渠道 PaymentIntent ID 获取支付"""
        pass

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        """把实体的可变字段写回存储"""
        pass
