"""
API依赖项 - 组装应用层对象、调用方身份与服务间认证
"""
from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, Header

from application.handlers.confirm_payment import ConfirmPaymentHandler
from application.handlers.create_payment_intent import CreatePaymentIntentHandler
from application.handlers.refund_payment import RefundPaymentHandler
from application.ports.payment_gateway import PaymentGateway
from application.ports.reservations import ReservationService
from application.services.payment_query_service import PaymentQueryService
from application.services.webhook_reconciler import WebhookReconciler
from core.config import settings
from core.exceptions import ForbiddenException, UnauthorizedException
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.external.api_clients.reservations import ReservationsClient
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


# 进程级单例：外部客户端复用连接，在应用关闭时释放
_gateway: Optional[PaymentGateway] = None
_reservations: Optional[ReservationsClient] = None


def get_uow_factory() -> Callable[..., AbstractUnitOfWork]:
    return SQLAlchemyUnitOfWork


def get_gateway() -> PaymentGateway:
    global _gateway
    if _gateway is None:
        _gateway = get_payment_gateway("stripe")
    return _gateway


def get_reservations() -> ReservationService:
    global _reservations
    if _reservations is None:
        _reservations = ReservationsClient()
    return _reservations


async def shutdown_clients() -> None:
    """关闭外部客户端（应用生命周期结束时调用）"""
    global _gateway, _reservations
    if _reservations is not None:
        await _reservations.close()
        _reservations = None
    if _gateway is not None:
        close = getattr(_gateway, "aclose", None)
        if callable(close):
            await close()
        _gateway = None


def get_create_intent_handler(
    uow_factory=Depends(get_uow_factory),
    gateway: PaymentGateway = Depends(get_gateway),
    reservations: ReservationService = Depends(get_reservations),
) -> CreatePaymentIntentHandler:
    return CreatePaymentIntentHandler(uow_factory=uow_factory, gateway=gateway, reservations=reservations)


def get_confirm_handler(
    uow_factory=Depends(get_uow_factory),
    gateway: PaymentGateway = Depends(get_gateway),
    reservations: ReservationService = Depends(get_reservations),
) -> ConfirmPaymentHandler:
    return ConfirmPaymentHandler(uow_factory=uow_factory, gateway=gateway, reservations=reservations)


def get_refund_handler(
    uow_factory=Depends(get_uow_factory),
    gateway: PaymentGateway = Depends(get_gateway),
    reservations: ReservationService = Depends(get_reservations),
) -> RefundPaymentHandler:
    return RefundPaymentHandler(uow_factory=uow_factory, gateway=gateway, reservations=reservations)


def get_webhook_reconciler(
    uow_factory=Depends(get_uow_factory),
    gateway: PaymentGateway = Depends(get_gateway),
    reservations: ReservationService = Depends(get_reservations),
) -> WebhookReconciler:
    return WebhookReconciler(uow_factory=uow_factory, gateway=gateway, reservations=reservations)


def get_query_service(uow_factory=Depends(get_uow_factory)) -> PaymentQueryService:
    return PaymentQueryService(uow_factory=uow_factory)


@dataclass(frozen=True)
class Caller:
    """网关注入的调用方身份（X-User-Id / X-User-Role）"""
    user_id: Optional[int]
    is_admin: bool = False

    def can_access(self, owner_id: int) -> bool:
        return self.is_admin or (self.user_id is not None and self.user_id == owner_id)


async def get_caller(
    x_user_id: Optional[int] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Caller:
    """获取当前调用方；既无用户ID又非管理员时拒绝"""
    is_admin = (x_user_role or "").strip().lower() == "admin"
    if x_user_id is None and not is_admin:
        raise UnauthorizedException("Missing caller identity")
    return Caller(user_id=x_user_id, is_admin=is_admin)


async def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_admin:
        raise ForbiddenException("Admin role required")
    return caller


async def require_service_token(x_service_token: Optional[str] = Header(default=None)) -> None:
    """内部接口的服务间认证；未配置令牌时放行（开发环境）"""
    expected = settings.reservations.service_token
    if not expected:
        return
    if not x_service_token or not hmac.compare_digest(x_service_token, expected):
        raise UnauthorizedException("Invalid service token")
