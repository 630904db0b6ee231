"""
支付渠道配置（pydantic-settings，嵌套键以 "__" 分隔）

例如 STRIPE__SECRET_KEY、STRIPE__WEBHOOK_SECRET、RETRY__MAX、WEBHOOK__TOLERANCE_SECONDS。
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PaymentTimeouts(BaseModel):
    """Stripe SDK 调用超时（秒）；SDK 只接受单一超时，使用 total"""
    connect: float = Field(default=1.0, gt=0)
    read: float = Field(default=3.0, gt=0)
    write: float = Field(default=3.0, gt=0)
    total: float = Field(default=5.0, gt=0)


class PaymentRetry(BaseModel):
    """仅作用于可安全重放的调用（创建 intent / 查询 intent）"""
    max: int = Field(default=2, ge=0)
    base_backoff: float = Field(default=0.2, gt=0)


class WebhookSettings(BaseModel):
    # Stripe-Signature 时间戳允许的偏差
    tolerance_seconds: int = Field(default=300, gt=0)


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    # 3DS 等需要跳转的支付方式完成后的回跳地址
    return_url: str = "https://localhost/payment-complete"
    # Stripe 限制账单描述后缀最长 22 个字符
    statement_descriptor_suffix: str = Field(default="HOTEL BOOKING", max_length=22)


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
