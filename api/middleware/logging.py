"""
请求/响应日志中间件

每个请求记录开始/结束、状态码与耗时。JSON 请求体仅在 DEBUG 下记录，
支付凭证字段脱敏；webhook 原始载荷从不记录。
"""
import json
import time
from typing import Any, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}
    NO_BODY_PREFIXES = ("/api/webhooks/",)
    SENSITIVE_FIELDS = {"client_secret", "payment_method_id", "token", "secret", "api_key"}

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.log_body: bool = settings.DEBUG and settings.LOG_REQUEST_BODY_ENABLE_BY_DEFAULT
        self.max_body_log_bytes: int = settings.LOG_REQUEST_BODY_MAX_BYTES

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        request_info = {"method": request.method, "path": request.url.path}
        body = await self._json_body(request)
        if body is not None:
            request_info["body"] = body
        logger.info("request_started", **request_info)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=time.perf_counter() - started,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
                **request_info,
            )
            raise

        duration = time.perf_counter() - started
        self._log_response(response, duration, request_info)
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response

    async def _json_body(self, request: Request) -> Optional[Any]:
        if not self.log_body or request.method != "POST":
            return None
        if request.url.path.startswith(self.NO_BODY_PREFIXES):
            return None
        if "application/json" not in request.headers.get("content-type", "").lower():
            return None
        raw = await request.body()
        if not raw or len(raw) > self.max_body_log_bytes:
            return None
        try:
            return self.mask(json.loads(raw))
        except ValueError:
            return None

    @classmethod
    def mask(cls, data: Any) -> Any:
        """递归屏蔽敏感字段"""
        if isinstance(data, dict):
            return {k: ("***" if k.lower() in cls.SENSITIVE_FIELDS else cls.mask(v)) for k, v in data.items()}
        if isinstance(data, list):
            return [cls.mask(v) for v in data]
        return data

    @staticmethod
    def _log_response(response: Response, duration: float, request_info: dict) -> None:
        log_data = {"status_code": response.status_code, "duration": duration, **request_info}
        if response.status_code < 400:
            logger.info("request_completed", **log_data)
        elif response.status_code < 500:
            logger.warning("request_client_error", **log_data)
        else:
            logger.error("request_server_error", **log_data)
