"""
内部服务 HTTP 客户端基类

基于 httpx.AsyncClient：
- 瞬时错误（超时/网络/429/5xx）由 tenacity 指数退避重试，429 优先遵循 Retry-After
- 其余错误状态映射为 APIError 子类，调用方按类型区分处理
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, Optional, Union

import httpx
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.logging_config import get_logger


logger = get_logger(__name__)

RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


@dataclass
class APIResponse:
    """下游响应快照"""
    status_code: int
    headers: Dict[str, str]
    data: Any
    raw_content: bytes = b""
    elapsed_ms: float = 0.0
    request_id: Optional[str] = None

    @classmethod
    def from_httpx(cls, response: httpx.Response, elapsed_ms: float) -> "APIResponse":
        data = None
        if "application/json" in response.headers.get("content-type", ""):
            try:
                data = response.json()
            except ValueError:
                data = None
        return cls(
            status_code=response.status_code,
            headers=dict(response.headers),
            data=data,
            raw_content=response.content,
            elapsed_ms=elapsed_ms,
            request_id=response.headers.get("x-request-id"),
        )

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    def json(self) -> Any:
        if self.data is not None:
            return self.data
        return json.loads(self.raw_content)

    def error_message(self) -> str:
        if isinstance(self.data, dict):
            for key in ("message", "error", "detail"):
                if self.data.get(key):
                    return str(self.data[key])
        return f"API request failed with status {self.status_code}"


class APIError(Exception):
    """下游调用失败"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[APIResponse] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response
        self.request_id = response.request_id if response else None

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.request_id:
            parts.append(f"Request ID: {self.request_id}")
        return " | ".join(parts)


class AuthenticationError(APIError):
    """401/403"""


class NotFoundError(APIError):
    """404"""


class ServerError(APIError):
    """5xx"""


class RetryableAPIError(APIError):
    """瞬时错误，仅在重试循环内部使用"""

    def __init__(self, response: APIResponse, retry_after: Optional[float] = None):
        super().__init__(
            f"Transient API error with status {response.status_code}",
            status_code=response.status_code,
            response=response,
        )
        self.retry_after = retry_after


_ERROR_BY_STATUS = {401: AuthenticationError, 403: AuthenticationError, 404: NotFoundError}


def error_for(response: APIResponse) -> APIError:
    """按状态码构造对应的 APIError 子类"""
    status = response.status_code
    error_class = _ERROR_BY_STATUS.get(status) or (ServerError if status >= 500 else APIError)
    return error_class(response.error_message(), status_code=status, response=response)


def _retry_after(response: APIResponse) -> Optional[float]:
    if response.status_code != 429:
        return None
    try:
        return float(response.headers.get("retry-after") or 0) or None
    except ValueError:
        return None


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "api_request_retry",
        attempt=retry_state.attempt_number,
        error=str(exc) if exc else None,
    )


class BaseAPIClient:
    """
    REST API客户端基类，子类实现具体接口

    Args:
        base_url: 服务基础URL
        timeout: 单次请求超时（秒）
        max_retries: 瞬时错误的最大重试次数
        retry_delay: 指数退避的基准间隔（秒）
        headers: 默认请求头
        transport: 自定义 httpx 传输层（测试时注入 MockTransport）
    """

    user_agent = "reservation-payments/1.0"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.default_headers = {
            "Accept": "application/json",
            "User-Agent": self.user_agent,
            **(headers or {}),
        }
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._backoff = wait_exponential(multiplier=retry_delay, min=retry_delay, max=retry_delay * 8)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _build_url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _wait(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = getattr(exc, "retry_after", None)
        if retry_after:
            return min(retry_after, self.retry_delay * 8)
        return self._backoff(retry_state)

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Union[Dict[str, Any], BaseModel]] = None,
        headers: Optional[Dict[str, str]] = None,
        retry: bool = True,
    ) -> APIResponse:
        """
        发送请求；重试耗尽或非瞬时错误时抛出 APIError 子类

        retry=False 时只发送一次（用于不可安全重放的 POST）
        """
        url = self._build_url(endpoint)
        request_headers = {**self.default_headers, **(headers or {})}
        if isinstance(json_data, BaseModel):
            json_data = json_data.model_dump(mode="json", exclude_unset=True)

        async def send() -> APIResponse:
            started = perf_counter()
            response = await self.client.request(
                method, url, params=params, json=json_data, headers=request_headers
            )
            api_response = APIResponse.from_httpx(response, (perf_counter() - started) * 1000)
            logger.debug(
                "api_response",
                method=method,
                url=url,
                status_code=api_response.status_code,
                elapsed_ms=round(api_response.elapsed_ms, 2),
            )
            if api_response.status_code in RETRY_STATUS_CODES:
                raise RetryableAPIError(api_response, retry_after=_retry_after(api_response))
            if api_response.is_error:
                raise error_for(api_response)
            return api_response

        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.max_retries + 1 if retry else 1),
            wait=self._wait,
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, RetryableAPIError)),
            before_sleep=_log_retry,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await send()
        except RetryableAPIError as exc:
            # 重试耗尽，按最后一次响应的状态码映射
            raise error_for(exc.response) from exc
        except APIError:
            raise
        except httpx.TimeoutException as exc:
            raise APIError(f"Request timeout after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            logger.error("api_request_failed", method=method, url=url, error=str(exc))
            raise APIError(f"Network error: {exc}") from exc

    async def get(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request("GET", endpoint, **kwargs)

    async def post(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request("POST", endpoint, **kwargs)
