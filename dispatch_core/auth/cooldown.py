"""
冷却策略与上游失败分类
冷却时长来自配置的策略表，状态机本身不包含任何时长常量
"""

import re
import time
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from ..exceptions.error_codes import FailureReason


class FailureScope(str, Enum):
    PROVIDER = "provider"  # 整个认证档案不可用
    MODEL = "model"  # 仅对某个模型不可用


# 各失败原因的基础冷却时间（秒）
DEFAULT_BASE_SECONDS: dict[FailureReason, float] = {
    FailureReason.AUTH: 3600,  # 认证错误: 1小时
    FailureReason.BILLING: 3600,  # 额度用尽: 1小时
    FailureReason.RATE_LIMIT: 60,  # 速率限制: 1分钟
    FailureReason.MODEL_NOT_FOUND: 600,  # 模型不可用: 10分钟
    FailureReason.SERVER_ERROR: 60,  # 服务器错误: 1分钟
    FailureReason.TIMEOUT: 30,  # 超时: 30秒
    FailureReason.CONNECTION: 30,  # 连接错误: 30秒
    FailureReason.FORMAT: 0,  # 请求格式问题与凭证无关
    FailureReason.UNKNOWN: 60,  # 未知错误: 1分钟
}

# 这些原因只影响认证档案的重试（同一档案重试）
RETRYABLE_REASONS = frozenset(
    {FailureReason.TIMEOUT, FailureReason.SERVER_ERROR, FailureReason.CONNECTION}
)


class CooldownPolicy(BaseModel):
    """冷却策略表"""

    base_seconds: dict[FailureReason, float] = Field(
        default_factory=lambda: dict(DEFAULT_BASE_SECONDS)
    )
    backoff_factor: float = 2.0  # 连续的全局失败按指数退避
    max_cooldown_seconds: float = 3600.0
    model_scoped_reasons: list[FailureReason] = Field(
        default_factory=lambda: [FailureReason.RATE_LIMIT, FailureReason.MODEL_NOT_FOUND]
    )

    def base_for(self, reason: FailureReason) -> float:
        if reason in self.base_seconds:
            return self.base_seconds[reason]
        return DEFAULT_BASE_SECONDS.get(reason, DEFAULT_BASE_SECONDS[FailureReason.UNKNOWN])

    def scope_for(self, reason: FailureReason, model: Optional[str] = None) -> FailureScope:
        if model and reason in self.model_scoped_reasons:
            return FailureScope.MODEL
        return FailureScope.PROVIDER

    def duration_for(
        self,
        reason: FailureReason,
        error_count: int = 1,
        retry_after: Optional[float] = None,
    ) -> float:
        """
        计算冷却时长

        上游明确给出等待时间时以其为准；否则 base * factor^(n-1)，均不超过上限
        """
        if retry_after is not None and retry_after > 0:
            return min(float(retry_after), self.max_cooldown_seconds)

        base = self.base_for(reason)
        exponent = max(error_count, 1) - 1
        return min(base * (self.backoff_factor ** exponent), self.max_cooldown_seconds)


class FailureClassifier:
    """把上游 HTTP 响应映射为 (失败原因, 是否可在同一档案重试, 建议等待秒数)"""

    STATUS_REASONS: dict[int, FailureReason] = {
        429: FailureReason.RATE_LIMIT,
        404: FailureReason.MODEL_NOT_FOUND,
        401: FailureReason.AUTH,
        403: FailureReason.AUTH,
        402: FailureReason.BILLING,
        504: FailureReason.TIMEOUT,
        408: FailureReason.TIMEOUT,
        400: FailureReason.FORMAT,
        422: FailureReason.FORMAT,
    }

    RATE_LIMIT_MARKERS = (
        "rate_limit",
        "rate limit",
        "too many requests",
        "quota_exceeded",
        "usage_limit",
        "limit_exceeded",
        "reached your current",
        "exhausted",
    )
    MODEL_NOT_FOUND_MARKERS = ("model_not_found", "not_found", "model not found")
    AUTH_MARKERS = ("invalid_api_key", "unauthorized", "permission_denied")
    BILLING_MARKERS = ("billing", "insufficient_balance", "payment_required", "insufficient_quota")

    RATE_LIMIT_HEADERS = (
        "retry-after",
        "x-ratelimit-reset",
        "x-ratelimit-reset-requests",
        "x-ratelimit-reset-tokens",
    )

    # 大于该值的 reset 头视为 epoch 时间戳
    EPOCH_THRESHOLD = 1_700_000_000

    WAIT_PATTERNS = (
        r"retry after (\d+(?:\.\d+)?) seconds?",
        r"try again in (\d+(?:\.\d+)?) ?s(?:econds?)?",
        r"wait (\d+(?:\.\d+)?) seconds?",
    )

    @classmethod
    def classify_http(
        cls,
        status_code: int,
        body: str = "",
        headers: Optional[Mapping[str, str]] = None,
        now: Optional[float] = None,
    ) -> tuple[FailureReason, bool, Optional[float]]:
        """
        分类上游错误响应

        Returns:
            (失败原因, 是否可重试, 建议等待秒数或 None)
        """
        now = time.time() if now is None else now
        headers = {k.lower(): v for k, v in (headers or {}).items()}
        body_lower = (body or "").lower()

        reason = cls.STATUS_REASONS.get(status_code)
        if reason is None:
            reason = FailureReason.SERVER_ERROR if status_code >= 500 else FailureReason.UNKNOWN

        if reason in (FailureReason.UNKNOWN, FailureReason.RATE_LIMIT, FailureReason.FORMAT):
            body_reason = cls._classify_body(body_lower)
            if body_reason is not None:
                reason = body_reason

        if any(h in headers for h in cls.RATE_LIMIT_HEADERS):
            reason = FailureReason.RATE_LIMIT

        retry_after = None
        if reason == FailureReason.RATE_LIMIT:
            retry_after = cls.parse_retry_after(headers, now)
            if retry_after is None:
                retry_after = cls._extract_wait_from_message(body_lower)

        return reason, reason in RETRYABLE_REASONS, retry_after

    @classmethod
    def _classify_body(cls, body_lower: str) -> Optional[FailureReason]:
        if not body_lower:
            return None
        if any(marker in body_lower for marker in cls.RATE_LIMIT_MARKERS):
            return FailureReason.RATE_LIMIT
        if any(marker in body_lower for marker in cls.MODEL_NOT_FOUND_MARKERS):
            return FailureReason.MODEL_NOT_FOUND
        if any(marker in body_lower for marker in cls.AUTH_MARKERS):
            return FailureReason.AUTH
        if any(marker in body_lower for marker in cls.BILLING_MARKERS):
            return FailureReason.BILLING
        return None

    @classmethod
    def parse_retry_after(cls, headers: Mapping[str, str], now: float) -> Optional[float]:
        """解析 retry-after / x-ratelimit-reset* 头，返回相对秒数"""
        retry_after = headers.get("retry-after")
        if retry_after:
            try:
                return max(0.0, float(retry_after))
            except ValueError:
                pass
            try:
                return max(0.0, parsedate_to_datetime(retry_after).timestamp() - now)
            except (TypeError, ValueError):
                return None

        reset = (
            headers.get("x-ratelimit-reset")
            or headers.get("x-ratelimit-reset-requests")
            or headers.get("x-ratelimit-reset-tokens")
        )
        if reset:
            match = re.match(r"^\s*(\d+(?:\.\d+)?)", reset)
            if not match:
                return None
            value = float(match.group(1))
            if value > cls.EPOCH_THRESHOLD:
                return max(0.0, value - now)
            return value
        return None

    @classmethod
    def _extract_wait_from_message(cls, body_lower: str) -> Optional[float]:
        for pattern in cls.WAIT_PATTERNS:
            match = re.search(pattern, body_lower)
            if match:
                return float(match.group(1))
        return None
