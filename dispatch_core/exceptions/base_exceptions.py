"""
统一异常基类
定义所有系统异常的基础结构
"""

import traceback
from datetime import datetime
from typing import Any, Optional

from .error_codes import ErrorCode, FailureReason, get_error_message


class BaseRouterException(Exception):
    """路由器基础异常类"""

    def __init__(
        self,
        error_code: ErrorCode,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        self.error_code = error_code
        self.message = message or get_error_message(error_code)
        self.details = details or {}
        self.cause = cause
        self.context = context or {}
        self.timestamp = datetime.now()
        self.traceback_str = traceback.format_exc() if cause else None

        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """转换为字典格式"""
        return {
            "error_code": self.error_code.value,
            "message": self.message,
            "details": self.details,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(error_code={self.error_code.value}, message='{self.message}')"


class ConfigurationException(BaseRouterException):
    """配置相关异常 - 加载阶段致命，路由拒绝启动"""

    def __init__(
        self,
        error_code: ErrorCode,
        message: Optional[str] = None,
        config_path: Optional[str] = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", None) or {}
        if config_path:
            details["config_path"] = config_path

        super().__init__(error_code, message, details, **kwargs)


class RoutingException(BaseRouterException):
    """路由相关异常"""

    def __init__(
        self,
        error_code: ErrorCode,
        message: Optional[str] = None,
        model: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if model:
            details["model"] = model

        super().__init__(error_code, message, details, **kwargs)


class ProfileException(BaseRouterException):
    """认证档案相关异常"""

    def __init__(
        self,
        error_code: ErrorCode,
        message: Optional[str] = None,
        profile_id: Optional[str] = None,
        provider: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if profile_id:
            details["profile_id"] = profile_id
        if provider:
            details["provider"] = provider

        super().__init__(error_code, message, details, **kwargs)


class ProviderCallError(BaseRouterException):
    """上游调用失败 - 由传输层抛出，调度器据此决定重试或冷却"""

    def __init__(
        self,
        reason: FailureReason,
        message: Optional[str] = None,
        retryable: bool = False,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        provider: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        details["reason"] = reason.value
        details["retryable"] = retryable
        if status_code is not None:
            details["status_code"] = status_code
        if retry_after is not None:
            details["retry_after"] = retry_after
        if provider:
            details["provider"] = provider

        self.reason = reason
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after = retry_after
        self.provider = provider

        super().__init__(ErrorCode.PROVIDER_CALL_FAILED, message, details, **kwargs)


class ChainExhaustedError(RoutingException):
    """所有路由均已耗尽 - 携带完整的尝试历史"""

    def __init__(
        self,
        attempts: list,
        decision: Any = None,
        retry_after: Optional[float] = None,
        message: Optional[str] = None,
    ):
        self.attempts = list(attempts)
        self.decision = decision
        self.retry_after = retry_after

        details: dict[str, Any] = {
            "attempts": [
                a.to_dict() if hasattr(a, "to_dict") else a for a in self.attempts
            ],
        }
        if retry_after:
            details["retry_after"] = retry_after
        if decision is not None:
            details["tier"] = decision.scoring.tier.value

        super().__init__(ErrorCode.CHAIN_EXHAUSTED, message, details=details)
