"""
统一异常处理模块
"""

from .base_exceptions import (
    BaseRouterException,
    ChainExhaustedError,
    ConfigurationException,
    ProfileException,
    ProviderCallError,
    RoutingException,
)
from .error_codes import ErrorCode, FailureReason, get_error_message

__all__ = [
    # 错误码
    "ErrorCode",
    "FailureReason",
    "get_error_message",
    # 异常类
    "BaseRouterException",
    "ConfigurationException",
    "RoutingException",
    "ProfileException",
    "ProviderCallError",
    "ChainExhaustedError",
]
