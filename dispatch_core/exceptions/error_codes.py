"""
统一错误码体系
定义路由与调度系统的标准化错误码
"""

from enum import Enum


class ErrorCode(Enum):
    """系统错误码枚举"""

    # 配置错误 (1100-1199)
    CONFIG_INVALID = "E1101"
    CONFIG_PARSE_ERROR = "E1103"
    TIER_BOUNDARIES_INVALID = "E1104"
    EMPTY_TIER_MODELS = "E1105"
    UNKNOWN_CONFIG_IDENTIFIER = "E1106"

    # 路由错误 (1200-1299)
    MODEL_NOT_FOUND = "E1200"
    CHAIN_EXHAUSTED = "E1207"

    # 认证档案错误 (1300-1399)
    PROFILE_NOT_FOUND = "E1300"
    PROFILE_PROVIDER_MISMATCH = "E1301"

    # 上游调用错误 (1500-1599)
    PROVIDER_CALL_FAILED = "E1500"

    # 存储错误 (1800-1899)
    STORE_LOAD_FAILED = "E1800"
    STORE_SAVE_FAILED = "E1801"


# 错误码到消息的映射
ERROR_MESSAGES = {
    ErrorCode.CONFIG_INVALID: "配置无效",
    ErrorCode.CONFIG_PARSE_ERROR: "配置解析错误",
    ErrorCode.TIER_BOUNDARIES_INVALID: "层级边界配置无效",
    ErrorCode.EMPTY_TIER_MODELS: "层级模型列表为空",
    ErrorCode.UNKNOWN_CONFIG_IDENTIFIER: "配置中存在未知的模型或提供商",
    ErrorCode.MODEL_NOT_FOUND: "模型未找到",
    ErrorCode.CHAIN_EXHAUSTED: "所有路由和认证档案均不可用",
    ErrorCode.PROFILE_NOT_FOUND: "认证档案未找到",
    ErrorCode.PROFILE_PROVIDER_MISMATCH: "认证档案与目标提供商不匹配",
    ErrorCode.PROVIDER_CALL_FAILED: "上游调用失败",
    ErrorCode.STORE_LOAD_FAILED: "认证存储加载失败",
    ErrorCode.STORE_SAVE_FAILED: "认证存储保存失败",
}


def get_error_message(error_code: ErrorCode, default: str = "未知错误") -> str:
    """获取错误码对应的消息"""
    return ERROR_MESSAGES.get(error_code, default)


class FailureReason(str, Enum):
    """上游失败原因，用于决定冷却时长和作用范围"""

    AUTH = "auth"  # 401, 403 - 认证错误
    RATE_LIMIT = "rate_limit"  # 429 - 速率限制
    BILLING = "billing"  # 402 - 额度/计费问题
    TIMEOUT = "timeout"  # 408, 504 或本地超时
    SERVER_ERROR = "server_error"  # 500+ - 服务器错误
    CONNECTION = "connection"  # 连接错误
    MODEL_NOT_FOUND = "model_not_found"  # 404 - 模型不可用
    FORMAT = "format"  # 400 - 请求格式问题
    UNKNOWN = "unknown"  # 未知错误
