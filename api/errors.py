"""
统一异常到 HTTP 响应的映射
"""

import logging
import math

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dispatch_core.exceptions import (
    BaseRouterException,
    ChainExhaustedError,
    ConfigurationException,
    ErrorCode,
    ProfileException,
    RoutingException,
)

logger = logging.getLogger(__name__)

# 错误码 -> HTTP 状态码
STATUS_BY_CODE = {
    ErrorCode.MODEL_NOT_FOUND: 404,
    ErrorCode.PROFILE_NOT_FOUND: 400,
    ErrorCode.PROFILE_PROVIDER_MISMATCH: 400,
}

# 客户端可见的错误类型
ERROR_TYPES = {
    ErrorCode.MODEL_NOT_FOUND: "model_not_found",
    ErrorCode.PROFILE_NOT_FOUND: "profile_not_found",
    ErrorCode.PROFILE_PROVIDER_MISMATCH: "profile_provider_mismatch",
    ErrorCode.CHAIN_EXHAUSTED: "chain_exhausted",
}


def error_body(exc: BaseRouterException) -> dict:
    return {
        "error": {
            "type": ERROR_TYPES.get(exc.error_code, exc.error_code.name.lower()),
            "code": exc.error_code.value,
            "message": exc.message,
            "details": exc.details,
        }
    }


async def chain_exhausted_handler(request: Request, exc: ChainExhaustedError) -> JSONResponse:
    headers = {}
    if exc.retry_after:
        # 所有档案都在冷却中：429 并告知最早恢复时间
        headers["Retry-After"] = str(max(1, math.ceil(exc.retry_after)))
        status_code = 429
    else:
        status_code = 503
    return JSONResponse(status_code=status_code, content=error_body(exc), headers=headers)


async def router_exception_handler(request: Request, exc: BaseRouterException) -> JSONResponse:
    if isinstance(exc, ConfigurationException):
        logger.error(f"Configuration error while serving {request.url.path}: {exc}")
        status_code = 500
    else:
        status_code = STATUS_BY_CODE.get(exc.error_code, 502)
    return JSONResponse(status_code=status_code, content=error_body(exc))


def register_exception_handlers(app: FastAPI) -> None:
    """注册路由器异常处理器"""
    app.add_exception_handler(ChainExhaustedError, chain_exhausted_handler)
    app.add_exception_handler(RoutingException, router_exception_handler)
    app.add_exception_handler(ProfileException, router_exception_handler)
    app.add_exception_handler(BaseRouterException, router_exception_handler)
