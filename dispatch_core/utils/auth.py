# -*- coding: utf-8 -*-
"""
简单的管理员认证模块
"""

import secrets
from typing import Optional

from fastapi import Header, HTTPException, Query, Request, status


def verify_admin_token(
    request: Request,
    admin_token: Optional[str] = Query(None),
    authorization: Optional[str] = Header(None),
) -> Optional[str]:
    """
    验证管理员token

    token 可以来自 Authorization: Bearer 头或 admin_token 查询参数；
    期望值来自配置 auth.admin.admin_token（可被 ADMIN_TOKEN 环境变量覆盖）

    Raises:
        HTTPException: 认证失败
    """
    admin_config = request.app.state.services.config.auth.admin
    if not admin_config.enabled:
        return None

    expected_token = admin_config.admin_token
    if not expected_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin API requires an admin token to be configured",
        )

    provided = admin_token
    if not provided and authorization and authorization.lower().startswith("bearer "):
        provided = authorization[7:].strip()

    if not provided:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin token required"
        )

    if not secrets.compare_digest(provided, expected_token):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin token"
        )

    return provided
