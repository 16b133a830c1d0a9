"""
API 依赖注入
"""

from fastapi import Request

from dispatch_core.services import RouterServices


def get_services(request: Request) -> RouterServices:
    """应用生命周期内创建的服务集合"""
    return request.app.state.services
