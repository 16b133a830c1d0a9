#!/usr/bin/env python3
"""
Smart Dispatch Router - 分层智能路由与多档案调度
"""

import argparse
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.admin import create_admin_router
from api.chat import create_chat_router
from api.errors import register_exception_handlers
from api.health import create_health_router
from api.models import create_models_router
from dispatch_core import __version__
from dispatch_core.providers.base import ProviderTransport
from dispatch_core.services import RouterServices, build_services
from dispatch_core.utils.logger import setup_logging
from dispatch_core.yaml_config import YAMLConfigLoader

logger = logging.getLogger(__name__)


def configure_logging(loader: YAMLConfigLoader) -> None:
    logging_config = loader.config.logging
    setup_logging(logging_config.model_dump(), log_file=logging_config.log_file)


def create_app(
    services: Optional[RouterServices] = None,
    loader: Optional[YAMLConfigLoader] = None,
    transport: Optional[ProviderTransport] = None,
) -> FastAPI:
    """
    创建应用

    Args:
        services: 预先构建的服务（测试时注入），为空则在启动阶段按配置构建
        loader: 配置加载器，为空则使用默认配置路径
        transport: 上游传输层，为空则使用 OpenAI 兼容传输
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        owns_services = app.state.services is None
        if owns_services:
            app.state.services = await build_services(loader or YAMLConfigLoader(), transport=transport)
        logger.info(
            f"Smart Dispatch Router {__version__} started with "
            f"{len(app.state.services.store)} auth profiles"
        )
        try:
            yield
        finally:
            if owns_services:
                await app.state.services.close()
                app.state.services = None
            logger.info("Smart Dispatch Router stopped")

    app = FastAPI(
        title="Smart Dispatch Router",
        description="Tier-based request routing with multi-profile failover",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    config_source = services.config if services is not None else (loader.config if loader else None)
    cors_origins = config_source.server.cors_origins if config_source else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(create_health_router())
    app.include_router(create_models_router())
    app.include_router(create_chat_router())
    app.include_router(create_admin_router())

    return app


def main():
    """主函数"""
    parser = argparse.ArgumentParser(description="Smart Dispatch Router")
    parser.add_argument("--config", default=None, help="Path to router_config.yaml")
    parser.add_argument("--host", default=None, help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to")

    args = parser.parse_args()

    loader = YAMLConfigLoader(args.config)
    configure_logging(loader)

    server = loader.config.server
    host = args.host or server.host
    port = args.port or server.port

    print(
        f"""
Smart Dispatch Router Starting...
Version: {__version__}
Config: {loader.config_path}
Server: http://{host}:{port}
"""
    )

    app = create_app(loader=loader)
    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
