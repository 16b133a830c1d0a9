"""
数据库连接和会话管理
"""

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./data/smart_dispatch.db"


class Database:
    """异步数据库引擎与会话工厂"""

    def __init__(self, database_url: Optional[str] = None, echo: bool = False):
        self.database_url = database_url or os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)

        if "sqlite" in self.database_url:
            # SQLite特殊配置
            self.engine = create_async_engine(
                self.database_url,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
                echo=echo,
            )
        else:
            self.engine = create_async_engine(
                self.database_url, pool_pre_ping=True, echo=echo
            )

        self.session_maker = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    def _ensure_sqlite_dir(self) -> None:
        prefix = "sqlite+aiosqlite:///"
        if not self.database_url.startswith(prefix):
            return
        path = self.database_url[len(prefix):]
        if path and path != ":memory:":
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)

    async def init(self) -> None:
        """创建表结构"""
        logger.info("正在初始化数据库...")
        self._ensure_sqlite_dir()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("数据库初始化完成")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """获取数据库会话上下文管理器"""
        async with self.session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        logger.info("正在关闭数据库连接...")
        await self.engine.dispose()
