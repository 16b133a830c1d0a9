"""
服务装配
把配置加载器、路由器、档案存储、传输层、统计和调度器组装在一起，并负责重载与关闭
"""

import logging
from dataclasses import dataclass
from functools import partial
from typing import Mapping, Optional

from .auth.persistence import JsonFileStorePersistence, StorePersistence
from .auth.store import AuthProfileStore
from .config_models import Config
from .handlers.dispatcher import Dispatcher
from .providers.base import ProviderTransport
from .providers.openai_compatible import OpenAICompatibleTransport
from .registry import ModelRegistry
from .routing.classifier import margin_agreement_confidence
from .routing.router import TierRouter
from .storage.database import Database
from .storage.stats import StatsRecorder
from .yaml_config import YAMLConfigLoader

logger = logging.getLogger(__name__)


@dataclass
class RouterServices:
    loader: YAMLConfigLoader
    router: TierRouter
    store: AuthProfileStore
    transport: ProviderTransport
    dispatcher: Dispatcher
    stats: Optional[StatsRecorder] = None
    database: Optional[Database] = None

    @property
    def config(self) -> Config:
        return self.loader.config

    @property
    def registry(self) -> ModelRegistry:
        return self.loader.registry

    def reload(self) -> None:
        """重新加载配置并整体替换；失败时抛出 ConfigurationException，旧配置保持不变"""
        self.loader.reload()
        config = self.loader.config
        self.router.update_config(
            self.loader.routing_config, self.loader.registry, _confidence_fn(config)
        )
        self.store.policy = config.cooldown
        self.store.set_requests_per_minute(self.loader.get_requests_per_minute())
        self.dispatcher.settings = config.dispatch
        if isinstance(self.transport, OpenAICompatibleTransport):
            self.transport.registry = self.loader.registry

    async def close(self) -> None:
        await self.transport.close()
        if self.database is not None:
            await self.database.close()


def _confidence_fn(config: Config):
    return partial(margin_agreement_confidence, scale=config.routing.confidence_margin_scale)


async def build_services(
    loader: Optional[YAMLConfigLoader] = None,
    transport: Optional[ProviderTransport] = None,
    persistence: Optional[StorePersistence] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> RouterServices:
    """按配置创建全部服务；配置错误在这里抛出，服务拒绝启动"""
    loader = loader or YAMLConfigLoader()
    config = loader.config

    router = TierRouter(loader.routing_config, loader.registry, _confidence_fn(config))

    store = AuthProfileStore(
        persistence=persistence or JsonFileStorePersistence(config.store.path),
        policy=config.cooldown,
        requests_per_minute=loader.get_requests_per_minute(),
    )
    loaded = await store.load()
    if config.store.import_env_keys:
        await store.import_env_profiles(loader.registry, environ)
    logger.info(f"Auth store ready: {loaded} persisted profiles, {len(store)} total")

    database = None
    stats = None
    if config.stats.enabled:
        database = Database(config.stats.database_url)
        await database.init()
        stats = StatsRecorder(database, recent_limit=config.stats.recent_limit)

    transport = transport or OpenAICompatibleTransport(loader.registry)
    dispatcher = Dispatcher(router, store, transport, settings=config.dispatch, stats=stats)

    return RouterServices(
        loader=loader,
        router=router,
        store=store,
        transport=transport,
        dispatcher=dispatcher,
        stats=stats,
        database=database,
    )
