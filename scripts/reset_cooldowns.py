#!/usr/bin/env python3
"""
冷却重置脚本
把认证存储中所有冷却中或带错误标记的档案恢复为 ACTIVE，并写回存储文件
"""
import argparse
import asyncio
import sys
from pathlib import Path

# 添加项目根目录到路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dispatch_core.auth.persistence import JsonFileStorePersistence
from dispatch_core.auth.store import AuthProfileStore
from dispatch_core.utils.logger import get_logger, setup_logging
from dispatch_core.yaml_config import YAMLConfigLoader

logger = get_logger(__name__)


async def reset_cooldowns(config_path=None, store_path=None) -> int:
    loader = YAMLConfigLoader(config_path)
    path = store_path or loader.config.store.path
    store = AuthProfileStore(
        persistence=JsonFileStorePersistence(path),
        policy=loader.config.cooldown,
    )
    loaded = await store.load()
    logger.info(f"Loaded {loaded} profiles from {path}")
    return await store.reset_all_cooldowns()


def main():
    parser = argparse.ArgumentParser(description="Reset all auth profile cooldowns")
    parser.add_argument("--config", default=None, help="Path to router_config.yaml")
    parser.add_argument("--store", default=None, help="Path to the auth profile store file")
    args = parser.parse_args()

    setup_logging({"level": "INFO"})
    count = asyncio.run(reset_cooldowns(args.config, args.store))
    print(f"Reset {count} profile(s)")


if __name__ == "__main__":
    main()
