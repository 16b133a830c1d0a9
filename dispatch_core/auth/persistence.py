"""
认证档案存储的持久化
整个存储作为一个 JSON 文件读写（aiofiles），写入先落临时文件再原子替换；
快照带有递增的代号，旧代号的快照直接丢弃（后写者胜）
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Union

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from ..exceptions import BaseRouterException, ErrorCode
from .models import Profile

logger = logging.getLogger(__name__)

STORE_FORMAT_VERSION = 1


class StorePersistence(ABC):
    """持久化接口：整体加载 / 整体保存"""

    @abstractmethod
    async def load(self) -> list[Profile]:
        ...

    @abstractmethod
    async def save(self, snapshot: list[dict[str, Any]], generation: int) -> bool:
        """
        保存快照

        Returns:
            True 表示已写入；False 表示快照过旧被丢弃
        """


class JsonFileStorePersistence(StorePersistence):
    """基于 JSON 文件的持久化"""

    def __init__(self, file_path: Union[str, Path]):
        self.file_path = Path(file_path)
        self._lock = asyncio.Lock()
        self._last_generation = -1

    async def load(self) -> list[Profile]:
        if not await aiofiles.os.path.exists(self.file_path):
            logger.info(f"Auth store file not found, starting empty: {self.file_path}")
            return []

        try:
            async with aiofiles.open(self.file_path, "r", encoding="utf-8") as f:
                content = await f.read()
        except OSError as e:
            raise BaseRouterException(
                ErrorCode.STORE_LOAD_FAILED, f"Cannot read {self.file_path}: {e}", cause=e
            )

        if not content.strip():
            return []

        try:
            data = json.loads(content)
            raw_profiles = data.get("profiles", {})
            if isinstance(raw_profiles, dict):
                raw_profiles = list(raw_profiles.values())
            profiles = [Profile.model_validate(item) for item in raw_profiles]
        except (json.JSONDecodeError, AttributeError, ValidationError) as e:
            # 不把损坏的文件当作空存储，避免下一次保存覆盖掉凭证
            raise BaseRouterException(
                ErrorCode.STORE_LOAD_FAILED, f"Invalid auth store file {self.file_path}: {e}", cause=e
            )

        logger.info(f"📖 AUTH STORE: loaded {len(profiles)} profiles from {self.file_path}")
        return profiles

    async def save(self, snapshot: list[dict[str, Any]], generation: int) -> bool:
        async with self._lock:
            if generation <= self._last_generation:
                logger.debug(
                    f"AUTH STORE: dropping stale snapshot #{generation} (latest #{self._last_generation})"
                )
                return False

            payload = {
                "version": STORE_FORMAT_VERSION,
                "generation": generation,
                "saved_at": time.time(),
                "profiles": {item["id"]: item for item in snapshot},
            }
            content = json.dumps(payload, indent=2, ensure_ascii=False)
            tmp_path = self.file_path.with_name(self.file_path.name + ".tmp")

            try:
                await aiofiles.os.makedirs(self.file_path.parent, exist_ok=True)
                async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                    await f.write(content)
                    await f.flush()
                await aiofiles.os.replace(tmp_path, self.file_path)
            except OSError as e:
                raise BaseRouterException(
                    ErrorCode.STORE_SAVE_FAILED, f"Cannot write {self.file_path}: {e}", cause=e
                )

            self._last_generation = generation
            logger.debug(f"💾 AUTH STORE: saved snapshot #{generation} ({len(snapshot)} profiles)")
            return True
