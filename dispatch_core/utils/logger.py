"""日志系统模块 - 控制台 + 轮换文件，文件可选 JSON 格式，内存保留最近的结构化日志"""

import json
import logging
import logging.handlers
import sys
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Optional, Union

from pythonjsonlogger.json import JsonFormatter

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "asyncio", "aiosqlite", "uvicorn.access")


@dataclass
class LogEntry:
    """结构化日志条目"""

    timestamp: str
    level: str
    logger_name: str
    message: str
    module: Optional[str] = None
    function: Optional[str] = None
    line_number: Optional[int] = None
    exception_info: Optional[str] = None

    @classmethod
    def from_record(cls, record: logging.LogRecord) -> "LogEntry":
        return cls(
            timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            level=record.levelname,
            logger_name=record.name,
            message=record.getMessage(),
            module=record.module,
            function=record.funcName,
            line_number=record.lineno,
            exception_info=str(record.exc_info[1]) if record.exc_info else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """转换为字典格式"""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def to_json(self) -> str:
        """转换为JSON格式"""
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)


class RecentLogHandler(logging.Handler):
    """在内存中保留最近的日志条目，供管理接口查看"""

    def __init__(self, capacity: int = 1000, level: int = logging.INFO):
        super().__init__(level)
        self._entries: deque = deque(maxlen=capacity)
        self._entries_lock = Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = LogEntry.from_record(record)
        except Exception:
            self.handleError(record)
            return
        with self._entries_lock:
            self._entries.append(entry)

    def get_entries(self, limit: int = 100, level: Optional[str] = None) -> list[LogEntry]:
        with self._entries_lock:
            entries = list(self._entries)
        if level:
            threshold = logging.getLevelName(level.upper())
            if isinstance(threshold, int):
                entries = [e for e in entries if logging.getLevelName(e.level) >= threshold]
        return entries[-limit:]


_recent_handler: Optional[RecentLogHandler] = None


def setup_logging(
    config: Optional[dict[str, Any]] = None,
    log_file: Optional[Union[str, Path]] = None,
) -> RecentLogHandler:
    """
    设置全局日志系统

    Args:
        config: 日志配置字典（level, format, max_file_size, backup_count）
        log_file: 日志文件路径，None 表示只输出到控制台

    Returns:
        内存日志处理器
    """
    global _recent_handler

    config = config or {}
    log_level = str(config.get("level", "INFO")).upper()
    log_format = config.get("format", "text")

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    handlers[0].setFormatter(logging.Formatter(TEXT_FORMAT))

    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_path,
                maxBytes=config.get("max_file_size", 50 * 1024 * 1024),
                backupCount=config.get("backup_count", 5),
                encoding="utf-8",
            )
            if log_format == "json":
                file_handler.setFormatter(JsonFormatter(JSON_FORMAT))
            else:
                file_handler.setFormatter(logging.Formatter(TEXT_FORMAT))
            handlers.append(file_handler)
        except OSError as e:
            print(f"Failed to setup file logging: {e}", file=sys.stderr)

    _recent_handler = RecentLogHandler()
    handlers.append(_recent_handler)

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        handlers=handlers,
        force=True,  # 覆盖现有配置
    )

    # 禁用第三方库的噪音日志
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return _recent_handler


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "smart-dispatch-router")


def get_recent_logs(limit: int = 100, level: Optional[str] = None) -> list[dict[str, Any]]:
    """最近的日志条目；日志系统未初始化时返回空列表"""
    if _recent_handler is None:
        return []
    return [entry.to_dict() for entry in _recent_handler.get_entries(limit, level)]
