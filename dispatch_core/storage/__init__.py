"""
请求统计存储
"""

from .database import Database
from .models import Base, RequestLog
from .stats import RequestStats, StatsRecorder

__all__ = ["Base", "Database", "RequestLog", "RequestStats", "StatsRecorder"]
