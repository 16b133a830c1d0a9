"""
认证档案模块：档案模型、冷却策略、存储与持久化
"""

from .cooldown import CooldownPolicy, FailureClassifier, FailureScope
from .models import (
    ApiKeyCredential,
    FailureReason,
    OAuthCredential,
    Profile,
    ProfileState,
    TokenCredential,
    UsageStats,
    build_profile_id,
)
from .persistence import JsonFileStorePersistence, StorePersistence
from .store import AuthProfileStore

__all__ = [
    "ApiKeyCredential",
    "AuthProfileStore",
    "CooldownPolicy",
    "FailureClassifier",
    "FailureReason",
    "FailureScope",
    "JsonFileStorePersistence",
    "OAuthCredential",
    "Profile",
    "ProfileState",
    "StorePersistence",
    "TokenCredential",
    "UsageStats",
    "build_profile_id",
]
