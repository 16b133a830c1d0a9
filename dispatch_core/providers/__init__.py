"""
上游传输层
"""

from .base import ProviderResponse, ProviderTransport
from .openai_compatible import OpenAICompatibleTransport

__all__ = ["OpenAICompatibleTransport", "ProviderResponse", "ProviderTransport"]
