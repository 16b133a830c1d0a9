"""
Request log data model
请求日志数据模型
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class RequestLog(Base):
    """请求日志表，每个完成的请求一行"""

    __tablename__ = "request_logs"

    id = Column(Integer, primary_key=True)
    request_id = Column(String(50), index=True)  # 请求唯一ID

    # 路由决策信息
    tier = Column(String(20))
    total_score = Column(Float)
    confidence = Column(Float)
    requested_model = Column(String(200))
    routing_reason = Column(Text)

    # 实际使用的路由
    provider = Column(String(50), index=True)
    model = Column(String(200))
    profile_id = Column(String(100))
    fallback_used = Column(Boolean, default=False)

    # 结果状态
    status = Column(String(20))  # success, exhausted
    error_code = Column(String(20))
    latency_ms = Column(Float)
    attempt_count = Column(Integer, default=0)
    attempts = Column(JSON)  # 完整尝试历史

    created_at = Column(DateTime, default=func.now())

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "tier": self.tier,
            "total_score": self.total_score,
            "confidence": self.confidence,
            "requested_model": self.requested_model,
            "routing_reason": self.routing_reason,
            "provider": self.provider,
            "model": self.model,
            "profile_id": self.profile_id,
            "fallback_used": self.fallback_used,
            "status": self.status,
            "error_code": self.error_code,
            "latency_ms": self.latency_ms,
            "attempt_count": self.attempt_count,
            "attempts": self.attempts or [],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<RequestLog(id='{self.request_id}', status='{self.status}')>"
