"""Usage log entries written after each reading dispatch."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.sql import func

from zhanwen_admin.db.database import Base


class UsageLog(Base):
    """One dispatch outcome: which model answered, tokens and latency."""

    __tablename__ = "usage_logs"

    log_id = Column(Integer, primary_key=True, autoincrement=True)
    model_id = Column(Integer, ForeignKey("model_configs.model_id", ondelete="SET NULL"))
    model_name = Column(String(100))
    provider_name = Column(String(50))
    status = Column(String(20), nullable=False)  # success, failed
    tokens_used = Column(Integer)
    response_time_ms = Column(Integer)
    upstream_request_id = Column(String(200))
    output_language = Column(String(20))
    error_message = Column(Text)
    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_usage_status_time", "status", "created_at"),
        Index("idx_usage_model_time", "model_id", "created_at"),
    )
