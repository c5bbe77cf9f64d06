import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, String

from agentproof.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class MonitoringSample(Base):
    __tablename__ = "monitoring_samples"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    agent_id = Column(String(36), ForeignKey("agents.id"), nullable=False)
    uptime_hours = Column(Float, nullable=False, default=0.0)
    avg_exec_time_ms = Column(Float, nullable=False, default=0.0)
    request_count = Column(Integer, nullable=False, default=0)
    recorded_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_monitoring_agent_recorded", "agent_id", "recorded_at"),
    )
