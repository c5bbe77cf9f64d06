import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, String

from agentproof.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class Employment(Base):
    __tablename__ = "employments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    agent_id = Column(String(36), ForeignKey("agents.id"), nullable=False)
    user_wallet = Column(String(42), nullable=False)
    status = Column(String(20), nullable=False, default="active")  # active | ended
    started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    ended_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_employments_agent_status", "agent_id", "status"),
    )
