import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, String, Text

from agentproof.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class Agent(Base):
    __tablename__ = "agents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, default="")
    owner_wallet = Column(String(42), default="")  # Ethereum address of the creator
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_agents_status", "status"),
    )
