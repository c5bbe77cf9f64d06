import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text

from agentproof.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class Review(Base):
    """A user review of an agent. Rows are never updated after insert."""

    __tablename__ = "reviews"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    agent_id = Column(String(36), ForeignKey("agents.id"), nullable=False)
    reviewer_wallet = Column(String(42), default="")
    rating = Column(Integer, nullable=False)  # 1..5
    content = Column(Text, nullable=False, default="")
    content_hash = Column(String(66), nullable=False)  # 0x + keccak256 hex
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_reviews_agent_created", "agent_id", "created_at"),
    )
