import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text

from agentproof.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class ProofRecord(Base):
    """One aggregation cycle for an agent's reputation proof.

    History is append-only: a later cycle (or a reconciliation of a timed-out
    job) writes a new row instead of updating an old one. The review hashes and
    monitoring windows are the values the circuit input was encoded from.
    """

    __tablename__ = "proof_records"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    agent_id = Column(String(36), ForeignKey("agents.id"), nullable=False)
    proof_id = Column(String(66), unique=True, nullable=False)
    job_id = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False)  # aggregated | failed | timed_out
    review_hashes_json = Column(Text, nullable=False, default="[]")
    uptime_json = Column(Text, nullable=False, default="[]")
    avg_exec_time_json = Column(Text, nullable=False, default="[]")
    requests_json = Column(Text, nullable=False, default="[]")
    public_signals_json = Column(Text, nullable=False, default="[]")
    relayer_tx_hash = Column(String(100), nullable=True)
    relayer_block_hash = Column(String(100), nullable=True)
    settlement_receipt_hash = Column(String(100), nullable=True)
    settlement_block_hash = Column(String(100), nullable=True)
    aggregation_id = Column(Integer, nullable=True)
    aggregation_details_json = Column(Text, nullable=False, default="{}")
    verified = Column(Boolean, nullable=False, default=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_proof_records_agent_created", "agent_id", "created_at"),
        Index("idx_proof_records_job", "job_id"),
    )
