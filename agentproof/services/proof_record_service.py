import json
import logging
import time
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agentproof.core.hashing import generate_proof_id
from agentproof.models.proof import ProofRecord
from agentproof.schemas.proof import EncodingSnapshot
from agentproof.services.aggregation_service import AggregationOutcome, AggregationStatus

logger = logging.getLogger(__name__)


async def record_outcome(
    db: AsyncSession,
    snapshot: EncodingSnapshot,
    outcome: AggregationOutcome,
    public_signals: list[str] | None = None,
    proof_id: str | None = None,
) -> ProofRecord:
    """Persist one aggregation cycle.

    Timed-out and failed cycles are stored too, with ``verified=False``, so the
    history shows every attempt.
    """
    now = datetime.now(timezone.utc)
    proof_id = proof_id or generate_proof_id(
        snapshot.agent_id, int(time.time() * 1000), uuid.uuid4().hex[:8]
    )
    verified = outcome.status is AggregationStatus.AGGREGATED

    record = ProofRecord(
        agent_id=snapshot.agent_id,
        proof_id=proof_id,
        job_id=outcome.job_id,
        status=outcome.status.value,
        review_hashes_json=json.dumps(snapshot.review_hashes),
        uptime_json=json.dumps(snapshot.uptime_hours),
        avg_exec_time_json=json.dumps(snapshot.avg_exec_time_ms),
        requests_json=json.dumps(snapshot.request_counts),
        public_signals_json=json.dumps(public_signals or []),
        relayer_tx_hash=outcome.tx_hash,
        relayer_block_hash=outcome.block_hash,
        settlement_receipt_hash=outcome.receipt_hash,
        settlement_block_hash=outcome.receipt_block_hash,
        aggregation_id=outcome.aggregation_id,
        aggregation_details_json=json.dumps(outcome.aggregation_snapshot() if verified else {}),
        verified=verified,
        verified_at=now if verified else None,
    )
    db.add(record)
    await db.commit()
    await db.refresh(record)

    logger.info(
        "Proof record %s saved for agent %s (status=%s, job=%s)",
        record.proof_id, record.agent_id, record.status, record.job_id,
    )
    return record


async def list_proofs(db: AsyncSession, agent_id: str, limit: int = 50) -> list[ProofRecord]:
    """Proof history for an agent, newest first."""
    result = await db.execute(
        select(ProofRecord)
        .where(ProofRecord.agent_id == agent_id)
        .order_by(ProofRecord.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def latest_for_job(db: AsyncSession, job_id: str) -> ProofRecord | None:
    result = await db.execute(
        select(ProofRecord)
        .where(ProofRecord.job_id == job_id)
        .order_by(ProofRecord.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


def snapshot_from_record(record: ProofRecord) -> EncodingSnapshot:
    """Rebuild the encoding-time snapshot stored on an earlier record."""
    return EncodingSnapshot(
        agent_id=record.agent_id,
        review_hashes=json.loads(record.review_hashes_json or "[]"),
        uptime_hours=json.loads(record.uptime_json or "[]"),
        avg_exec_time_ms=json.loads(record.avg_exec_time_json or "[]"),
        request_counts=json.loads(record.requests_json or "[]"),
        encoded_at=record.created_at,
    )


def record_to_dict(record: ProofRecord) -> dict:
    return {
        "id": record.id,
        "agent_id": record.agent_id,
        "proof_id": record.proof_id,
        "job_id": record.job_id,
        "status": record.status,
        "reviews": json.loads(record.review_hashes_json or "[]"),
        "agent_uptime": json.loads(record.uptime_json or "[]"),
        "avg_exec_time": json.loads(record.avg_exec_time_json or "[]"),
        "requests_per_day": json.loads(record.requests_json or "[]"),
        "public_signals": json.loads(record.public_signals_json or "[]"),
        "relayer_tx_hash": record.relayer_tx_hash,
        "relayer_block_hash": record.relayer_block_hash,
        "settlement_receipt_hash": record.settlement_receipt_hash,
        "settlement_block_hash": record.settlement_block_hash,
        "aggregation_id": record.aggregation_id,
        "aggregation_details": json.loads(record.aggregation_details_json or "{}"),
        "verified": record.verified,
        "verified_at": record.verified_at.isoformat() if record.verified_at else None,
        "created_at": record.created_at.isoformat() if record.created_at else None,
    }
