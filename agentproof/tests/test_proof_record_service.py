import json
from datetime import timedelta

from sqlalchemy import select

from agentproof.models.proof import ProofRecord
from agentproof.schemas.proof import AggregationDetails, EncodingSnapshot
from agentproof.services import proof_record_service
from agentproof.services.aggregation_service import AggregationOutcome, AggregationStatus
from agentproof.tests.conftest import BASE_TIME


def _snapshot(agent_id: str) -> EncodingSnapshot:
    return EncodingSnapshot(
        agent_id=agent_id,
        review_hashes=["0xaa", "0xbb"],
        uptime_hours=[24.0, 23.5],
        avg_exec_time_ms=[120.0, 118.0],
        request_counts=[150, 160],
        encoded_at=BASE_TIME,
    )


def _aggregated(job_id: str = "job-1") -> AggregationOutcome:
    return AggregationOutcome(
        job_id=job_id,
        status=AggregationStatus.AGGREGATED,
        attempts=3,
        last_status="Aggregated",
        tx_hash="0xtx",
        block_hash="0xblock",
        aggregation_id=42,
        details=AggregationDetails(receipt="0xreceipt", receipt_block_hash="0xrb", leaf_index=1),
        statement="0xstatement",
    )


async def test_aggregated_outcome_is_verified(db, make_agent):
    agent = await make_agent()

    record = await proof_record_service.record_outcome(
        db, _snapshot(agent.id), _aggregated(), public_signals=["466", "3"], proof_id="0x01"
    )

    assert record.proof_id == "0x01"
    assert record.status == "aggregated"
    assert record.verified is True
    assert record.verified_at is not None
    assert record.relayer_tx_hash == "0xtx"
    assert record.relayer_block_hash == "0xblock"
    assert record.settlement_receipt_hash == "0xreceipt"
    assert record.settlement_block_hash == "0xrb"
    assert record.aggregation_id == 42
    assert json.loads(record.review_hashes_json) == ["0xaa", "0xbb"]
    assert json.loads(record.uptime_json) == [24.0, 23.5]
    assert json.loads(record.requests_json) == [150, 160]
    assert json.loads(record.public_signals_json) == ["466", "3"]
    details = json.loads(record.aggregation_details_json)
    assert details["receipt"] == "0xreceipt"
    assert details["aggregationId"] == 42


async def test_timed_out_outcome_is_recorded_unverified(db, make_agent):
    agent = await make_agent()
    outcome = AggregationOutcome(
        job_id="job-2", status=AggregationStatus.TIMED_OUT, attempts=15, last_status="Pending"
    )

    record = await proof_record_service.record_outcome(db, _snapshot(agent.id), outcome)

    assert record.status == "timed_out"
    assert record.verified is False
    assert record.verified_at is None
    assert record.job_id == "job-2"
    assert record.aggregation_details_json == "{}"
    assert record.proof_id.startswith("0x") and len(record.proof_id) == 66


async def test_history_is_append_only_and_newest_first(db, make_agent):
    agent = await make_agent()
    timed_out = AggregationOutcome(
        job_id="job-1", status=AggregationStatus.TIMED_OUT, attempts=15
    )

    first = await proof_record_service.record_outcome(db, _snapshot(agent.id), timed_out)
    first.created_at = BASE_TIME
    await db.commit()
    second = await proof_record_service.record_outcome(db, _snapshot(agent.id), _aggregated())
    second.created_at = BASE_TIME + timedelta(minutes=5)
    await db.commit()

    records = await proof_record_service.list_proofs(db, agent.id)
    assert [r.id for r in records] == [second.id, first.id]
    assert first.proof_id != second.proof_id

    all_rows = (await db.execute(select(ProofRecord))).scalars().all()
    assert len(all_rows) == 2

    latest = await proof_record_service.latest_for_job(db, "job-1")
    assert latest.id == second.id


async def test_snapshot_round_trips_through_record(db, make_agent):
    agent = await make_agent()
    snapshot = _snapshot(agent.id)

    record = await proof_record_service.record_outcome(db, snapshot, _aggregated())
    rebuilt = proof_record_service.snapshot_from_record(record)

    assert rebuilt.agent_id == snapshot.agent_id
    assert rebuilt.review_hashes == snapshot.review_hashes
    assert rebuilt.uptime_hours == snapshot.uptime_hours
    assert rebuilt.avg_exec_time_ms == snapshot.avg_exec_time_ms
    assert rebuilt.request_counts == snapshot.request_counts


async def test_record_to_dict(db, make_agent):
    agent = await make_agent()
    record = await proof_record_service.record_outcome(
        db, _snapshot(agent.id), _aggregated(), public_signals=["1"]
    )

    data = proof_record_service.record_to_dict(record)

    assert data["agent_id"] == agent.id
    assert data["status"] == "aggregated"
    assert data["verified"] is True
    assert data["reviews"] == ["0xaa", "0xbb"]
    assert data["agent_uptime"] == [24.0, 23.5]
    assert data["public_signals"] == ["1"]
    assert data["aggregation_details"]["leafIndex"] == 1
    assert data["verified_at"] is not None
