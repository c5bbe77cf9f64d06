"""Reputation proof endpoints: generate, submit, wait for aggregation, history."""

import logging
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agentproof.core.async_tasks import fire_and_forget, is_running
from agentproof.core.exceptions import InputError, SubjectNotFoundError
from agentproof.database import async_session, get_db
from agentproof.schemas.proof import ProofArtifact
from agentproof.schemas.requests import (
    GenerateProofRequest,
    SubmitProofRequest,
    VerifyProofRequest,
    WaitAggregationRequest,
)
from agentproof.services import agent_service, proof_record_service
from agentproof.services.aggregation_service import AggregationStatus
from agentproof.services.proof_pipeline import ProofPipeline
from agentproof.services.prover import format_solidity_calldata

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/proofs", tags=["proofs"])

_OUTCOME_STATUS_CODES = {
    AggregationStatus.AGGREGATED: 200,
    AggregationStatus.FAILED: 400,
    AggregationStatus.TIMED_OUT: 408,
}


def get_pipeline_factory() -> Callable[[], ProofPipeline]:
    return ProofPipeline.from_settings


def get_session_factory() -> async_sessionmaker:
    return async_session


async def get_pipeline(factory: Callable[[], ProofPipeline] = Depends(get_pipeline_factory)):
    pipeline = factory()
    try:
        yield pipeline
    finally:
        await pipeline.aclose()


@router.post("/generate")
async def generate_proof(
    req: GenerateProofRequest,
    db: AsyncSession = Depends(get_db),
    pipeline: ProofPipeline = Depends(get_pipeline),
):
    """Encode the agent's history and produce a Groth16 proof (no submission)."""
    generated = await pipeline.generate(db, req.agent_id)
    return {
        "agent_id": req.agent_id,
        "proof_id": generated.proof_id,
        "proof": generated.artifact.proof,
        "publicSignals": generated.artifact.public_signals,
        "signals": generated.artifact.labelled_signals(),
        "solidity_calldata": format_solidity_calldata(generated.artifact),
    }


@router.post("/verify")
async def verify_proof(
    req: VerifyProofRequest,
    pipeline: ProofPipeline = Depends(get_pipeline),
):
    """Check a proof locally against the circuit's verification key."""
    artifact = ProofArtifact(proof=req.proof, public_signals=req.public_signals)
    valid = await pipeline.prover.verify(artifact)
    return {"valid": valid, "signals": artifact.labelled_signals()}


@router.post("/submit")
async def submit_proof(
    req: SubmitProofRequest,
    db: AsyncSession = Depends(get_db),
    pipeline: ProofPipeline = Depends(get_pipeline),
):
    """Submit a proof from /generate for aggregation.

    The body must carry the proof exactly as generated; the job is indexed
    against ``proof_id`` so wait-aggregation records its encoding snapshot.
    """
    if not await agent_service.find_agent(db, req.agent_id):
        raise SubjectNotFoundError(req.agent_id)
    artifact = pipeline.load_generated(req.agent_id, req.proof_id)
    if req.proof != artifact.proof or req.public_signals != artifact.public_signals:
        raise InputError(f"Submitted proof does not match stored proof {req.proof_id}")
    job_id = await pipeline.submit(artifact, chain_id=req.chain_id, proof_id=req.proof_id)
    return {"agent_id": req.agent_id, "jobId": job_id, "optimisticVerify": "success"}


@router.post("/wait-aggregation/{job_id}")
async def wait_for_aggregation(
    job_id: str,
    req: WaitAggregationRequest,
    db: AsyncSession = Depends(get_db),
    pipeline: ProofPipeline = Depends(get_pipeline),
):
    """Poll a submitted job and record the outcome.

    200 when aggregated, 400 when the relayer reports failure, 408 when the
    attempt budget runs out (the job may still land; call again later).
    """
    outcome, record = await pipeline.wait_for_aggregation(db, req.agent_id, job_id)
    body = {
        "jobId": job_id,
        "status": outcome.status.value,
        "attempts": outcome.attempts,
        "last_status": outcome.last_status,
        "record": proof_record_service.record_to_dict(record),
    }
    if outcome.status is AggregationStatus.TIMED_OUT:
        body["detail"] = "Aggregation still pending; retry wait-aggregation with the same jobId"
    return JSONResponse(status_code=_OUTCOME_STATUS_CODES[outcome.status], content=body)


async def _run_in_background(
    agent_id: str,
    session_factory: async_sessionmaker,
    factory: Callable[[], ProofPipeline],
) -> None:
    async with factory() as pipeline:
        async with session_factory() as db:
            result = await pipeline.run(db, agent_id)
    logger.info(
        "Background proof run for agent %s finished: %s (job %s)",
        agent_id, result.outcome.status.value, result.job_id,
    )


@router.post("/agents/{agent_id}/run", status_code=202)
async def run_pipeline(
    agent_id: str,
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    factory: Callable[[], ProofPipeline] = Depends(get_pipeline_factory),
):
    """Start the full pipeline for an agent; the outcome lands in its proof history."""
    if not await agent_service.find_agent(db, agent_id):
        raise SubjectNotFoundError(agent_id)
    key = f"proof_run:{agent_id}"
    if is_running(key):
        raise HTTPException(
            status_code=409, detail=f"A proof run for agent {agent_id} is already in progress"
        )
    fire_and_forget(_run_in_background(agent_id, session_factory, factory), key=key)
    return {"agent_id": agent_id, "status": "accepted"}


@router.get("/agents/{agent_id}")
async def get_proof_history(
    agent_id: str,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    await agent_service.get_agent(db, agent_id)
    records = await proof_record_service.list_proofs(db, agent_id, limit=limit)
    return {
        "agent_id": agent_id,
        "proofs": [proof_record_service.record_to_dict(r) for r in records],
        "count": len(records),
    }
