"""Agent history endpoints: the data a reputation proof is built from."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from agentproof.database import get_db
from agentproof.schemas.agent import (
    AgentCreateRequest,
    AgentResponse,
    EmploymentRequest,
    MonitoringSampleRequest,
    ReviewCreateRequest,
    ReviewResponse,
)
from agentproof.services import (
    agent_service,
    employment_service,
    input_encoder,
    monitoring_service,
    review_service,
)

router = APIRouter(prefix="/agents", tags=["agents"])


@router.post("", response_model=AgentResponse, status_code=201)
async def create_agent(req: AgentCreateRequest, db: AsyncSession = Depends(get_db)):
    return await agent_service.create_agent(
        db, req.name, owner_wallet=req.owner_wallet, description=req.description
    )


@router.get("/{agent_id}", response_model=AgentResponse)
async def get_agent(agent_id: str, db: AsyncSession = Depends(get_db)):
    return await agent_service.get_agent(db, agent_id)


@router.post("/{agent_id}/reviews", response_model=ReviewResponse, status_code=201)
async def add_review(
    agent_id: str, req: ReviewCreateRequest, db: AsyncSession = Depends(get_db)
):
    await agent_service.get_agent(db, agent_id)
    return await review_service.create_review(
        db, agent_id, req.rating, req.content, reviewer_wallet=req.reviewer_wallet
    )


@router.post("/{agent_id}/monitoring", status_code=201)
async def add_monitoring_sample(
    agent_id: str, req: MonitoringSampleRequest, db: AsyncSession = Depends(get_db)
):
    await agent_service.get_agent(db, agent_id)
    sample = await monitoring_service.record_sample(
        db, agent_id, req.uptime_hours, req.avg_exec_time_ms, req.request_count
    )
    return {
        "id": sample.id,
        "agent_id": sample.agent_id,
        "uptime_hours": sample.uptime_hours,
        "avg_exec_time_ms": sample.avg_exec_time_ms,
        "request_count": sample.request_count,
        "recorded_at": sample.recorded_at.isoformat(),
    }


@router.post("/{agent_id}/employments", status_code=201)
async def hire_agent(
    agent_id: str, req: EmploymentRequest, db: AsyncSession = Depends(get_db)
):
    await agent_service.get_agent(db, agent_id)
    employment = await employment_service.hire_agent(db, agent_id, req.user_wallet)
    return {"id": employment.id, "agent_id": agent_id, "status": employment.status}


@router.post("/{agent_id}/employments/{employment_id}/end")
async def end_employment(
    agent_id: str, employment_id: str, db: AsyncSession = Depends(get_db)
):
    employment = await employment_service.end_employment(db, agent_id, employment_id)
    if employment is None:
        raise HTTPException(status_code=404, detail=f"Employment {employment_id} not found")
    return {"id": employment.id, "agent_id": agent_id, "status": employment.status}


@router.get("/{agent_id}/circuit-input")
async def get_circuit_input(agent_id: str, db: AsyncSession = Depends(get_db)):
    """Preview the circuit input the next proof would be generated from."""
    encoded = await input_encoder.build_circuit_input(db, agent_id)
    samples = await monitoring_service.list_samples(db, agent_id)
    return {
        "agent_id": agent_id,
        "input": encoded.circuit_input.to_circuit_json(),
        "summary": monitoring_service.summarize(samples),
        "review_hashes": encoded.snapshot.review_hashes,
    }
