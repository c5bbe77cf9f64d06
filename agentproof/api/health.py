import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from agentproof.database import get_db
from agentproof.models.agent import Agent
from agentproof.models.proof import ProofRecord

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

_VERSION = "0.1.0"


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    agents = (await db.execute(select(func.count(Agent.id)))).scalar() or 0
    proofs = (await db.execute(select(func.count(ProofRecord.id)))).scalar() or 0
    return {
        "status": "healthy",
        "version": _VERSION,
        "agents_count": agents,
        "proof_records_count": proofs,
    }


@router.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Readiness probe: verifies DB connectivity."""
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "ready", "database": "connected"}
    except Exception:
        logger.exception("Readiness check failed, database unreachable")
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "database": "unavailable"},
        )
