from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agentproof.models.employment import Employment


async def hire_agent(db: AsyncSession, agent_id: str, user_wallet: str) -> Employment:
    employment = Employment(agent_id=agent_id, user_wallet=user_wallet, status="active")
    db.add(employment)
    await db.commit()
    await db.refresh(employment)
    return employment


async def end_employment(db: AsyncSession, agent_id: str, employment_id: str) -> Employment | None:
    """End an active employment of ``agent_id``; None when the agent has no such employment."""
    result = await db.execute(
        select(Employment).where(
            Employment.id == employment_id,
            Employment.agent_id == agent_id,
        )
    )
    employment = result.scalar_one_or_none()
    if not employment or employment.status != "active":
        return employment
    employment.status = "ended"
    employment.ended_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(employment)
    return employment


async def count_active(db: AsyncSession, agent_id: str) -> int:
    result = await db.execute(
        select(func.count(Employment.id)).where(
            Employment.agent_id == agent_id,
            Employment.status == "active",
        )
    )
    return int(result.scalar() or 0)
