from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agentproof.models.monitoring import MonitoringSample


async def record_sample(
    db: AsyncSession,
    agent_id: str,
    uptime_hours: float,
    avg_exec_time_ms: float,
    request_count: int,
) -> MonitoringSample:
    sample = MonitoringSample(
        agent_id=agent_id,
        uptime_hours=uptime_hours,
        avg_exec_time_ms=avg_exec_time_ms,
        request_count=request_count,
    )
    db.add(sample)
    await db.commit()
    await db.refresh(sample)
    return sample


async def list_samples(db: AsyncSession, agent_id: str) -> list[MonitoringSample]:
    """All samples for an agent, oldest first."""
    result = await db.execute(
        select(MonitoringSample)
        .where(MonitoringSample.agent_id == agent_id)
        .order_by(MonitoringSample.recorded_at, MonitoringSample.id)
    )
    return list(result.scalars().all())


def summarize(samples: list[MonitoringSample]) -> dict:
    """Raw totals over a sample list, before any circuit scaling."""
    count = len(samples)
    total_exec = sum(float(s.avg_exec_time_ms) for s in samples)
    return {
        "samples": count,
        "total_uptime_hours": sum(float(s.uptime_hours) for s in samples),
        "avg_exec_time_ms": total_exec / count if count else 0.0,
        "total_requests": sum(int(s.request_count) for s in samples),
    }
