from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agentproof.core.exceptions import AgentAlreadyExistsError, AgentNotFoundError
from agentproof.models.agent import Agent


async def create_agent(
    db: AsyncSession,
    name: str,
    owner_wallet: str = "",
    description: str = "",
) -> Agent:
    existing = await db.execute(select(Agent).where(Agent.name == name))
    if existing.scalar_one_or_none():
        raise AgentAlreadyExistsError(name)

    agent = Agent(name=name, owner_wallet=owner_wallet, description=description)
    db.add(agent)
    await db.commit()
    await db.refresh(agent)
    return agent


async def find_agent(db: AsyncSession, agent_id: str) -> Agent | None:
    result = await db.execute(select(Agent).where(Agent.id == agent_id))
    return result.scalar_one_or_none()


async def get_agent(db: AsyncSession, agent_id: str) -> Agent:
    agent = await find_agent(db, agent_id)
    if not agent:
        raise AgentNotFoundError(agent_id)
    return agent


async def list_agent_ids(db: AsyncSession, status: str | None = "active") -> list[str]:
    """Agent ids in creation order, optionally filtered by status."""
    query = select(Agent.id).order_by(Agent.created_at)
    if status:
        query = query.where(Agent.status == status)
    result = await db.execute(query)
    return list(result.scalars().all())
