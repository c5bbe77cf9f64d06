from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agentproof.core.hashing import hash_review
from agentproof.models.review import Review


async def create_review(
    db: AsyncSession,
    agent_id: str,
    rating: int,
    content: str,
    reviewer_wallet: str = "",
) -> Review:
    """Store a review together with its content hash."""
    if not 1 <= rating <= 5:
        raise ValueError(f"rating must be between 1 and 5, got {rating}")

    review = Review(
        agent_id=agent_id,
        rating=rating,
        content=content,
        content_hash=hash_review(content),
        reviewer_wallet=reviewer_wallet,
    )
    db.add(review)
    await db.commit()
    await db.refresh(review)
    return review


async def list_reviews(db: AsyncSession, agent_id: str) -> list[Review]:
    """All reviews for an agent, most recent first."""
    result = await db.execute(
        select(Review)
        .where(Review.agent_id == agent_id)
        .order_by(Review.created_at.desc(), Review.id.desc())
    )
    return list(result.scalars().all())
