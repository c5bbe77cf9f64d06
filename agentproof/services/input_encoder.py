"""Circuit input encoding for the reputation proof.

Turns an agent's variable-length review and monitoring history into the
circuit's fixed-shape input:

- ``ratings``: the 20 most recent ratings, zero-padded
- ``reviewHashes``: the 16 most recent review hashes as field elements, zero-padded
- monitoring aggregates, each written twice (private value + public claim)
- ``avgScaled``: mean of nonzero ratings x 100, floored

Aggregate scaling (one rule for every call path):
    uptime      round(sum(uptime_hours) * 100)      -> "basis points"
    exec time   round(mean(avg_exec_time_ms))
    requests    sum(request_count)
    deployments active employments, 1 when employment data is unavailable
"""

import hashlib
import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from agentproof.config import settings
from agentproof.core.exceptions import InputError, SubjectNotFoundError
from agentproof.schemas.proof import CircuitInput, EncodedSubject, EncodingSnapshot
from agentproof.services import agent_service, employment_service, monitoring_service, review_service

logger = logging.getLogger(__name__)

RATING_SLOTS = 20
REVIEW_HASH_SLOTS = 16
HASH_PREFIX_HEX_CHARS = 32  # 128 bits, always below the bn128 scalar field
ROOT_HASH_HEX_CHARS = 16
AGENT_ID_MASK = 0xFFFFF  # low 20 bits
SECONDS_PER_DAY = 86400


# ── Field conversions ────────────────────────────────────────

def _round_half_up(value) -> int:
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def review_hash_to_field(content_hash: str) -> str:
    """Decimal string of the first 128 bits of a hex review hash."""
    hex_part = (content_hash or "").lower()
    if hex_part.startswith("0x"):
        hex_part = hex_part[2:]
    hex_part = hex_part[:HASH_PREFIX_HEX_CHARS]
    try:
        return str(int(hex_part, 16))
    except ValueError:
        raise InputError(f"Review hash is not hex: {content_hash!r}") from None


def encode_agent_id(agent_id: str) -> str:
    """Deterministic 20-bit numeric identity for an agent id string."""
    value = 0
    for ch in agent_id:
        value = (value * 31 + ord(ch)) & AGENT_ID_MASK
    return str(value)


def epoch_day(now: datetime) -> int:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return int(now.timestamp() // SECONDS_PER_DAY)


def scaled_average(ratings: Iterable[int]) -> int:
    """floor(mean(nonzero ratings) * 100) in integer arithmetic; 0 when none."""
    rated = [int(r) for r in ratings if int(r) > 0]
    if not rated:
        return 0
    return sum(rated) * 100 // len(rated)


def review_root_hash(review_hashes: Sequence[str]) -> str:
    """Single-hash commitment to the nonzero review hash strings.

    sha256 over the concatenated decimal strings, first 64 bits as a decimal.
    This is a hash chain, not a Merkle tree; existing proofs depend on it.
    """
    present = [h for h in review_hashes if h != "0"]
    if not present:
        return "0"
    digest = hashlib.sha256("".join(present).encode("utf-8")).hexdigest()
    return str(int(digest[:ROOT_HASH_HEX_CHARS], 16))


def expected_public_signals(circuit_input: CircuitInput) -> list[str]:
    """The 9 public signals in the circuit's declared output order."""
    return [
        circuit_input.avg_scaled,
        circuit_input.num_ratings,
        review_root_hash(circuit_input.review_hashes),
        circuit_input.claimed_uptime_bps,
        circuit_input.claimed_avg_exec_time_ms,
        circuit_input.claimed_reqs_per_day,
        circuit_input.claimed_deployment_count,
        circuit_input.agent_id,
        circuit_input.epoch_day,
    ]


def mismatched_claims(circuit_input: CircuitInput) -> list[str]:
    """Names of claimed fields that differ from their private counterpart."""
    return [
        name
        for name, (claimed, private) in circuit_input.claimed_pairs().items()
        if claimed != private
    ]


# ── Encoding ─────────────────────────────────────────────────

def encode_circuit_input(
    agent_id: str,
    reviews: Sequence,
    samples: Sequence,
    deployment_count: int | None,
    now: datetime,
) -> CircuitInput:
    """Build a CircuitInput from reviews (most recent first) and monitoring samples.

    ``reviews`` items need ``rating`` and ``content_hash``; ``samples`` items need
    ``uptime_hours``, ``avg_exec_time_ms`` and ``request_count``.
    """
    latest = list(reviews[:RATING_SLOTS])

    ratings = ["0"] * RATING_SLOTS
    for i, review in enumerate(latest):
        ratings[i] = str(int(review.rating))

    review_hashes = ["0"] * REVIEW_HASH_SLOTS
    for i, review in enumerate(latest[:REVIEW_HASH_SLOTS]):
        review_hashes[i] = review_hash_to_field(review.content_hash)

    rated = [int(r.rating) for r in latest if int(r.rating) > 0]

    total_uptime = sum((Decimal(str(s.uptime_hours)) for s in samples), Decimal(0))
    uptime_bps = str(_round_half_up(total_uptime * 100))
    if samples:
        mean_exec = sum(Decimal(str(s.avg_exec_time_ms)) for s in samples) / len(samples)
    else:
        mean_exec = Decimal(0)
    avg_exec_ms = str(_round_half_up(mean_exec))
    reqs = str(sum(int(s.request_count) for s in samples))
    deployments = str(1 if deployment_count is None else int(deployment_count))

    return CircuitInput(
        ratings=ratings,
        review_hashes=review_hashes,
        private_uptime_bps=uptime_bps,
        private_avg_exec_time_ms=avg_exec_ms,
        private_reqs_per_day=reqs,
        private_deployment_count=deployments,
        agent_id=encode_agent_id(agent_id),
        epoch_day=str(epoch_day(now)),
        num_ratings=str(len(rated)),
        claimed_uptime_bps=uptime_bps,
        claimed_avg_exec_time_ms=avg_exec_ms,
        claimed_reqs_per_day=reqs,
        claimed_deployment_count=deployments,
        avg_scaled=str(scaled_average(rated)),
    )


async def build_circuit_input(
    db: AsyncSession,
    agent_id: str,
    now: datetime | None = None,
    window: int | None = None,
) -> EncodedSubject:
    """Load an agent's history and encode it, keeping a snapshot for the proof record."""
    agent = await agent_service.find_agent(db, agent_id)
    if not agent:
        raise SubjectNotFoundError(agent_id)

    now = now or datetime.now(timezone.utc)
    window = settings.monitoring_window_samples if window is None else window

    reviews = await review_service.list_reviews(db, agent_id)
    samples = await monitoring_service.list_samples(db, agent_id)
    deployments = await employment_service.count_active(db, agent_id)

    circuit_input = encode_circuit_input(agent_id, reviews, samples, deployments, now)

    recent = samples[-window:] if window > 0 else []
    snapshot = EncodingSnapshot(
        agent_id=agent_id,
        review_hashes=[r.content_hash for r in reviews[:RATING_SLOTS]],
        uptime_hours=[float(s.uptime_hours) for s in recent],
        avg_exec_time_ms=[float(s.avg_exec_time_ms) for s in recent],
        request_counts=[int(s.request_count) for s in recent],
        encoded_at=now,
    )

    logger.info(
        "Encoded circuit input for agent %s: %s ratings, avgScaled=%s, uptimeBps=%s",
        agent_id,
        circuit_input.num_ratings,
        circuit_input.avg_scaled,
        circuit_input.claimed_uptime_bps,
    )
    return EncodedSubject(circuit_input=circuit_input, snapshot=snapshot)
