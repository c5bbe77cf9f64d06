"""Proof submission and aggregation polling.

States:
  SUBMITTED -> optimistic verify != "success" -> OptimisticRejectedError (no polling)
  SUBMITTED -> accepted (job id) -> AGGREGATING
  AGGREGATING -> "Aggregated" / "Finalized" -> AGGREGATED (terminal success)
  AGGREGATING -> "Failed"                   -> FAILED     (terminal error)
  AGGREGATING -> attempt budget exhausted   -> TIMED_OUT  (inconclusive; job may still land)

A timeout only ends the caller's wait. The relayer-side job keeps running and
can be reconciled later with the same job id.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from agentproof.config import Settings, settings
from agentproof.core.exceptions import OptimisticRejectedError, RelayerError
from agentproof.schemas.proof import AggregationDetails, JobStatusResponse, ProofArtifact

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = frozenset({"Aggregated", "Finalized"})
FAILED_STATUS = "Failed"


class AggregationStatus(enum.Enum):
    AGGREGATED = "aggregated"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 15
    interval_seconds: float = 20.0
    backoff_factor: float = 1.0
    max_interval_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must not be negative")

    def delay_after(self, attempt: int) -> float:
        """Seconds to wait after the given 1-based attempt."""
        delay = self.interval_seconds * (self.backoff_factor ** (attempt - 1))
        if self.max_interval_seconds is not None:
            delay = min(delay, self.max_interval_seconds)
        return delay

    @classmethod
    def interactive(cls, cfg: Settings = settings) -> "RetryPolicy":
        return cls(
            max_attempts=cfg.aggregation_max_attempts,
            interval_seconds=cfg.aggregation_poll_interval_seconds,
            backoff_factor=cfg.aggregation_backoff_factor,
        )

    @classmethod
    def batch(cls, cfg: Settings = settings) -> "RetryPolicy":
        return cls(
            max_attempts=cfg.batch_max_attempts,
            interval_seconds=cfg.batch_poll_interval_seconds,
            backoff_factor=cfg.aggregation_backoff_factor,
        )


@dataclass
class AggregationOutcome:
    job_id: str
    status: AggregationStatus
    attempts: int
    last_status: str | None = None
    tx_hash: str | None = None
    block_hash: str | None = None
    aggregation_id: int | None = None
    details: AggregationDetails | None = None
    statement: str | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status is AggregationStatus.AGGREGATED

    @property
    def receipt_hash(self) -> str | None:
        return self.details.receipt if self.details else None

    @property
    def receipt_block_hash(self) -> str | None:
        return self.details.receipt_block_hash if self.details else None

    def aggregation_snapshot(self) -> dict:
        """Aggregation details plus the relayer identifiers, as persisted to disk."""
        data = self.details.model_dump(by_alias=True, exclude_none=True) if self.details else {}
        data.update({
            "aggregationId": self.aggregation_id,
            "statement": self.statement,
            "txHash": self.tx_hash,
            "blockHash": self.block_hash,
        })
        return data

    @classmethod
    def from_status(cls, job_id: str, attempts: int, status: JobStatusResponse) -> "AggregationOutcome":
        return cls(
            job_id=job_id,
            status=AggregationStatus.AGGREGATED,
            attempts=attempts,
            last_status=status.status,
            tx_hash=status.tx_hash,
            block_hash=status.block_hash,
            aggregation_id=status.aggregation_id,
            details=status.aggregation_details,
            statement=status.statement,
        )


async def submit_for_aggregation(
    client,
    artifact: ProofArtifact,
    vk_hash: str,
    chain_id: int | None = None,
) -> str:
    """Submit a proof; return the job id once optimistic verification passes."""
    chain_id = settings.relayer_chain_id if chain_id is None else chain_id
    logger.info("Submitting proof to relayer (chainId=%s)", chain_id)
    response = await client.submit_proof(artifact, vk_hash, chain_id)

    if response.optimistic_verify != "success":
        logger.error("Optimistic verification failed: %s", response.optimistic_verify)
        raise OptimisticRejectedError(response.optimistic_verify, job_id=response.job_id)
    if not response.job_id:
        raise RelayerError("Relayer accepted the proof but returned no jobId")

    logger.info("Optimistic verification passed, job id %s", response.job_id)
    return response.job_id


class AggregationPoller:
    """Polls one job until a terminal status or the attempt budget runs out.

    ``sleep`` is injectable so tests drive the loop without wall-clock waits.
    """

    def __init__(
        self,
        client,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.policy = policy or RetryPolicy.interactive()
        self._sleep = sleep

    async def wait(self, job_id: str) -> AggregationOutcome:
        errors: list[str] = []
        last_status: str | None = None

        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                status = await self.client.job_status(job_id)
            except RelayerError as exc:
                # Counted against the budget; the job itself may be fine.
                logger.warning(
                    "Job %s status check %d/%d failed: %s",
                    job_id, attempt, self.policy.max_attempts, exc.message,
                )
                errors.append(exc.message)
            else:
                last_status = status.status
                logger.info(
                    "Job %s status %s (attempt %d/%d)",
                    job_id, status.status, attempt, self.policy.max_attempts,
                )
                if status.status in SUCCESS_STATUSES:
                    outcome = AggregationOutcome.from_status(job_id, attempt, status)
                    outcome.errors = errors
                    logger.info(
                        "Job %s aggregated: tx=%s aggregationId=%s receipt=%s",
                        job_id, outcome.tx_hash, outcome.aggregation_id, outcome.receipt_hash,
                    )
                    return outcome
                if status.status == FAILED_STATUS:
                    logger.error("Job %s failed verification on the relayer", job_id)
                    return AggregationOutcome(
                        job_id=job_id,
                        status=AggregationStatus.FAILED,
                        attempts=attempt,
                        last_status=status.status,
                        tx_hash=status.tx_hash,
                        errors=errors,
                    )

            if attempt < self.policy.max_attempts:
                await self._sleep(self.policy.delay_after(attempt))

        logger.warning(
            "Job %s not aggregated after %d attempts (last status %s); it may still complete",
            job_id, self.policy.max_attempts, last_status,
        )
        return AggregationOutcome(
            job_id=job_id,
            status=AggregationStatus.TIMED_OUT,
            attempts=self.policy.max_attempts,
            last_status=last_status,
            errors=errors,
        )
