"""End-to-end reputation proof pipeline.

Per agent, strictly in order:
    encode -> prove -> register vk (once per circuit) -> submit -> poll -> persist

Independent agents share nothing but the vk cache, so a batch can run them
concurrently; the default batch is sequential and keeps going past
per-agent failures.
"""

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agentproof.config import Settings, settings
from agentproof.core.exceptions import (
    ProofNotFoundError,
    SubjectNotFoundError,
    SubmissionNotFoundError,
)
from agentproof.core.hashing import generate_proof_id
from agentproof.models.proof import ProofRecord
from agentproof.schemas.proof import EncodedSubject, ProofArtifact
from agentproof.services import agent_service, input_encoder, proof_record_service
from agentproof.services.aggregation_service import (
    AggregationOutcome,
    AggregationPoller,
    AggregationStatus,
    RetryPolicy,
    submit_for_aggregation,
)
from agentproof.services.prover import Groth16Prover, run_command
from agentproof.services.relayer_client import RelayerClient
from agentproof.services.storage_service import get_proof_store
from agentproof.services.vk_registry import VerificationKeyRegistrar, get_vk_cache

logger = logging.getLogger(__name__)


@dataclass
class GeneratedProof:
    proof_id: str
    encoded: EncodedSubject
    artifact: ProofArtifact


@dataclass
class PipelineResult:
    agent_id: str
    proof_id: str
    job_id: str
    outcome: AggregationOutcome
    record: ProofRecord


@dataclass
class BatchReport:
    processed: int = 0
    aggregated: int = 0
    failed: int = 0
    timed_out: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "processed": self.processed,
            "aggregated": self.aggregated,
            "failed": self.failed,
            "timed_out": self.timed_out,
            "errors": dict(self.errors),
        }


class ProofPipeline:
    def __init__(
        self,
        prover: Groth16Prover,
        client,
        registrar: VerificationKeyRegistrar,
        store=None,
        chain_id: int | None = None,
        sleep=asyncio.sleep,
    ) -> None:
        self.prover = prover
        self.client = client
        self.registrar = registrar
        self.store = store if store is not None else get_proof_store()
        self.chain_id = settings.relayer_chain_id if chain_id is None else chain_id
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        cfg: Settings = settings,
        transport=None,
        runner=run_command,
        sleep=asyncio.sleep,
    ) -> "ProofPipeline":
        client = RelayerClient.from_settings(cfg, transport=transport)
        return cls(
            prover=Groth16Prover.from_settings(cfg, runner=runner),
            client=client,
            registrar=VerificationKeyRegistrar(client, get_vk_cache(), cfg.circuit_name),
            chain_id=cfg.relayer_chain_id,
            sleep=sleep,
        )

    async def aclose(self) -> None:
        close = getattr(self.client, "aclose", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> "ProofPipeline":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ── Stages ───────────────────────────────────────────────

    async def generate(
        self, db: AsyncSession, agent_id: str, now: datetime | None = None
    ) -> GeneratedProof:
        """Encode the agent's history and prove it.

        The artifact and the encoding snapshot are saved to the store under
        the new proof id, so a later submit and wait can refer back to them.
        """
        encoded = await input_encoder.build_circuit_input(db, agent_id, now=now)
        artifact = await self.prover.prove(encoded.circuit_input)
        proof_id = generate_proof_id(agent_id, int(time.time() * 1000), uuid.uuid4().hex[:8])
        self.store.save(proof_id, artifact)
        self.store.save_snapshot(proof_id, encoded.snapshot)
        return GeneratedProof(proof_id=proof_id, encoded=encoded, artifact=artifact)

    def load_generated(self, agent_id: str, proof_id: str) -> ProofArtifact:
        """The artifact ``generate`` stored for this agent under ``proof_id``."""
        artifact = self.store.load(proof_id)
        snapshot = self.store.load_snapshot(proof_id)
        if artifact is None or snapshot is None or snapshot.agent_id != agent_id:
            raise ProofNotFoundError(proof_id)
        return artifact

    async def submit(
        self,
        artifact: ProofArtifact,
        chain_id: int | None = None,
        proof_id: str | None = None,
    ) -> str:
        """Register the verification key if needed and submit; return the job id.

        With ``proof_id`` the job is indexed against that stored proof.
        """
        verification_key = self.prover.artifacts.load_verification_key()
        vk_hash = await self.registrar.ensure_registered(verification_key)
        job_id = await submit_for_aggregation(
            self.client, artifact, vk_hash, self.chain_id if chain_id is None else chain_id
        )
        if proof_id is not None:
            self.store.save_submission(job_id, proof_id)
        return job_id

    async def wait_for_aggregation(
        self,
        db: AsyncSession,
        agent_id: str,
        job_id: str,
        policy: RetryPolicy | None = None,
    ) -> tuple[AggregationOutcome, ProofRecord]:
        """Poll an already-submitted job and append a proof record for the result.

        The record is built from the snapshot taken when the submitted proof
        was encoded, never from the agent's current data: the latest record for
        the job when one exists (a timed-out cycle being reconciled), otherwise
        the snapshot stored with the proof the job was submitted from.
        """
        if not await agent_service.find_agent(db, agent_id):
            raise SubjectNotFoundError(agent_id)

        source_proof_id = self.store.proof_id_for_job(job_id)
        previous = await proof_record_service.latest_for_job(db, job_id)
        if previous is not None and previous.agent_id == agent_id:
            snapshot = proof_record_service.snapshot_from_record(previous)
            public_signals = json.loads(previous.public_signals_json or "[]")
            record_proof_id = None
        else:
            snapshot = artifact = None
            if source_proof_id is not None:
                snapshot = self.store.load_snapshot(source_proof_id)
                artifact = self.store.load(source_proof_id)
            if snapshot is None or artifact is None or snapshot.agent_id != agent_id:
                raise SubmissionNotFoundError(job_id, agent_id)
            public_signals = artifact.public_signals
            record_proof_id = source_proof_id

        outcome = await self._poll(job_id, policy)
        record = await proof_record_service.record_outcome(
            db,
            snapshot,
            outcome,
            public_signals=public_signals,
            proof_id=record_proof_id,
        )
        self._save_aggregation(source_proof_id or record.proof_id, outcome)
        return outcome, record

    async def _poll(self, job_id: str, policy: RetryPolicy | None) -> AggregationOutcome:
        poller = AggregationPoller(self.client, policy or RetryPolicy.interactive(), sleep=self._sleep)
        return await poller.wait(job_id)

    def _save_aggregation(self, proof_id: str, outcome: AggregationOutcome) -> None:
        if outcome.succeeded:
            self.store.save_aggregation(proof_id, outcome.aggregation_snapshot())

    # ── Full run ─────────────────────────────────────────────

    async def run(
        self, db: AsyncSession, agent_id: str, policy: RetryPolicy | None = None
    ) -> PipelineResult:
        logger.info("Starting proof pipeline for agent %s", agent_id)
        generated = await self.generate(db, agent_id)
        job_id = await self.submit(generated.artifact, proof_id=generated.proof_id)
        outcome = await self._poll(job_id, policy)

        record = await proof_record_service.record_outcome(
            db,
            generated.encoded.snapshot,
            outcome,
            public_signals=generated.artifact.public_signals,
            proof_id=generated.proof_id,
        )
        self._save_aggregation(generated.proof_id, outcome)

        if outcome.status is AggregationStatus.TIMED_OUT:
            logger.warning(
                "Agent %s: job %s still pending; reconcile later with wait-aggregation",
                agent_id, job_id,
            )
        return PipelineResult(
            agent_id=agent_id,
            proof_id=generated.proof_id,
            job_id=job_id,
            outcome=outcome,
            record=record,
        )


async def run_batch(
    session_factory: async_sessionmaker,
    pipeline: ProofPipeline,
    agent_ids: list[str] | None = None,
    policy: RetryPolicy | None = None,
    concurrency: int = 1,
) -> BatchReport:
    """Run the pipeline for many agents, continuing past per-agent failures."""
    if agent_ids is None:
        async with session_factory() as db:
            agent_ids = await agent_service.list_agent_ids(db)

    policy = policy or RetryPolicy.batch()
    report = BatchReport()
    semaphore = asyncio.Semaphore(max(1, concurrency))
    logger.info("Proof batch starting for %d agents", len(agent_ids))

    async def _one(agent_id: str) -> None:
        async with semaphore:
            try:
                async with session_factory() as db:
                    result = await pipeline.run(db, agent_id, policy=policy)
            except Exception as exc:
                logger.exception("Proof pipeline failed for agent %s", agent_id)
                report.errors[agent_id] = f"{type(exc).__name__}: {exc}"
                return
            finally:
                report.processed += 1

            if result.outcome.status is AggregationStatus.AGGREGATED:
                report.aggregated += 1
            elif result.outcome.status is AggregationStatus.FAILED:
                report.failed += 1
            else:
                report.timed_out += 1

    if concurrency <= 1:
        for agent_id in agent_ids:
            await _one(agent_id)
    else:
        await asyncio.gather(*(_one(agent_id) for agent_id in agent_ids))

    logger.info("Proof batch finished: %s", report.as_dict())
    return report


async def scheduled_proof_loop(session_factory: async_sessionmaker, interval_hours: float) -> None:
    """Background loop for the API process: one batch per interval."""
    while True:
        await asyncio.sleep(interval_hours * 3600)
        try:
            async with ProofPipeline.from_settings() as pipeline:
                await run_batch(session_factory, pipeline)
        except Exception:
            logger.exception("Background task error")
