"""Shared test fixtures for the reputation proof test suite.

Uses an in-memory SQLite database with StaticPool so all sessions share the
same connection (committed data is visible across sessions). The relayer is
faked with ``httpx.MockTransport`` and the circuit toolchain with an injected
command runner, so no test touches the network or needs node/snarkjs.
"""

import json
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from agentproof.database import Base, get_db
from agentproof.main import app
from agentproof.models import *  # noqa: ensure all models are loaded for create_all
from agentproof.schemas.proof import CircuitInput
from agentproof.services.input_encoder import expected_public_signals
from agentproof.services.prover import CircuitArtifacts, CommandResult, Groth16Prover


# ---------------------------------------------------------------------------
# In-memory SQLite test engine (shared via StaticPool)
# ---------------------------------------------------------------------------

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)
TestSession = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

BASE_TIME = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
RELAYER_URL = "http://relayer.test/api/v1"
RELAYER_KEY = "test-key"

VERIFICATION_KEY = {
    "protocol": "groth16",
    "curve": "bn128",
    "nPublic": 9,
    "vk_alpha_1": ["1", "2", "1"],
}

AGGREGATED_PAYLOAD = {
    "status": "Aggregated",
    "txHash": "0xtx",
    "blockHash": "0xblock",
    "aggregationId": 42,
    "aggregationDetails": {
        "receipt": "0xreceipt",
        "receiptBlockHash": "0xreceiptblock",
        "root": "0xroot",
        "leaf": "0xleaf",
        "leafIndex": 3,
        "numberOfLeaves": 8,
        "merkleProof": ["0xa", "0xb"],
    },
    "statement": "0xstatement",
}


# ---------------------------------------------------------------------------
# Auto-use: create/drop tables for every test
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after. Also reset global caches."""
    from agentproof.services import storage_service, vk_registry

    vk_registry.set_vk_cache(vk_registry.VkHashCache(vk_registry.MemoryVkCacheStorage()))
    storage_service.reset_proof_store()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    from agentproof.core.async_tasks import drain_background_tasks
    await drain_background_tasks()
    vk_registry.set_vk_cache(None)
    storage_service.reset_proof_store()


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def db():
    """Yield a fresh AsyncSession for direct service-layer tests."""
    async with TestSession() as session:
        yield session


@pytest.fixture
async def client():
    """httpx AsyncClient wired to the FastAPI app with test DB override."""

    async def _override_get_db():
        async with TestSession() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------

def _new_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def make_agent(db: AsyncSession):
    """Factory fixture: create an Agent row."""
    from agentproof.models.agent import Agent

    async def _make(name: str = None, status: str = "active", created_at: datetime = None):
        agent = Agent(
            id=_new_id(),
            name=name or f"test-agent-{_new_id()[:8]}",
            owner_wallet="0x" + "1" * 40,
            status=status,
            created_at=created_at or BASE_TIME,
        )
        db.add(agent)
        await db.commit()
        await db.refresh(agent)
        return agent

    return _make


@pytest.fixture
def make_review(db: AsyncSession):
    """Factory fixture: create a Review. ``minutes`` orders reviews deterministically."""
    from agentproof.core.hashing import hash_review
    from agentproof.models.review import Review

    async def _make(agent_id: str, rating: int = 5, content: str = None, minutes: int = 0):
        content = content or f"review {_new_id()}"
        review = Review(
            id=_new_id(),
            agent_id=agent_id,
            rating=rating,
            content=content,
            content_hash=hash_review(content),
            created_at=BASE_TIME + timedelta(minutes=minutes),
        )
        db.add(review)
        await db.commit()
        await db.refresh(review)
        return review

    return _make


@pytest.fixture
def make_sample(db: AsyncSession):
    """Factory fixture: create a MonitoringSample. ``days`` orders samples."""
    from agentproof.models.monitoring import MonitoringSample

    async def _make(
        agent_id: str,
        uptime_hours: float = 24.0,
        avg_exec_time_ms: float = 120.0,
        request_count: int = 150,
        days: int = 0,
    ):
        sample = MonitoringSample(
            id=_new_id(),
            agent_id=agent_id,
            uptime_hours=uptime_hours,
            avg_exec_time_ms=avg_exec_time_ms,
            request_count=request_count,
            recorded_at=BASE_TIME + timedelta(days=days),
        )
        db.add(sample)
        await db.commit()
        await db.refresh(sample)
        return sample

    return _make


@pytest.fixture
def make_employment(db: AsyncSession):
    from agentproof.models.employment import Employment

    async def _make(agent_id: str, status: str = "active"):
        employment = Employment(
            id=_new_id(),
            agent_id=agent_id,
            user_wallet="0x" + "2" * 40,
            status=status,
        )
        db.add(employment)
        await db.commit()
        await db.refresh(employment)
        return employment

    return _make


# ---------------------------------------------------------------------------
# Circuit toolchain fakes
# ---------------------------------------------------------------------------

class FakeSnarkjs:
    """Command runner standing in for node + snarkjs.

    Writes the witness, a fixed proof and the public signals the circuit
    would emit for the input file it was given.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.scratch_dirs: list[Path] = []
        self.witness_fails = False
        self.prove_fails = False
        self.skip_public = False
        self.public_override: list[str] | None = None
        self.verify_ok = True

    async def __call__(self, argv, cwd) -> CommandResult:
        argv = [str(a) for a in argv]
        cwd = Path(cwd)
        self.calls.append(argv)
        if cwd not in self.scratch_dirs:
            self.scratch_dirs.append(cwd)

        if argv[0] == "node":
            if self.witness_fails:
                return CommandResult(1, "", "Error: Assert Failed. Error in template Reputation_1")
            Path(argv[-1]).write_bytes(b"wtns")
            return CommandResult(0, "", "")

        if argv[1:3] == ["groth16", "prove"]:
            if self.prove_fails:
                return CommandResult(1, "", "snarkJS: Invalid witness length")
            proof_path, public_path = Path(argv[-2]), Path(argv[-1])
            with (cwd / "input.json").open("r", encoding="utf-8") as f:
                circuit_input = CircuitInput.model_validate(json.load(f))
            proof_path.write_text(json.dumps(fake_proof()), encoding="utf-8")
            if not self.skip_public:
                signals = self.public_override or expected_public_signals(circuit_input)
                public_path.write_text(json.dumps(signals), encoding="utf-8")
            return CommandResult(0, "", "")

        if argv[1:3] == ["groth16", "verify"]:
            if self.verify_ok:
                return CommandResult(0, "[INFO]  snarkJS: OK!\n", "")
            return CommandResult(1, "[ERROR] snarkJS: Invalid proof\n", "")

        return CommandResult(127, "", f"unexpected command {argv}")


def fake_proof() -> dict:
    return {
        "pi_a": ["11", "12", "1"],
        "pi_b": [["21", "22"], ["23", "24"], ["1", "0"]],
        "pi_c": ["31", "32", "1"],
        "protocol": "groth16",
        "curve": "bn128",
    }


@pytest.fixture
def circuit_artifacts(tmp_path) -> CircuitArtifacts:
    """Placeholder circuit artifacts on disk (contents only matter for the vk)."""
    build = tmp_path / "circuit" / "build"
    js_dir = build / "reputation_js"
    js_dir.mkdir(parents=True)
    (js_dir / "reputation.wasm").write_bytes(b"\0asm")
    (js_dir / "generate_witness.js").write_text("// witness generator\n", encoding="utf-8")
    (build / "reputation.zkey").write_bytes(b"zkey")
    (build / "verification_key.json").write_text(json.dumps(VERIFICATION_KEY), encoding="utf-8")
    return CircuitArtifacts(
        wasm=js_dir / "reputation.wasm",
        witness_generator=js_dir / "generate_witness.js",
        zkey=build / "reputation.zkey",
        verification_key=build / "verification_key.json",
    )


@pytest.fixture
def snarkjs() -> FakeSnarkjs:
    return FakeSnarkjs()


@pytest.fixture
def prover(circuit_artifacts, snarkjs, tmp_path) -> Groth16Prover:
    return Groth16Prover(circuit_artifacts, scratch_root=tmp_path / "scratch", runner=snarkjs)


# ---------------------------------------------------------------------------
# Relayer fake
# ---------------------------------------------------------------------------

class FakeRelayer:
    """Scripted relayer behind an httpx.MockTransport.

    ``statuses`` is consumed one entry per job-status call; the last entry
    repeats. An entry is a status string, a full payload dict, or an
    exception to raise from the transport.
    """

    def __init__(self, statuses=None, submit=None, register=None) -> None:
        self.statuses = list(statuses or ["Aggregated"])
        self.submit_response = submit or (200, {"optimisticVerify": "success", "jobId": "job-1"})
        self.register_response = register or (200, {"vkHash": "0xvk"})
        self.calls: list[tuple[str, object]] = []

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    def bodies(self, name: str) -> list:
        return [body for call, body in self.calls if call == name]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else None

        if "/register-vk/" in path:
            self.calls.append(("register-vk", body))
            status, payload = self.register_response
            return httpx.Response(status, json=payload)

        if "/submit-proof/" in path:
            self.calls.append(("submit-proof", body))
            status, payload = self.submit_response
            return httpx.Response(status, json=payload)

        if "/job-status/" in path:
            self.calls.append(("job-status", path))
            entry = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
            if isinstance(entry, Exception):
                raise entry
            if isinstance(entry, str):
                entry = AGGREGATED_PAYLOAD if entry == "Aggregated" else {"status": entry}
            return httpx.Response(200, json=entry)

        return httpx.Response(404, json={"message": f"no route {path}"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def relayer() -> FakeRelayer:
    return FakeRelayer()


@pytest.fixture
def relayer_client(relayer):
    from agentproof.services.relayer_client import RelayerClient

    return RelayerClient(RELAYER_URL, RELAYER_KEY, transport=relayer.transport)


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_pipeline(prover, fake_sleep, tmp_path):
    """Factory fixture: a ProofPipeline wired to fakes for a given relayer."""
    from agentproof.services.proof_pipeline import ProofPipeline
    from agentproof.services.relayer_client import RelayerClient
    from agentproof.services.vk_registry import VerificationKeyRegistrar, get_vk_cache
    from agentproof.storage.proof_store import ProofArtifactStore

    store = ProofArtifactStore(tmp_path / "proofs")

    def _make(relayer: FakeRelayer) -> ProofPipeline:
        client = RelayerClient(RELAYER_URL, RELAYER_KEY, transport=relayer.transport)
        return ProofPipeline(
            prover=prover,
            client=client,
            registrar=VerificationKeyRegistrar(client, get_vk_cache(), "reputation"),
            store=store,
            chain_id=845320009,
            sleep=fake_sleep,
        )

    return _make
