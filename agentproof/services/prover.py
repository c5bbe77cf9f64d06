"""Groth16 proving over the compiled reputation circuit.

Proving shells out to the circuit's own toolchain:

1. ``node generate_witness.js <wasm> input.json witness.wtns``
2. ``snarkjs groth16 prove <zkey> witness.wtns proof.json public.json``

Each call works in its own scratch directory, removed on every exit path.
"""

import asyncio
import json
import logging
import shutil
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Sequence

from agentproof.config import Settings, settings
from agentproof.core.exceptions import (
    ArtifactNotFoundError,
    ConfigurationError,
    ProvingError,
    WitnessError,
)
from agentproof.schemas.proof import PUBLIC_SIGNAL_NAMES, CircuitInput, ProofArtifact
from agentproof.services.input_encoder import (
    RATING_SLOTS,
    REVIEW_HASH_SLOTS,
    expected_public_signals,
    mismatched_claims,
)

logger = logging.getLogger(__name__)

ROOT_HASH_INDEX = PUBLIC_SIGNAL_NAMES.index("reviewRootHash")


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str
    stderr: str


CommandRunner = Callable[[Sequence[str], Path], Awaitable[CommandResult]]


async def run_command(argv: Sequence[str], cwd: Path) -> CommandResult:
    """Run an external tool without blocking the event loop."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Executable not found: {argv[0]}") from exc
    stdout, stderr = await proc.communicate()
    return CommandResult(
        returncode=proc.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


@dataclass(frozen=True)
class CircuitArtifacts:
    wasm: Path
    witness_generator: Path
    zkey: Path
    verification_key: Path

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "CircuitArtifacts":
        paths = cfg.artifact_paths()
        return cls(
            wasm=paths["wasm"].resolve(),
            witness_generator=paths["witness_generator"].resolve(),
            zkey=paths["zkey"].resolve(),
            verification_key=paths["verification_key"].resolve(),
        )

    def check(self) -> None:
        """Raise ArtifactNotFoundError for the first missing artifact."""
        for name, path in (
            ("WASM", self.wasm),
            ("witness generator", self.witness_generator),
            ("proving key", self.zkey),
            ("verification key", self.verification_key),
        ):
            if not path.is_file():
                raise ArtifactNotFoundError(name, path)

    def load_verification_key(self) -> dict:
        if not self.verification_key.is_file():
            raise ArtifactNotFoundError("verification key", self.verification_key)
        with self.verification_key.open("r", encoding="utf-8") as f:
            return json.load(f)


def _check_input_shape(circuit_input: CircuitInput) -> None:
    if len(circuit_input.ratings) != RATING_SLOTS:
        raise WitnessError(
            f"ratings must have {RATING_SLOTS} slots, got {len(circuit_input.ratings)}"
        )
    if len(circuit_input.review_hashes) != REVIEW_HASH_SLOTS:
        raise WitnessError(
            f"reviewHashes must have {REVIEW_HASH_SLOTS} slots, got {len(circuit_input.review_hashes)}"
        )
    mismatched = mismatched_claims(circuit_input)
    if mismatched:
        raise WitnessError(f"Claimed values differ from private values: {', '.join(mismatched)}")


def _read_json(path: Path, what: str):
    if not path.is_file():
        raise ProvingError(f"{what} file was not generated")
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as exc:
        raise ProvingError(f"{what} file is not valid JSON: {exc}") from exc


class Groth16Prover:
    def __init__(
        self,
        artifacts: CircuitArtifacts,
        scratch_root: str | Path,
        node_binary: str = "node",
        snarkjs_binary: str = "snarkjs",
        runner: CommandRunner = run_command,
    ) -> None:
        self.artifacts = artifacts
        self.scratch_root = Path(scratch_root)
        self.node_binary = node_binary
        self.snarkjs_binary = snarkjs_binary
        self._run = runner

    @classmethod
    def from_settings(cls, cfg: Settings = settings, runner: CommandRunner = run_command) -> "Groth16Prover":
        return cls(
            CircuitArtifacts.from_settings(cfg),
            scratch_root=cfg.proof_scratch_dir,
            node_binary=cfg.node_binary,
            snarkjs_binary=cfg.snarkjs_binary,
            runner=runner,
        )

    def _make_scratch_dir(self) -> Path:
        scratch = self.scratch_root / f"proof_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
        scratch.mkdir(parents=True, exist_ok=False)
        return scratch

    @staticmethod
    def _cleanup(scratch: Path) -> None:
        try:
            shutil.rmtree(scratch)
        except OSError as exc:
            logger.warning("Failed to clean up scratch dir %s: %s", scratch, exc)

    async def prove(self, circuit_input: CircuitInput) -> ProofArtifact:
        """Compute the witness and a Groth16 proof for one circuit input."""
        self.artifacts.check()
        _check_input_shape(circuit_input)

        scratch = self._make_scratch_dir()
        input_path = scratch / "input.json"
        witness_path = scratch / "witness.wtns"
        proof_path = scratch / "proof.json"
        public_path = scratch / "public.json"
        try:
            with input_path.open("w", encoding="utf-8") as f:
                json.dump(circuit_input.to_circuit_json(), f, indent=2)

            logger.info("Generating witness for agentId=%s", circuit_input.agent_id)
            result = await self._run(
                [
                    self.node_binary,
                    str(self.artifacts.witness_generator),
                    str(self.artifacts.wasm),
                    str(input_path),
                    str(witness_path),
                ],
                scratch,
            )
            if result.returncode != 0 or not witness_path.is_file():
                raise WitnessError(
                    f"Witness generation failed: {(result.stderr or result.stdout).strip()}"
                )

            logger.info("Generating Groth16 proof for agentId=%s", circuit_input.agent_id)
            result = await self._run(
                [
                    self.snarkjs_binary,
                    "groth16",
                    "prove",
                    str(self.artifacts.zkey),
                    str(witness_path),
                    str(proof_path),
                    str(public_path),
                ],
                scratch,
            )
            if result.returncode != 0:
                raise ProvingError(f"Proof generation failed: {(result.stderr or result.stdout).strip()}")

            proof = _read_json(proof_path, "Proof")
            public_signals = [str(s) for s in _read_json(public_path, "Public signals")]
        finally:
            self._cleanup(scratch)

        self._check_public_signals(circuit_input, public_signals)
        logger.info("Proof generated for agentId=%s", circuit_input.agent_id)
        return ProofArtifact(proof=proof, public_signals=public_signals)

    @staticmethod
    def _check_public_signals(circuit_input: CircuitInput, public_signals: list[str]) -> None:
        if len(public_signals) != len(PUBLIC_SIGNAL_NAMES):
            raise ProvingError(
                f"Expected {len(PUBLIC_SIGNAL_NAMES)} public signals, got {len(public_signals)}"
            )
        expected = expected_public_signals(circuit_input)
        for i, (name, got, want) in enumerate(zip(PUBLIC_SIGNAL_NAMES, public_signals, expected)):
            if i == ROOT_HASH_INDEX:
                continue
            if got != want:
                raise ProvingError(f"Public signal {name} is {got}, circuit input has {want}")

    async def verify(self, artifact: ProofArtifact) -> bool:
        """Check a proof locally against the verification key."""
        if not self.artifacts.verification_key.is_file():
            raise ArtifactNotFoundError("verification key", self.artifacts.verification_key)

        scratch = self._make_scratch_dir()
        try:
            proof_path = scratch / "proof.json"
            public_path = scratch / "public.json"
            with proof_path.open("w", encoding="utf-8") as f:
                json.dump(artifact.proof, f)
            with public_path.open("w", encoding="utf-8") as f:
                json.dump(artifact.public_signals, f)

            result = await self._run(
                [
                    self.snarkjs_binary,
                    "groth16",
                    "verify",
                    str(self.artifacts.verification_key),
                    str(public_path),
                    str(proof_path),
                ],
                scratch,
            )
        finally:
            self._cleanup(scratch)

        valid = result.returncode == 0 and "OK" in result.stdout
        if not valid:
            logger.warning("Local proof verification failed: %s", result.stdout.strip())
        return valid


def format_solidity_calldata(artifact: ProofArtifact) -> str:
    """Arguments for an on-chain Groth16 verifier's verifyProof call."""
    proof = artifact.proof
    pi_a = proof["pi_a"][:2]
    # G2 coordinates are (imaginary, real) on chain
    pi_b = [[proof["pi_b"][0][1], proof["pi_b"][0][0]], [proof["pi_b"][1][1], proof["pi_b"][1][0]]]
    pi_c = proof["pi_c"][:2]

    def q(value) -> str:
        return f'"{value}"'

    return (
        f"[[{q(pi_a[0])}, {q(pi_a[1])}], "
        f"[[{q(pi_b[0][0])}, {q(pi_b[0][1])}],[{q(pi_b[1][0])}, {q(pi_b[1][1])}]], "
        f"[{q(pi_c[0])}, {q(pi_c[1])}], "
        f"[{', '.join(q(s) for s in artifact.public_signals)}]]"
    )
