import hashlib
import json
from pathlib import Path
from typing import Any

from agentproof.schemas.proof import EncodingSnapshot, ProofArtifact


class ProofArtifactStore:
    """File storage for proof artifacts keyed by proof id.

    Each proof gets its own directory in a sharded layout:
        root/ab/cd/<proof_id>/{proof.json, public.json, snapshot.json, aggregation.json}

    Submitted jobs are indexed under ``root/jobs/`` so a job id leads back to
    the proof (and the encoding snapshot) it was submitted from.

    ``public.json`` holds the decimal-string signal array exactly as the
    prover emitted it, so a reload verifies against the same bytes.
    """

    def __init__(self, root_dir: str | Path, depth: int = 2, width: int = 2):
        self.root = Path(root_dir)
        self.depth = depth
        self.width = width
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, proof_id: str, artifact: ProofArtifact) -> Path:
        directory = self._dir(proof_id)
        directory.mkdir(parents=True, exist_ok=True)
        self._write(directory / "proof.json", artifact.proof)
        self._write(directory / "public.json", artifact.public_signals)
        return directory

    def load(self, proof_id: str) -> ProofArtifact | None:
        directory = self._dir(proof_id)
        proof_path = directory / "proof.json"
        public_path = directory / "public.json"
        if not proof_path.is_file() or not public_path.is_file():
            return None
        return ProofArtifact(proof=self._read(proof_path), public_signals=self._read(public_path))

    def save_aggregation(self, proof_id: str, details: dict[str, Any]) -> Path:
        directory = self._dir(proof_id)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / "aggregation.json"
        self._write(path, details)
        return path

    def load_aggregation(self, proof_id: str) -> dict | None:
        path = self._dir(proof_id) / "aggregation.json"
        if not path.is_file():
            return None
        return self._read(path)

    def save_snapshot(self, proof_id: str, snapshot: EncodingSnapshot) -> Path:
        directory = self._dir(proof_id)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / "snapshot.json"
        self._write(path, snapshot.model_dump(mode="json"))
        return path

    def load_snapshot(self, proof_id: str) -> EncodingSnapshot | None:
        path = self._dir(proof_id) / "snapshot.json"
        if not path.is_file():
            return None
        return EncodingSnapshot.model_validate(self._read(path))

    def save_submission(self, job_id: str, proof_id: str) -> Path:
        path = self._job_path(job_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        self._write(path, {"job_id": job_id, "proof_id": self._normalize(proof_id)})
        return path

    def proof_id_for_job(self, job_id: str) -> str | None:
        path = self._job_path(job_id)
        if not path.is_file():
            return None
        return "0x" + self._read(path)["proof_id"]

    def exists(self, proof_id: str) -> bool:
        return (self._dir(proof_id) / "proof.json").is_file()

    def _job_path(self, job_id: str) -> Path:
        digest = hashlib.sha256(job_id.encode("utf-8")).hexdigest()
        return self.root / "jobs" / f"{digest}.json"

    def _dir(self, proof_id: str) -> Path:
        key = self._normalize(proof_id)
        parts = [key[i * self.width:(i + 1) * self.width] for i in range(self.depth)]
        return self.root / Path(*parts) / key

    @staticmethod
    def _normalize(proof_id: str) -> str:
        key = proof_id.lower()
        if key.startswith("0x"):
            key = key[2:]
        if not key or not all(c in "0123456789abcdef" for c in key):
            raise ValueError(f"Invalid proof id: {proof_id!r}")
        return key

    @staticmethod
    def _write(path: Path, data: Any) -> None:
        with path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    @staticmethod
    def _read(path: Path) -> Any:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
